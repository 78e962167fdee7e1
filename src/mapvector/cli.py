"""
Command-line interface for mapvector.

Provides commands for vectorizing an image and writing a default config.
"""

import argparse
import sys

from mapvector.config import load_config, save_default_config
from mapvector.tracer import configure_tracer, get_tracer


def main(argv=None):
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="mapvector: Convert scanned map raster images to vector curves",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Vectorize an image")
    run_parser.add_argument(
        "input",
        help="Input image file",
    )
    run_parser.add_argument(
        "--out", "-o",
        required=True,
        help="Output directory",
    )
    run_parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to YAML configuration file",
    )
    run_parser.add_argument(
        "--mode",
        default=None,
        choices=["boundary", "centerline"],
        help="Override polygons.mode from the config",
    )
    run_parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug artifact generation",
    )
    run_parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable runtime tracing",
    )
    run_parser.add_argument(
        "--trace-level",
        default="INFO",
        choices=["ERROR", "WARN", "INFO", "DEBUG"],
        help="Trace log level",
    )
    run_parser.add_argument(
        "--trace-file",
        default=None,
        help="Path to write trace logs",
    )
    run_parser.add_argument(
        "--trace-json",
        action="store_true",
        help="Enable JSON trace output",
    )

    # Init config command
    init_parser = subparsers.add_parser("init-config", help="Create default config file")
    init_parser.add_argument(
        "--out", "-o",
        default="mapvector_config.yaml",
        help="Output path for config file",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "run":
        return handle_run(args)
    elif args.command == "init-config":
        return handle_init_config(args)

    return 0


def handle_run(args):
    """Handle the run command."""
    tracer = get_tracer()

    try:
        config = load_config(args.config)

        tracing = config.tracing
        configure_tracer(
            enabled=args.trace or tracing.enabled,
            level=args.trace_level if args.trace else tracing.level,
            file_path=args.trace_file or tracing.file_path,
            json_output=args.trace_json or tracing.json_output,
        )

        if args.mode:
            config.polygons.mode = args.mode

        from mapvector.pipeline import run_pipeline

        with tracer.span("cli_run", module="cli"):
            result = run_pipeline(
                args.input,
                out_dir=args.out,
                config=config,
                debug=args.debug,
            )

        if result is None:
            print("\nPipeline interrupted.", file=sys.stderr)
            return 1

        corners = sum(c.corner_count for c in result.curves)
        print("\nPipeline completed successfully.")
        print(f"  Image: {result.width}x{result.height}")
        print(f"  Palette colors: {len(result.palette) if result.palette else 0}")
        print(f"  Selected classes: {result.selected_classes}")
        print(f"  Polygons traced: {result.polygon_count}")
        print(f"  Curves fitted: {len(result.curves)} ({corners} corners)")
        print(f"\nOutputs saved to: {args.out}/")
        print("  - result.svg")
        print("  - result.json")

        if result.warnings:
            print(f"\n[!] {len(result.warnings)} warnings. Review result.json")

        return 0

    except Exception as e:
        tracer.event(f"Pipeline failed: {str(e)}", level="ERROR")
        print(f"\nError: {str(e)}", file=sys.stderr)
        return 1


def handle_init_config(args):
    """Handle the init-config command."""
    save_default_config(args.out)
    print(f"Default configuration saved to: {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
