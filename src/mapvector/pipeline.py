"""
Main pipeline orchestrator for mapvector.

Runs the stages in order: pre-filter, color classification, morphology,
polygon tracing, curve fitting. Every stage gets its own slice of the
overall progress and may be interrupted; an interrupted run returns None.
"""

import os

from mapvector.classify.palette import classify_stage
from mapvector.concurrency import ensure_progress, run_job, sub_progress
from mapvector.config import load_config
from mapvector.curves.potrace_fit import fit_polygons
from mapvector.curves.svg_emit import emit_curves_svg
from mapvector.io.load_image import load_image, validate_image_input
from mapvector.io.save_artifacts import DebugArtifactWriter, ensure_dir, save_json, save_svg
from mapvector.models import VectorizationResult
from mapvector.morphology.engine import MorphologicalOperation, morphology_stage, transform
from mapvector.polygons.boundary_trace import trace as trace_boundaries
from mapvector.polygons.skeleton_trace import trace_centerlines
from mapvector.preprocess.fir_filter import prefilter
from mapvector.tracer import get_tracer, trace


# progress range of each stage
STAGE_RANGES = {
    "filter": (0, 15),
    "classify": (15, 55),
    "morphology": (55, 70),
    "trace": (70, 80),
    "fit": (80, 100),
}


def _stage_progress(progress, stage):
    start, end = STAGE_RANGES[stage]
    return sub_progress(progress, start, end)


def trace_polygons(mask, config, progress=None, debug_writer=None):
    """
    Turn the processed mask into polygons according to config.polygons.mode.

    Centerline tracing needs a skeleton; the mask is thinned first when the
    morphology operations did not already do so.
    """
    if config.polygons.mode == "boundary":
        return trace_boundaries(mask, config.polygons.turn_policy, progress=progress)

    if MorphologicalOperation.THINNING_ROSENFELD.value not in config.morphology.operations:
        mask = transform(mask, MorphologicalOperation.THINNING_ROSENFELD, sub_progress(progress, 0, 50))
        if mask is None:
            return None
        progress = sub_progress(progress, 50, 100)

    return trace_centerlines(mask, progress=progress, debug_writer=debug_writer)


@trace(label="vectorize")
def vectorize(rgb_img, config, progress=None, debug_writer=None):
    """
    Run all stages on an RGB image.

    Returns a tuple (palette, selected_classes, polygon_list, curves), or
    None if interrupted.
    """
    tracer = get_tracer()
    progress = ensure_progress(progress)

    with tracer.span("filter", module="pipeline"):
        filtered = prefilter(rgb_img, config, _stage_progress(progress, "filter"), debug_writer)
    if filtered is None:
        return None

    with tracer.span("classify", module="pipeline"):
        classified = classify_stage(filtered, config, _stage_progress(progress, "classify"), debug_writer)
    if classified is None:
        return None
    palette, _labels, mask, selected = classified

    with tracer.span("morphology", module="pipeline"):
        mask = morphology_stage(mask, config, _stage_progress(progress, "morphology"), debug_writer)
    if mask is None:
        return None

    with tracer.span("trace", module="pipeline"):
        polygon_list = trace_polygons(mask, config, _stage_progress(progress, "trace"), debug_writer)
    if polygon_list is None:
        return None
    if debug_writer:
        debug_writer.save_json(polygon_list, "polygons", "02_polygons.json")

    with tracer.span("fit", module="pipeline"):
        curves = fit_polygons(polygon_list, config.vectorization, _stage_progress(progress, "fit"))
    if curves is None:
        return None

    progress.set_percentage(100)
    return palette, selected, polygon_list, curves


@trace(label="run_pipeline")
def run_pipeline(input_path, out_dir=None, config=None, config_path=None, debug=False, progress=None):
    """
    Vectorize one image file.

    Args:
        input_path: raster image to convert
        out_dir: directory for result.svg and result.json (optional)
        config: PipelineConfig object (optional)
        config_path: path to YAML config file (optional)
        debug: enable debug artifact generation
        progress: ProgressObserver for percentage and interruption

    Returns:
        VectorizationResult, or None if interrupted
    """
    tracer = get_tracer()

    if config is None:
        config = load_config(config_path)
    if debug:
        config.debug.enabled = True

    errors = validate_image_input(input_path)
    if errors:
        for error in errors:
            tracer.event(error, level="ERROR")
        raise ValueError(f"Input validation failed: {errors}")

    rgb_img, meta = load_image(input_path)

    debug_writer = None
    if out_dir:
        ensure_dir(out_dir)
        if config.debug.enabled:
            run_id = os.path.splitext(os.path.basename(input_path))[0]
            debug_writer = DebugArtifactWriter(
                out_dir, run_id,
                enabled=True,
                max_edge=config.debug.max_edge_scale,
            )

    outcome = vectorize(rgb_img, config, progress=progress, debug_writer=debug_writer)
    if outcome is None:
        tracer.event("Pipeline interrupted", level="WARN")
        return None
    palette, selected, polygon_list, curves = outcome

    result = VectorizationResult(
        source_path=meta["source_path"],
        width=meta["width"],
        height=meta["height"],
        palette=palette,
        selected_classes=selected,
        polygon_count=len(polygon_list.polygons),
        curves=curves,
        warnings=polygon_list.warnings,
    )

    if out_dir:
        with tracer.span("export", module="pipeline"):
            dwg = emit_curves_svg(curves, meta["width"], meta["height"], config.output)
            save_svg(dwg, os.path.join(out_dir, "result.svg"))
            save_json(result, os.path.join(out_dir, "result.json"))

    tracer.event(
        f"Pipeline complete: {result.polygon_count} polygons, {len(result.curves)} curves, "
        f"{len(result.warnings)} warnings"
    )
    return result


def run_pipeline_async(input_path, out_dir=None, config=None, config_path=None, debug=False, executor=None):
    """
    Start run_pipeline on a worker thread.

    Returns a Job; poll job.percentage, call job.request_interruption() to
    cancel, and job.result() for the VectorizationResult (None if cancelled).
    """
    return run_job(
        run_pipeline, input_path,
        executor=executor,
        out_dir=out_dir,
        config=config,
        config_path=config_path,
        debug=debug,
    )
