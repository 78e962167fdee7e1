"""
Configuration management for mapvector.

Loads YAML configuration with sensible defaults for all pipeline stages.
Every section validates its values on construction and after merging, so a
stage never sees a value outside its documented range.
"""

import math
import os
from dataclasses import asdict, dataclass, field

import yaml


FILTER_KERNELS = ("binomic", "box")
COLOR_SPACES = ("rgb", "hsv")
LEARN_METHODS = ("online", "batch")
COLOR_SOURCES = ("random", "random_from_image", "predefined")
MORPHOLOGICAL_OPERATIONS = ("erosion", "dilation", "thinning_rosenfeld", "pruning")
POLYGON_MODES = ("boundary", "centerline")
TURN_POLICIES = ("black", "white", "left", "right", "minority", "majority")


def parse_color(value):
    """
    Parse a color given as "#rrggbb" or as an [r, g, b] sequence.

    Returns a tuple of three ints in 0..255.
    """
    if isinstance(value, str):
        text = value.strip().lstrip("#")
        if len(text) != 6:
            raise ValueError(f"Invalid color: {value!r}")
        return tuple(int(text[i:i + 2], 16) for i in (0, 2, 4))

    rgb = tuple(int(c) for c in value)
    if len(rgb) != 3 or any(c < 0 or c > 255 for c in rgb):
        raise ValueError(f"Invalid color: {value!r}")
    return rgb


def _require(condition, message):
    if not condition:
        raise ValueError(message)


@dataclass
class FilterConfig:
    """Configuration for the FIR pre-filter."""
    enabled: bool = True
    radius: int = 1
    kernel: str = "binomic"  # "binomic" or "box"
    center_weight: float = None  # optional explicit center weight
    out_of_bounds_color: list = field(default_factory=lambda: [128, 128, 128])

    def __post_init__(self):
        self.validate()

    def validate(self):
        _require(self.radius >= 0, f"filter.radius must be >= 0, got {self.radius}")
        _require(self.kernel in FILTER_KERNELS, f"filter.kernel must be one of {FILTER_KERNELS}")
        if self.center_weight is not None:
            _require(0.0 <= self.center_weight <= 1.0, "filter.center_weight must be in [0, 1]")
            _require(self.radius > 0 or self.center_weight == 1.0,
                     "filter.center_weight must be 1 when filter.radius is 0")
        parse_color(self.out_of_bounds_color)


@dataclass
class ClassificationConfig:
    """Configuration for color classification."""
    number_of_colors: int = 8
    init_alpha: float = 0.1
    min_alpha: float = 1e-6
    q: float = 0.5
    e: int = 10000
    learn_method: str = "online"  # "online" or "batch"
    color_space: str = "rgb"  # "rgb" or "hsv"
    p: float = 2.0
    colors_source: str = "random_from_image"
    initial_colors: list = field(default_factory=list)
    comments: list = field(default_factory=list)
    max_batch_iterations: int = 100
    seed: int = None

    def __post_init__(self):
        self.validate()

    def validate(self):
        _require(1 <= self.number_of_colors <= 256, "classification.number_of_colors must be in [1, 256]")
        _require(0.0 < self.min_alpha <= self.init_alpha <= 1.0,
                 "classification alphas must satisfy 0 < min_alpha <= init_alpha <= 1")
        _require(0.0 < self.q < 1.0, "classification.q must be in (0, 1)")
        _require(self.e >= 1, "classification.e must be >= 1")
        _require(self.learn_method in LEARN_METHODS, f"classification.learn_method must be one of {LEARN_METHODS}")
        _require(self.color_space in COLOR_SPACES, f"classification.color_space must be one of {COLOR_SPACES}")
        _require(self.p >= 1.0 or math.isinf(self.p), "classification.p must be >= 1")
        _require(self.colors_source in COLOR_SOURCES, f"classification.colors_source must be one of {COLOR_SOURCES}")
        _require(self.max_batch_iterations >= 1, "classification.max_batch_iterations must be >= 1")
        for color in self.initial_colors:
            parse_color(color)
        if self.colors_source == "predefined":
            _require(len(self.initial_colors) > 0, "predefined colors source needs initial_colors")


@dataclass
class MorphologyConfig:
    """Configuration for the morphological operations run on the mask."""
    operations: list = field(default_factory=lambda: ["thinning_rosenfeld"])
    prune_length: int = 5

    def __post_init__(self):
        self.validate()

    def validate(self):
        for op in self.operations:
            _require(op in MORPHOLOGICAL_OPERATIONS, f"unknown morphological operation {op!r}")
        _require(self.prune_length >= 1, "morphology.prune_length must be >= 1")


@dataclass
class PolygonConfig:
    """Configuration for mask selection and polygon tracing."""
    mode: str = "centerline"  # "boundary" or "centerline"
    turn_policy: str = "minority"
    selected_classes: list = field(default_factory=list)  # empty: darkest class

    def __post_init__(self):
        self.validate()

    def validate(self):
        _require(self.mode in POLYGON_MODES, f"polygons.mode must be one of {POLYGON_MODES}")
        _require(self.turn_policy in TURN_POLICIES, f"polygons.turn_policy must be one of {TURN_POLICIES}")
        for idx in self.selected_classes:
            _require(int(idx) >= 0, "polygons.selected_classes must be non-negative")


@dataclass
class VectorizationConfig:
    """Configuration for curve fitting."""
    speckle_size: int = 5
    do_connections: bool = True
    join_distance: float = 5.0
    simple_connections_only: bool = False
    dist_dir_balance: float = 0.5
    corner_min: float = 0.25
    opt_tolerance: float = 0.2
    optimize_curves: bool = True

    def __post_init__(self):
        self.validate()

    def validate(self):
        _require(self.speckle_size >= 2, "vectorization.speckle_size must be >= 2")
        _require(self.join_distance >= 1.0, "vectorization.join_distance must be >= 1")
        _require(0.0 <= self.dist_dir_balance <= 1.0, "vectorization.dist_dir_balance must be in [0, 1]")
        _require(0.0 <= self.corner_min <= 1.0, "vectorization.corner_min must be in [0, 1]")
        _require(self.opt_tolerance >= 0.0, "vectorization.opt_tolerance must be >= 0")


@dataclass
class OutputConfig:
    """Configuration for SVG output."""
    stroke_width: float = 1.0
    stroke_color: str = "black"
    fill_color: str = "none"


@dataclass
class TracingConfig:
    """Configuration for runtime tracing."""
    enabled: bool = False
    level: str = "INFO"
    file_path: str = None
    json_output: bool = False


@dataclass
class DebugConfig:
    """Configuration for debug artifact generation."""
    enabled: bool = False
    max_edge_scale: int = 1600


@dataclass
class PipelineConfig:
    """Complete pipeline configuration."""
    filter: FilterConfig = field(default_factory=FilterConfig)
    classification: ClassificationConfig = field(default_factory=ClassificationConfig)
    morphology: MorphologyConfig = field(default_factory=MorphologyConfig)
    polygons: PolygonConfig = field(default_factory=PolygonConfig)
    vectorization: VectorizationConfig = field(default_factory=VectorizationConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    tracing: TracingConfig = field(default_factory=TracingConfig)
    debug: DebugConfig = field(default_factory=DebugConfig)


SECTIONS = (
    "filter", "classification", "morphology", "polygons",
    "vectorization", "output", "tracing", "debug",
)


def load_config(config_path=None):
    """
    Load configuration from YAML file.

    Falls back to defaults for any missing values.
    """
    config = PipelineConfig()

    if config_path and os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

        config = _merge_config(config, yaml_data)

    return config


def _merge_config(config, yaml_data):
    """Merge YAML data into config dataclass and re-validate touched sections."""
    for section_name in SECTIONS:
        if section_name not in yaml_data:
            continue
        section = getattr(config, section_name)
        for key, value in (yaml_data[section_name] or {}).items():
            if hasattr(section, key):
                setattr(section, key, value)
        if hasattr(section, "validate"):
            section.validate()

    return config


def save_default_config(path):
    """Save default configuration to YAML file for reference."""
    yaml_data = asdict(PipelineConfig())
    yaml_data["tracing"].pop("file_path", None)

    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(yaml_data, f, default_flow_style=False, sort_keys=False)
