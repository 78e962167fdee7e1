"""
Color classification stage for mapvector.

Learns a palette from a (pre-filtered) scan, labels every pixel with its
nearest palette entry and selects the classes that make up the mask to be
traced.
"""

import numpy as np

from mapvector.classify.color_space import from_space, nearest, to_space
from mapvector.classify.kohonen import (
    ClassicAlphaGetter,
    KohonenMap,
    RandomPatternGetter,
    SequentialPatternGetter,
)
from mapvector.concurrency import ensure_progress, sub_progress
from mapvector.config import parse_color
from mapvector.models import Palette, PaletteEntry
from mapvector.tracer import get_tracer, trace


def _learn_online(kmap, values, config, progress, rng):
    alpha_getter = ClassicAlphaGetter(
        alpha=config.init_alpha,
        q=config.q,
        e=config.e,
        min_alpha=config.min_alpha,
        progress=progress,
    )
    kmap.perform_learning(alpha_getter, RandomPatternGetter(values.reshape(-1, 3), rng))


def _learn_batch(kmap, values, config, progress, rng):
    pattern_getter = SequentialPatternGetter(values, progress=progress)
    quality = kmap.perform_batch_learning(pattern_getter, config.max_batch_iterations)
    get_tracer().event(f"Batch learning quality={quality:.1f}", level="DEBUG")


# learn_method name -> fn(kmap, values (H, W, 3), config, progress, rng)
LEARNING_METHODS = {
    "online": _learn_online,
    "batch": _learn_batch,
}


def starting_colors(image, config, rng=None):
    """
    Starting palette colors as a list of RGB tuples.

    random picks arbitrary colors, random_from_image samples pixels of the
    image and predefined uses config.initial_colors.
    """
    rng = rng if rng is not None else np.random.default_rng(config.seed)
    k = config.number_of_colors

    if config.colors_source == "predefined":
        return [parse_color(c) for c in config.initial_colors]

    if config.colors_source == "random":
        return [tuple(int(c) for c in rgb) for rgb in rng.integers(0, 256, size=(k, 3))]

    pixels = np.asarray(image, dtype=np.uint8).reshape(-1, 3)
    if len(pixels) == 0:
        return []
    idx = rng.integers(0, len(pixels), size=k)
    return [tuple(int(c) for c in pixels[i]) for i in idx]


def _entry_labels(count, comments):
    """Entry labels from comments, numbered where missing and suffixed where repeated."""
    labels = []
    for i in range(count):
        comment = comments[i] if i < len(comments) else ""
        base = str(comment) if comment else f"color {i + 1}"
        label = base
        n = 2
        while label in labels:
            label = f"{base} ({n})"
            n += 1
        labels.append(label)
    return labels


@trace(label="train_palette")
def train(image, config, initial_colors=None, progress=None):
    """
    Learn a palette from an RGB image.

    config is a ClassificationConfig. Returns a Palette, an empty Palette for
    an empty image or empty initial colors, or None if interrupted.
    """
    tracer = get_tracer()
    progress = ensure_progress(progress)
    rng = np.random.default_rng(config.seed)

    image = np.asarray(image, dtype=np.uint8)
    h, w = image.shape[:2]
    if initial_colors is None:
        initial_colors = starting_colors(image, config, rng=rng)

    if h * w == 0 or len(initial_colors) == 0:
        tracer.event("Nothing to learn, returning empty palette")
        return Palette(entries=[], color_space=config.color_space, p=config.p)

    learn = LEARNING_METHODS.get(config.learn_method)
    if learn is None:
        raise ValueError(f"Unknown learning method: {config.learn_method}")

    starting = np.array([parse_color(c) for c in initial_colors], dtype=np.uint8)
    kmap = KohonenMap(to_space(starting, config.color_space), p=config.p)
    values = to_space(image.reshape(h, w, 3), config.color_space)

    with tracer.span("learn", module="palette", method=config.learn_method, k=len(starting)):
        learn(kmap, values, config, progress, rng)

    if progress.is_interruption_requested():
        tracer.event("Training interrupted", level="WARN")
        return None

    rgb = from_space(kmap.classes, config.color_space)
    comments = config.comments if config.colors_source == "predefined" else []
    labels = _entry_labels(len(rgb), comments)
    entries = [
        PaletteEntry(color=[int(c) for c in color], label=label)
        for color, label in zip(rgb, labels)
    ]

    tracer.event(f"Learned {len(entries)} colors: {[e.hex for e in entries]}")
    return Palette(entries=entries, color_space=config.color_space, p=config.p)


def _palette_centers(palette):
    rgb = np.array(palette.colors, dtype=np.uint8).reshape(-1, 3)
    return to_space(rgb, palette.color_space)


def classify(palette, color):
    """
    Index of the palette entry nearest to an RGB color.

    Distances are Minkowski-p in the palette's color space; ties go to the
    lowest index. Returns None for an empty palette.
    """
    if len(palette) == 0:
        return None
    value = to_space(np.array([color], dtype=np.uint8), palette.color_space)
    idx, _ = nearest(value, _palette_centers(palette), palette.p)
    return int(idx[0])


@trace(label="classify_image")
def classify_image(image, palette, progress=None):
    """
    Label every pixel with its nearest palette entry.

    Returns a uint8 (H, W) label image, an empty (0, 0) array for an empty
    palette, or None if interrupted.
    """
    progress = ensure_progress(progress)
    if len(palette) == 0:
        return np.zeros((0, 0), dtype=np.uint8)

    image = np.asarray(image, dtype=np.uint8)
    h, w = image.shape[:2]
    centers = _palette_centers(palette)
    labels = np.zeros((h, w), dtype=np.uint8)

    for y in range(h):
        if progress.is_interruption_requested():
            return None
        row = to_space(image[y], palette.color_space)
        idx, _ = nearest(row, centers, palette.p)
        labels[y] = idx
        progress.set_percentage(100 * (y + 1) // h)

    return labels


def select_mask(label_image, selected):
    """Foreground mask of the pixels whose class is in selected."""
    selected = [int(s) for s in selected]
    if not selected:
        return np.zeros(label_image.shape, dtype=bool)
    return np.isin(label_image, selected)


def quality(image, palette):
    """
    Sum of squared coordinate differences between each pixel and its class center.

    Lower is better; this is the criterion batch learning minimizes.
    """
    if len(palette) == 0:
        return 0.0
    pixels = np.asarray(image, dtype=np.uint8).reshape(-1, 3)
    centers = _palette_centers(palette)
    total = 0.0
    for start in range(0, len(pixels), 65536):
        values = to_space(pixels[start:start + 65536], palette.color_space)
        idx, _ = nearest(values, centers, palette.p)
        diff = values - centers[idx]
        total += float((diff * diff).sum())
    return total


def darkest_class(palette):
    """Index of the entry with the lowest luma, the usual ink color of a map."""
    if len(palette) == 0:
        return None
    luma = [0.299 * r + 0.587 * g + 0.114 * b for r, g, b in palette.colors]
    return int(np.argmin(luma))


@trace(label="classify_stage")
def classify_stage(filtered_img, config, progress=None, debug_writer=None):
    """
    Train a palette, label the image and build the selected-class mask.

    Returns (palette, label_image, mask, selected) or None if interrupted.
    """
    tracer = get_tracer()
    progress = ensure_progress(progress)

    palette = train(filtered_img, config.classification, progress=sub_progress(progress, 0, 75))
    if palette is None:
        return None

    labels = classify_image(filtered_img, palette, progress=sub_progress(progress, 75, 100))
    if labels is None:
        return None

    selected = [int(s) for s in config.polygons.selected_classes if int(s) < len(palette)]
    if not selected and len(palette) > 0:
        selected = [darkest_class(palette)]
    mask = select_mask(labels, selected)

    tracer.event(f"Selected classes {selected}: {int(mask.sum())} foreground pixels")

    if debug_writer and len(palette) > 0:
        colors = np.array(palette.colors, dtype=np.uint8)
        debug_writer.save_image(colors[labels], "classify", "01_classified.png")
        debug_writer.save_image(mask.astype(np.uint8) * 255, "classify", "02_mask.png")
        debug_writer.save_json(
            {
                "palette": [e.model_dump() for e in palette.entries],
                "selected_classes": selected,
                "quality": round(quality(filtered_img, palette), 2),
                "foreground_pixels": int(mask.sum()),
            },
            "classify",
            "classify_metrics.json",
        )

    return palette, labels, mask, selected
