"""
FIR pre-filter for mapvector.

Smooths a scanned map before color classification so that paper grain and
print rasters do not split a color into several palette entries.
"""

import cv2
import numpy as np

from mapvector.concurrency import ensure_progress
from mapvector.config import parse_color
from mapvector.tracer import get_tracer, trace


class FIRFilter:
    """
    Square convolution kernel of radius r, (2r+1) x (2r+1) weights.

    A new filter is the identity. The builders reshape the kernel in place and
    return the filter, so they chain: FIRFilter(2).binomic().a(0.5).
    """

    def __init__(self, radius=0):
        if radius < 0:
            raise ValueError(f"radius must be >= 0, got {radius}")
        self.radius = int(radius)
        size = 2 * self.radius + 1
        self._kernel = np.zeros((size, size), dtype=np.float64)
        self._kernel[self.radius, self.radius] = 1.0

    @property
    def kernel(self):
        view = self._kernel.view()
        view.flags.writeable = False
        return view

    def binomic(self):
        """Outer product of binomial coefficients, normalized to sum 1."""
        size = 2 * self.radius + 1
        row = np.ones(1, dtype=np.float64)
        for _ in range(size - 1):
            row = np.convolve(row, [1.0, 1.0])
        kernel = np.outer(row, row)
        self._kernel = kernel / kernel.sum()
        return self

    def box(self):
        """All weights equal."""
        size = 2 * self.radius + 1
        self._kernel = np.full((size, size), 1.0 / (size * size))
        return self

    def a(self, center):
        """
        Set the center weight, spreading 1 - center over the other cells.

        The other cells keep their relative shape; an identity kernel spreads
        the rest evenly. A radius 0 kernel has no other cells, so its center
        weight can only be 1.
        """
        if not 0.0 <= center <= 1.0:
            raise ValueError(f"center weight must be in [0, 1], got {center}")
        r = self.radius
        if r == 0:
            if center != 1.0:
                raise ValueError(f"a radius 0 filter needs center weight 1, got {center}")
            self._kernel[0, 0] = 1.0
            return self

        others = self._kernel.copy()
        others[r, r] = 0.0
        total = others.sum()
        if total <= 0.0:
            others = np.ones_like(others)
            others[r, r] = 0.0
            total = others.sum()

        self._kernel = others * ((1.0 - center) / total)
        self._kernel[r, r] = center
        return self

    def apply(self, image, out_of_bounds_color=(128, 128, 128), progress=None):
        """
        Convolve an RGB image with the kernel.

        Samples outside the image read out_of_bounds_color. Returns a read-only
        uint8 image of the same shape, or None if interrupted.
        """
        progress = ensure_progress(progress)
        h, w = image.shape[:2]
        r = self.radius
        out = np.empty((h, w, 3), dtype=np.uint8)
        if h == 0 or w == 0:
            out.flags.writeable = False
            return out

        padded = cv2.copyMakeBorder(
            np.ascontiguousarray(image),
            r, r, r, r,
            cv2.BORDER_CONSTANT,
            value=tuple(int(c) for c in out_of_bounds_color),
        ).astype(np.float64)

        size = 2 * r + 1
        taps = [
            (dy, dx, self._kernel[dy, dx])
            for dy in range(size)
            for dx in range(size)
            if self._kernel[dy, dx] != 0.0
        ]

        for y in range(h):
            if progress.is_interruption_requested():
                return None
            acc = np.zeros((w, 3), dtype=np.float64)
            for dy, dx, weight in taps:
                acc += weight * padded[y + dy, dx:dx + w]
            out[y] = np.clip(np.rint(acc), 0, 255).astype(np.uint8)
            progress.set_percentage(100 * (y + 1) // h)

        out.flags.writeable = False
        return out


def build_filter(filter_config):
    """Create the FIR filter described by a FilterConfig."""
    fir = FIRFilter(filter_config.radius)
    if filter_config.kernel == "box":
        fir.box()
    else:
        fir.binomic()
    if filter_config.center_weight is not None:
        fir.a(filter_config.center_weight)
    return fir


@trace(label="prefilter")
def prefilter(rgb_img, config, progress=None, debug_writer=None):
    """
    Run the configured pre-filter over an RGB image.

    A disabled filter returns a read-only copy of the input.
    """
    tracer = get_tracer()

    if not config.filter.enabled:
        out = np.array(rgb_img, dtype=np.uint8, copy=True)
        out.flags.writeable = False
        tracer.event("Pre-filter disabled")
        return out

    fir = build_filter(config.filter)
    with tracer.span("convolve", module="fir_filter", radius=fir.radius):
        filtered = fir.apply(
            rgb_img,
            out_of_bounds_color=parse_color(config.filter.out_of_bounds_color),
            progress=progress,
        )

    if filtered is None:
        tracer.event("Pre-filter interrupted", level="WARN")
        return None

    if debug_writer:
        debug_writer.save_image(filtered, "filter", "01_filtered.png")
        debug_writer.save_json(
            {
                "radius": fir.radius,
                "kernel": config.filter.kernel,
                "center_weight": float(fir.kernel[fir.radius, fir.radius]),
            },
            "filter",
            "filter_metrics.json",
        )

    return filtered
