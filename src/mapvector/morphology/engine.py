"""
Table-driven morphology on binary masks.

Each pass computes the packed 8-neighbor code of every pixel from the mask as
it was before the pass, looks the decision up in a table and applies all
decisions at once. Pixels outside the image count as background.
"""

from enum import Enum

import numpy as np

from mapvector.concurrency import ensure_progress, sub_progress
from mapvector.morphology.tables import (
    DELETABLE,
    EAST,
    ERODIBLE,
    INSERTABLE,
    NEIGHBOR_MASKS,
    NEIGHBOR_OFFSETS,
    NORTH,
    PRUNABLE,
    SOUTH,
    WEST,
)
from mapvector.tracer import get_tracer, trace


class MorphologicalOperation(str, Enum):
    """Operations selectable from the configuration."""
    EROSION = "erosion"
    DILATION = "dilation"
    THINNING_ROSENFELD = "thinning_rosenfeld"
    PRUNING = "pruning"


# border direction checked by each thinning sub-pass
ROSENFELD_DIRECTIONS = (NORTH, SOUTH, EAST, WEST)


def neighbor_codes(mask):
    """uint8 array with the packed 8-neighborhood of every pixel."""
    h, w = mask.shape
    padded = np.pad(mask, 1, mode="constant", constant_values=False)
    codes = np.zeros((h, w), dtype=np.uint8)
    for bit, (dy, dx) in enumerate(NEIGHBOR_OFFSETS):
        shifted = padded[1 + dy:1 + dy + h, 1 + dx:1 + dx + w]
        codes |= shifted.astype(np.uint8) << np.uint8(bit)
    return codes


class Morphology:
    """
    Holds a working copy of a mask and runs passes over it.

    Every operation returns True if it changed at least one pixel.
    """

    def __init__(self, mask):
        self._image = np.array(mask, dtype=bool, copy=True)

    @property
    def image(self):
        return self._image.copy()

    def _pass(self, table, insert, extra=None):
        """One parallel pass; returns the number of changed pixels."""
        codes = neighbor_codes(self._image)
        hits = table[codes]
        if insert:
            changed = ~self._image & hits
        else:
            changed = self._image & hits
        if extra is not None:
            changed &= extra(codes)
        count = int(np.count_nonzero(changed))
        if count:
            self._image[changed] = insert
        return count

    def rosenfeld(self, progress=None):
        """
        Rosenfeld thinning down to a 1-pixel wide skeleton.

        Rounds of four directional sub-passes repeat until a round deletes
        nothing or an interruption is requested.
        """
        progress = ensure_progress(progress)
        initial = int(np.count_nonzero(self._image))
        changed_any = False

        while initial:
            deleted = 0
            for direction in ROSENFELD_DIRECTIONS:
                if progress.is_interruption_requested():
                    return changed_any
                bit = NEIGHBOR_MASKS[direction]
                deleted += self._pass(DELETABLE, False, extra=lambda codes, bit=bit: (codes & bit) == 0)
            if deleted == 0:
                break
            changed_any = True
            remaining = int(np.count_nonzero(self._image))
            progress.set_percentage(100 * (initial - remaining) // initial)

        progress.set_percentage(100)
        return changed_any

    def erosion(self, progress=None):
        """Delete every foreground pixel with a background 8-neighbor."""
        progress = ensure_progress(progress)
        if progress.is_interruption_requested():
            return False
        changed = self._pass(ERODIBLE, False) > 0
        progress.set_percentage(100)
        return changed

    def dilation(self, progress=None):
        """Fill every background pixel with a foreground 8-neighbor."""
        progress = ensure_progress(progress)
        if progress.is_interruption_requested():
            return False
        changed = self._pass(INSERTABLE, True) > 0
        progress.set_percentage(100)
        return changed

    def pruning(self, length=5, progress=None):
        """
        Remove spurs up to length pixels long.

        Line ends are deleted for up to length passes, then the surviving
        ends grow back along the original pixels for as many passes, so long
        lines keep their full length.
        """
        progress = ensure_progress(progress)
        original = self._image.copy()

        passes = 0
        for passes in range(1, length + 1):
            if progress.is_interruption_requested():
                return not np.array_equal(original, self._image)
            if self._pass(PRUNABLE, False) == 0:
                break
            progress.set_percentage(50 * passes // length)

        codes = neighbor_codes(self._image)
        grown = self._image & PRUNABLE[codes]
        for step in range(passes):
            if progress.is_interruption_requested():
                break
            codes = neighbor_codes(grown)
            grown = (grown | INSERTABLE[codes]) & original
            progress.set_percentage(50 + 50 * (step + 1) // max(passes, 1))

        self._image |= grown
        progress.set_percentage(100)
        return not np.array_equal(original, self._image)


def transform(mask, operation, progress=None, prune_length=5):
    """
    Apply one operation to a copy of mask.

    Returns the new mask, or None if an interruption was requested.
    """
    progress = ensure_progress(progress)
    operation = MorphologicalOperation(operation)
    morph = Morphology(mask)

    if operation == MorphologicalOperation.EROSION:
        morph.erosion(progress)
    elif operation == MorphologicalOperation.DILATION:
        morph.dilation(progress)
    elif operation == MorphologicalOperation.THINNING_ROSENFELD:
        morph.rosenfeld(progress)
    else:
        morph.pruning(prune_length, progress)

    if progress.is_interruption_requested():
        return None
    return morph.image


@trace(label="morphology")
def morphology_stage(mask, config, progress=None, debug_writer=None):
    """
    Run the configured operations in order.

    Returns the resulting mask or None if interrupted.
    """
    tracer = get_tracer()
    progress = ensure_progress(progress)
    operations = config.morphology.operations
    current = mask

    for i, name in enumerate(operations):
        with tracer.span(name, module="morphology"):
            sub = sub_progress(progress, 100 * i / len(operations), 100 * (i + 1) / len(operations))
            current = transform(current, name, sub, prune_length=config.morphology.prune_length)
        if current is None:
            tracer.event("Morphology interrupted", level="WARN")
            return None
        tracer.event(f"{name}: {int(current.sum())} foreground pixels")

        if debug_writer:
            debug_writer.save_image(
                current.astype(np.uint8) * 255, "morphology", f"{i + 1:02d}_{name}.png"
            )

    return current
