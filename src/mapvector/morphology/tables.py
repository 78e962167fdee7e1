"""
Lookup tables for 3x3 binary morphology.

A pixel's 8-neighborhood is packed into one byte: bit i is set when the
neighbor at NEIGHBOR_OFFSETS[i] is foreground. Neighbors run clockwise
starting north. Every table maps such a code to a decision.
"""

import numpy as np


# (dy, dx) of N, NE, E, SE, S, SW, W, NW
NEIGHBOR_OFFSETS = (
    (-1, 0), (-1, 1), (0, 1), (1, 1),
    (1, 0), (1, -1), (0, -1), (-1, -1),
)

NORTH, NORTH_EAST, EAST, SOUTH_EAST, SOUTH, SOUTH_WEST, WEST, NORTH_WEST = range(8)


def _bits(code):
    return [(code >> i) & 1 for i in range(8)]


def neighbor_count(code):
    return bin(code).count("1")


def connectivity_number(code):
    """
    Yokoi 8-connectivity number of the center pixel.

    1 means removing the pixel changes neither foreground nor background
    topology (the pixel is 8-simple).
    """
    x = [1 - b for b in _bits(code)]
    total = 0
    for k in (0, 2, 4, 6):
        total += x[k] - x[k] * x[(k + 1) % 8] * x[(k + 2) % 8]
    return total


def ring_runs(code):
    """Number of separate runs of foreground neighbors around the ring."""
    bits = _bits(code)
    return sum(1 for i in range(8) if bits[i] and not bits[i - 1])


def _is_deletable(code):
    return connectivity_number(code) == 1 and neighbor_count(code) != 1


def _is_erodible(code):
    return code != 0xFF


def _is_insertable(code):
    return code != 0


def _is_prunable(code):
    # end of a line: up to three neighbors, all in one run
    return 1 <= neighbor_count(code) <= 3 and ring_runs(code) == 1


def _build(predicate):
    table = np.array([predicate(code) for code in range(256)], dtype=bool)
    table.flags.writeable = False
    return table


NEIGHBOR_MASKS = np.array([1 << i for i in range(8)], dtype=np.uint8)
NEIGHBOR_MASKS.flags.writeable = False

# foreground pixel that thinning may delete: 8-simple and not a line end
DELETABLE = _build(_is_deletable)

# foreground pixel that touches the background
ERODIBLE = _build(_is_erodible)

# background pixel that touches the foreground
INSERTABLE = _build(_is_insertable)

# foreground pixel at the free end of a line
PRUNABLE = _build(_is_prunable)
