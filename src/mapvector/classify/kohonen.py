"""
Kohonen map (competitive learning) over color coordinates.

The map holds K class centers. Online learning pulls the winning center
towards randomly drawn pixels with a decaying learning rate; batch learning
is Lloyd's k-means iteration over all pixels.
"""

import math

import numpy as np

from mapvector.classify.color_space import minkowski, nearest
from mapvector.concurrency import ensure_progress


def _closest(classes, value, p):
    """Index of the nearest center for one sample, ties to the lowest index."""
    best, best_dist = 0, None
    for i, center in enumerate(classes):
        d0 = abs(value[0] - center[0])
        d1 = abs(value[1] - center[1])
        d2 = abs(value[2] - center[2])
        if math.isinf(p):
            dist = max(d0, d1, d2)
        elif p == 1:
            dist = d0 + d1 + d2
        elif p == 2:
            dist = d0 * d0 + d1 * d1 + d2 * d2
        else:
            dist = d0 ** p + d1 ** p + d2 ** p
        if best_dist is None or dist < best_dist:
            best, best_dist = i, dist
    return best


class ClassicAlphaGetter:
    """
    Geometric learning-rate schedule.

    Each alpha is used for e learning steps, then multiplied by q. The
    schedule ends (get_alpha returns 0) once alpha falls to min_alpha or an
    interruption is requested.
    """

    def __init__(self, alpha=0.1, q=0.5, e=10000, min_alpha=1e-6, progress=None):
        self.alpha = alpha
        self.q = q
        self.e = e
        self.min_alpha = min_alpha
        self.progress = ensure_progress(progress)

    def get_alpha(self):
        percentage = int(100 * math.log(self.alpha) / math.log(self.min_alpha))
        self.progress.set_percentage(min(100, max(0, percentage)))
        cancel = self.progress.is_interruption_requested()

        current = self.alpha if (not cancel and self.alpha > self.min_alpha) else 0.0
        self.alpha *= self.q
        return current

    def get_e(self):
        return self.e


class RandomPatternGetter:
    """Draws pixels uniformly at random from a (N, 3) value array."""

    def __init__(self, values, rng):
        self.values = values
        self.rng = rng

    def get_patterns(self, count):
        idx = self.rng.integers(0, len(self.values), size=count)
        return self.values[idx]


class SequentialPatternGetter:
    """
    Walks an (H, W, 3) value image row by row for batch learning.

    Remembers the class of every pixel and counts class changes since the
    last reset. Progress is 100 - 100 * (changes / pixels) ** 0.2.
    """

    def __init__(self, values, progress=None):
        self.values = values
        self.height, self.width = values.shape[:2]
        self.progress = ensure_progress(progress)
        self.classified = np.full((self.height, self.width), -1, dtype=np.int32)
        self.n_changes = 0
        self.exhausted = False

    def reset(self):
        if self.progress.is_interruption_requested():
            self.exhausted = True
        self.n_changes = 0

    def rows(self):
        """Yield (y, row_values); stops early on interruption."""
        if self.exhausted:
            return
        for y in range(self.height):
            if self.progress.is_interruption_requested():
                self.exhausted = True
                return
            yield y, self.values[y]

        pixels = self.width * self.height
        if pixels:
            ratio = self.n_changes / pixels
            self.progress.set_percentage(100 - int(100 * ratio ** 0.2))

    def set_row_classes(self, y, classes):
        self.n_changes += int(np.count_nonzero(self.classified[y] != classes))
        self.classified[y] = classes

    def number_of_changes(self):
        return self.n_changes


class KohonenMap:
    """Class centers in color space plus the Minkowski exponent comparing them."""

    def __init__(self, classes, p=2.0):
        self.classes = np.array(classes, dtype=np.float64).reshape(-1, 3)
        self.p = p

    def find_closest(self, value):
        """Index of and distance to the nearest center, ties to the lowest index."""
        dist = minkowski(self.classes - np.asarray(value, dtype=np.float64), self.p)
        idx = int(np.argmin(dist))
        return idx, float(dist[idx])

    def learn(self, value, alpha):
        """Move the winning center by alpha * (value - center)."""
        idx, _ = self.find_closest(value)
        self.classes[idx] += alpha * (value - self.classes[idx])

    def perform_learning(self, alpha_getter, pattern_getter):
        """
        Online learning until the alpha schedule ends.

        Samples are processed one at a time on plain lists.
        """
        classes = self.classes.tolist()
        alpha = alpha_getter.get_alpha()
        e = alpha_getter.get_e()

        while alpha > 0:
            for value in pattern_getter.get_patterns(e).tolist():
                center = classes[_closest(classes, value, self.p)]
                for c in range(3):
                    center[c] += alpha * (value[c] - center[c])
            alpha = alpha_getter.get_alpha()
            e = alpha_getter.get_e()

        self.classes = np.array(classes, dtype=np.float64).reshape(-1, 3)

    def perform_batch_learning(self, pattern_getter, max_iterations=100):
        """
        Batch learning until no pixel changes its class.

        Empty classes keep their center. Returns the sum of squared distances
        of every pixel to its center (Ward's criterion) from the last sweep.
        """
        k = len(self.classes)
        quality = 0.0

        for _ in range(max_iterations):
            pattern_getter.reset()
            sums = np.zeros((k, 3), dtype=np.float64)
            counts = np.zeros(k, dtype=np.int64)
            quality = 0.0

            for y, row in pattern_getter.rows():
                idx, _ = nearest(row, self.classes, self.p)
                pattern_getter.set_row_classes(y, idx)
                np.add.at(sums, idx, row)
                counts += np.bincount(idx, minlength=k)
                diff = row - self.classes[idx]
                quality += float((diff * diff).sum())

            if pattern_getter.exhausted:
                break

            filled = counts > 0
            self.classes[filled] = sums[filled] / counts[filled, None]

            if pattern_getter.number_of_changes() == 0:
                break

        return quality
