"""Tests for progress observers and background jobs."""

import copy
import threading

import numpy as np
import pytest

from mapvector.concurrency import ProgressObserver


class CountingProgress(ProgressObserver):
    """Requests an interruption after a fixed number of progress updates."""

    def __init__(self, interrupt_after):
        self.interrupt_after = interrupt_after
        self.updates = 0
        self.polls_after_interrupt = 0
        self.percentage = 0
        self.interrupted = False

    def get_percentage(self):
        return self.percentage

    def set_percentage(self, percentage):
        self.percentage = percentage
        self.updates += 1
        if self.updates >= self.interrupt_after:
            self.interrupted = True

    def is_interruption_requested(self):
        if self.interrupted:
            self.polls_after_interrupt += 1
        return self.interrupted

    def request_interruption(self):
        self.interrupted = True


class TestProgress:
    """Tests for the progress observers."""

    def test_copies_share_state(self):
        """Test that a copied progress sees updates and interruptions."""
        from mapvector.concurrency import Progress

        progress = Progress()
        other = copy.copy(progress)
        progress.set_percentage(42)
        other.request_interruption()

        assert other.get_percentage() == 42
        assert progress.is_interruption_requested()
        assert copy.deepcopy(progress).is_interruption_requested()

    def test_transformed_progress_maps_range(self):
        """Test that a sub-range maps stage percentages onto the outer range."""
        from mapvector.concurrency import Progress, sub_progress

        outer = Progress()
        inner = sub_progress(outer, 20, 60)
        inner.set_percentage(50)
        assert outer.get_percentage() == 40
        inner.set_percentage(100)
        assert outer.get_percentage() == 60

    def test_transformed_progress_clamps(self):
        """Test that mapped values stay within 0..100."""
        from mapvector.concurrency import Progress, TransformedProgress

        outer = Progress()
        TransformedProgress(outer, offset=50, factor=1.0).set_percentage(90)
        assert outer.get_percentage() == 100
        TransformedProgress(outer, offset=-50, factor=1.0).set_percentage(10)
        assert outer.get_percentage() == 0

    def test_transformed_progress_delegates_interruption(self):
        """Test that interruption passes through a transformed observer."""
        from mapvector.concurrency import Progress, sub_progress

        outer = Progress()
        inner = sub_progress(outer, 0, 50)
        inner.request_interruption()
        assert outer.is_interruption_requested()
        assert inner.is_interruption_requested()

    def test_headless_never_interrupted(self):
        """Test that the headless observer ignores everything."""
        from mapvector.concurrency import HeadlessProgress

        progress = HeadlessProgress()
        progress.request_interruption()
        progress.set_percentage(80)
        assert not progress.is_interruption_requested()
        assert progress.get_percentage() == 0


class TestInterruption:
    """Tests for cooperative cancellation inside stages."""

    def test_filter_stops_within_a_row(self):
        """Test that the filter returns None right after interruption is requested."""
        from mapvector.preprocess.fir_filter import FIRFilter

        img = np.zeros((200, 50, 3), dtype=np.uint8)
        progress = CountingProgress(interrupt_after=10)
        result = FIRFilter(2).binomic().apply(img, progress=progress)

        assert result is None
        assert progress.updates == 10
        assert progress.polls_after_interrupt == 1

    def test_classify_image_interrupted(self, two_color_image):
        """Test that labelling stops when interrupted."""
        from mapvector.classify.palette import classify_image
        from mapvector.models import Palette, PaletteEntry

        palette = Palette(entries=[PaletteEntry(color=[0, 0, 0], label="ink")])
        progress = CountingProgress(interrupt_after=3)
        assert classify_image(two_color_image, palette, progress=progress) is None
        assert progress.updates == 3


class TestJob:
    """Tests for background jobs."""

    def test_job_result(self):
        """Test that a job runs the function with a progress and returns its value."""
        from mapvector.concurrency import run_job

        def work(x, progress=None):
            progress.set_percentage(100)
            return x * 2

        job = run_job(work, 21)
        assert job.result(timeout=10) == 42
        assert job.done()
        assert job.percentage == 100

    def test_job_interruption(self):
        """Test that an interrupted job returns None."""
        from mapvector.concurrency import run_job

        started = threading.Event()

        def work(progress=None):
            started.set()
            while not progress.is_interruption_requested():
                progress.set_percentage(10)
                threading.Event().wait(0.001)
            return None

        job = run_job(work)
        assert started.wait(timeout=10)
        job.request_interruption()
        assert job.result(timeout=10) is None
        assert job.progress.is_interruption_requested()

    def test_job_attributes_read_only(self):
        """Test that job attributes cannot be reassigned."""
        from mapvector.concurrency import run_job

        job = run_job(lambda progress=None: 1)
        with pytest.raises(AttributeError):
            job.progress = None
        with pytest.raises(AttributeError):
            job.anything = 1
        job.result(timeout=10)

    def test_job_copy_shares_state(self):
        """Test that a copied job polls the same progress and result."""
        from mapvector.concurrency import run_job

        release = threading.Event()

        def work(progress=None):
            progress.set_percentage(30)
            release.wait(timeout=10)
            return "done"

        job = run_job(work)
        twin = copy.copy(job)
        twin.request_interruption()
        release.set()

        assert job.progress.is_interruption_requested()
        assert twin.result(timeout=10) == "done"
        assert job.result(timeout=10) == "done"
        assert twin.percentage == job.percentage

    def test_custom_executor(self):
        """Test that a job can run on a caller supplied executor."""
        from concurrent.futures import ThreadPoolExecutor
        from mapvector.concurrency import run_job

        with ThreadPoolExecutor(max_workers=1) as executor:
            job = run_job(lambda value, progress=None: value + 1, 1, executor=executor)
            assert job.result(timeout=10) == 2
