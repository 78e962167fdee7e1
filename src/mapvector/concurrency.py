"""
Progress reporting and cancellable background jobs.

Every long running stage takes a ProgressObserver: it reports a percentage
and polls for an interruption request at row, pass or polygon granularity,
returning None once one is seen.
"""

import copy
import os
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor


class ProgressObserver(ABC):
    """Receiver of progress updates that can also ask the worker to stop."""

    @abstractmethod
    def get_percentage(self):
        """Last reported percentage, 0..100."""

    @abstractmethod
    def set_percentage(self, percentage):
        """Report progress, 0..100."""

    @abstractmethod
    def is_interruption_requested(self):
        """True once someone asked the worker to stop."""

    @abstractmethod
    def request_interruption(self):
        """Ask the worker to stop at its next check."""


class HeadlessProgress(ProgressObserver):
    """Observer that ignores progress and is never interrupted."""

    def get_percentage(self):
        return 0

    def set_percentage(self, percentage):
        pass

    def is_interruption_requested(self):
        return False

    def request_interruption(self):
        pass


class _ProgressState:
    __slots__ = ("percentage", "cancelled")

    def __init__(self):
        self.percentage = 0
        self.cancelled = threading.Event()


class Progress(ProgressObserver):
    """
    Observer whose copies share one state.

    The worker thread writes the percentage, any other thread may poll it or
    request interruption through its own copy.
    """

    def __init__(self, _state=None):
        self._state = _state or _ProgressState()

    def __copy__(self):
        return Progress(self._state)

    def __deepcopy__(self, memo):
        return Progress(self._state)

    def get_percentage(self):
        return self._state.percentage

    def set_percentage(self, percentage):
        self._state.percentage = int(percentage)

    def is_interruption_requested(self):
        return self._state.cancelled.is_set()

    def request_interruption(self):
        self._state.cancelled.set()


class TransformedProgress(ProgressObserver):
    """
    Maps a stage's 0..100 onto a sub-range of an outer observer.

    The outer observer receives clamp(round(offset + factor * p), 0, 100).
    """

    def __init__(self, observer, offset=0.0, factor=1.0):
        self.observer = observer if observer is not None else HeadlessProgress()
        self.offset = offset
        self.factor = factor

    def get_percentage(self):
        return self.observer.get_percentage()

    def set_percentage(self, percentage):
        value = int(round(self.offset + self.factor * percentage))
        self.observer.set_percentage(min(100, max(0, value)))

    def is_interruption_requested(self):
        return self.observer.is_interruption_requested()

    def request_interruption(self):
        self.observer.request_interruption()


def sub_progress(observer, start, end):
    """Observer covering [start, end] of the outer observer's range."""
    return TransformedProgress(observer, offset=start, factor=(end - start) / 100.0)


def ensure_progress(observer):
    return observer if observer is not None else HeadlessProgress()


class Job:
    """
    Handle on a function running in a worker thread.

    Copies share the same future and progress. Attributes cannot be
    reassigned after construction.
    """

    __slots__ = ("_future", "_progress")

    def __init__(self, future, progress):
        object.__setattr__(self, "_future", future)
        object.__setattr__(self, "_progress", progress)

    def __setattr__(self, name, value):
        raise AttributeError(f"Job attribute {name!r} is read-only")

    def __delattr__(self, name):
        raise AttributeError(f"Job attribute {name!r} is read-only")

    def __copy__(self):
        return Job(self._future, copy.copy(self._progress))

    @property
    def progress(self):
        return self._progress

    @property
    def percentage(self):
        return self._progress.get_percentage()

    def request_interruption(self):
        self._progress.request_interruption()

    def done(self):
        return self._future.done()

    def result(self, timeout=None):
        """Wait for the job. None means the job was interrupted."""
        return self._future.result(timeout=timeout)


_executor = None
_executor_lock = threading.Lock()


def _default_executor():
    global _executor
    with _executor_lock:
        if _executor is None:
            workers = max(1, (os.cpu_count() or 2) - 1)
            _executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mapvector")
        return _executor


def run_job(func, *args, executor=None, **kwargs):
    """
    Submit func(*args, progress=<Progress>, **kwargs) to a thread pool.

    Returns a Job whose progress is the one handed to func.
    """
    progress = Progress()
    pool = executor or _default_executor()
    future = pool.submit(func, *args, progress=progress, **kwargs)
    return Job(future, progress)
