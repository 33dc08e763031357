"""
Per-frame stage timing.

FrameTimer measures named pipeline stages (normalize, convert, lifecycle,
grouping, validate) of one frame. Nested blocks are recorded with a dotted
name ("convert.calibrate").
"""

import time
from contextlib import contextmanager
from typing import Dict, List
import threading


class FrameTimer:
    """Thread-safe stage timer. Disabled timers cost one branch per block."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self._local = threading.local()

    def _get_stack(self) -> List[str]:
        """Get the current thread's stage-name stack."""
        if not hasattr(self._local, 'stack'):
            self._local.stack = []
        return self._local.stack

    def _get_results(self) -> Dict[str, float]:
        """Get the current thread's timings (ms)."""
        if not hasattr(self._local, 'results'):
            self._local.results = {}
        return self._local.results

    @contextmanager
    def time_block(self, name: str):
        """Context manager for timing one stage.

        Args:
            name: Stage name

        Yields:
            None
        """
        if not self.enabled:
            yield
            return

        stack = self._get_stack()
        results = self._get_results()

        stack.append(name)
        key = ".".join(stack)
        start_time = time.perf_counter()

        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start_time) * 1000.0
            stack.pop()
            results[key] = results.get(key, 0.0) + elapsed_ms

    def collect(self) -> Dict[str, float]:
        """Return and clear the timings recorded since the last collect()."""
        results = dict(self._get_results())
        self._local.results = {}
        return results
