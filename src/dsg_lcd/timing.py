"""Named, timestamped elapsed-time measurements for offline profiling."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class TimingSample:
    """A single elapsed-time measurement.

    Attributes:
        timestamp: Timestamp (ns) of the data being processed, if known
        elapsed_ms: Wall-clock duration in milliseconds
    """

    timestamp: int | None
    elapsed_ms: float


class ElapsedTimeRecorder:
    """Collects timing samples grouped by timer name."""

    def __init__(self) -> None:
        self._samples: dict[str, list[TimingSample]] = {}
        self._lock = threading.Lock()

    def add(self, name: str, timestamp: int | None, elapsed_ms: float) -> None:
        with self._lock:
            self._samples.setdefault(name, []).append(
                TimingSample(timestamp=timestamp, elapsed_ms=elapsed_ms)
            )

    def samples(self, name: str) -> list[TimingSample]:
        """Return a copy of the samples recorded under ``name``."""
        with self._lock:
            return list(self._samples.get(name, []))

    def count(self, name: str) -> int:
        with self._lock:
            return len(self._samples.get(name, []))

    def mean_ms(self, name: str) -> float:
        """Mean elapsed time in milliseconds (NaN if no samples)."""
        samples = self.samples(name)
        if not samples:
            return float("nan")
        return float(np.mean([s.elapsed_ms for s in samples]))

    @property
    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._samples)

    def summary(self) -> str:
        """One line per timer: name, count and mean time."""
        lines = []
        for name in self.names:
            lines.append(
                f"{name}: n={self.count(name)}, mean={self.mean_ms(name):.3f} ms"
            )
        return "\n".join(lines)


class ScopedTimer:
    """Context manager recording the duration of its block.

    Example:
        with ScopedTimer("lcd/places_registration", timestamp, recorder):
            ...
    """

    def __init__(
        self,
        name: str,
        timestamp: int | None = None,
        recorder: ElapsedTimeRecorder | None = None,
    ) -> None:
        self.name = name
        self.timestamp = timestamp
        self._recorder = recorder
        self._start: float | None = None
        self.elapsed_ms = 0.0

    def __enter__(self) -> ScopedTimer:
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000
        logger.debug(f"{self.name} @ {self.timestamp}: {self.elapsed_ms:.3f} ms")
        if self._recorder is not None:
            self._recorder.add(self.name, self.timestamp, self.elapsed_ms)
