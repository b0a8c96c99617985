"""
Profiling utilities for person-store.

Measures each workflow step so the run summary can report where time went:
- Wall-clock time (perf_counter)
- Resident memory (RSS via psutil) once the block has finished

Usage example:
    from person_store.utils.profiler import profile_block

    with profile_block("retrieve") as stats:
        session.find(1)

    print(stats.duration_seconds, stats.rss_bytes)
"""

from __future__ import annotations

import contextlib
import time
from dataclasses import dataclass, field
from typing import Generator, Optional

import psutil


@dataclass
class ProfileStats:
    """
    Container for profiling measurements.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    rss_bytes: Optional[int] = field(default=None)


@contextlib.contextmanager
def profile_block(label: str) -> Generator[ProfileStats, None, None]:
    """
    Context manager to profile a block of code.

    The stats are finalized even when the block raises, so a failed step still
    reports how long it ran.

    Parameters
    ----------
    label : str
        Human-friendly label for the profiled block.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process()
    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts
        stats.rss_bytes = process.memory_info().rss


__all__ = ["ProfileStats", "profile_block"]
