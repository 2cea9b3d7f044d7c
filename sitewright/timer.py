"""
Per-operation timing collected during a build.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class TimedOperation:
    name: str
    duration: float
    details: Optional[str] = None


@dataclass
class BuildTimings:
    operations: List[TimedOperation] = field(default_factory=list)
    total: float = 0.0


class PerformanceTimer:
    def __init__(self, enabled=True):
        self.enabled = enabled
        self.operations = []
        self._started = time.perf_counter()

    def time(self, name, func, details=None):
        """Run func() and record how long it took."""
        if not self.enabled:
            return func()
        start = time.perf_counter()
        try:
            return func()
        finally:
            self.operations.append(TimedOperation(name, time.perf_counter() - start, details))

    def get_timings(self) -> BuildTimings:
        return BuildTimings(list(self.operations), time.perf_counter() - self._started)

    def most_costly(self, count=5) -> List[TimedOperation]:
        return sorted(self.operations, key=lambda op: op.duration, reverse=True)[:count]

    def summary(self) -> Dict[str, Any]:
        timings = self.get_timings()
        return {
            'total': round(timings.total, 3),
            'operations': [
                {'name': op.name, 'duration': round(op.duration, 3), 'details': op.details}
                for op in timings.operations
            ],
        }
