"""
Latency Metrics
===============
Timing and aggregation of ledger calls:
- Per-operation elapsed latency of payment submissions
- Thread-safe collection across worker threads
- Rich summary table at the end of a run
"""

import json
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .utils import get_logger

logger = get_logger(__name__)


@dataclass
class PerformanceMetrics:
    """Container for the timing of a single operation."""
    operation: str
    start_time: float
    end_time: Optional[float] = None
    duration_ms: Optional[float] = None
    success: bool = False
    error: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None

    def finalize(self, success: bool = True, error: Optional[str] = None):
        """Finalize the metrics with result."""
        self.end_time = time.time()
        self.duration_ms = (self.end_time - self.start_time) * 1000
        self.success = success
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'start_time': datetime.fromtimestamp(self.start_time).isoformat(),
            'end_time': datetime.fromtimestamp(self.end_time).isoformat() if self.end_time else None,
            'duration_ms': round(self.duration_ms, 2) if self.duration_ms is not None else None,
            'success': self.success,
            'error': self.error,
            'extra': self.extra or {}
        }


class MetricsCollector:
    """Collects and aggregates performance metrics."""

    def __init__(self):
        self.metrics: List[PerformanceMetrics] = []
        self._lock = threading.Lock()
        self._operation_counts: Dict[str, Dict[str, int]] = {}
        self._operation_times: Dict[str, List[float]] = {}

    def add_metric(self, metric: PerformanceMetrics):
        """Add a metric to the collector."""
        with self._lock:
            self.metrics.append(metric)

            op = metric.operation
            counts = self._operation_counts.setdefault(op, {'total': 0, 'success': 0, 'failure': 0})
            counts['total'] += 1
            if metric.success:
                counts['success'] += 1
            else:
                counts['failure'] += 1

            if metric.duration_ms is not None:
                self._operation_times.setdefault(op, []).append(metric.duration_ms)

    def get_summary(self) -> Dict[str, Any]:
        """Get summary statistics."""
        with self._lock:
            summary = {
                'total_operations': len(self.metrics),
                'operations': {},
                'overall_success_rate': 0,
            }

            total_success = 0
            for op, counts in self._operation_counts.items():
                times = self._operation_times.get(op, [])
                summary['operations'][op] = {
                    'total': counts['total'],
                    'success': counts['success'],
                    'failure': counts['failure'],
                    'avg_duration_ms': round(sum(times) / len(times), 2) if times else 0,
                    'min_duration_ms': round(min(times), 2) if times else 0,
                    'max_duration_ms': round(max(times), 2) if times else 0,
                }
                total_success += counts['success']

            if self.metrics:
                summary['overall_success_rate'] = round(total_success / len(self.metrics) * 100, 2)

            return summary

    def save_to_file(self, filepath: str):
        """Save all metrics to a JSON file."""
        summary = self.get_summary()
        with self._lock:
            data = {
                'summary': summary,
                'metrics': [m.to_dict() for m in self.metrics]
            }
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(data, f, indent=2)

    class TimedOperation:
        """Context manager for timing operations and collecting metrics."""

        def __init__(self, collector: 'MetricsCollector', operation: str,
                     extra: Optional[Dict[str, Any]] = None):
            self.collector = collector
            self.operation = operation
            self.extra = extra or {}
            self.metric: Optional[PerformanceMetrics] = None

        def __enter__(self) -> PerformanceMetrics:
            self.metric = PerformanceMetrics(
                operation=self.operation,
                start_time=time.time(),
                extra=self.extra
            )
            return self.metric

        def __exit__(self, exc_type, exc_val, exc_tb):
            if exc_type:
                self.metric.finalize(success=False, error=str(exc_val))
                logger.debug(f"{self.operation} failed after {self.metric.duration_ms:.0f} ms: {exc_val}")
            elif self.metric.end_time is None:
                self.metric.finalize(success=True)
            self.collector.add_metric(self.metric)
            return False  # Don't suppress exceptions

    def timed_operation(self, operation: str, extra: Optional[Dict[str, Any]] = None):
        """Create a context manager for timing an operation.

        The body may call ``metric.finalize(success=False, error=...)`` itself
        to record a failure that did not raise.
        """
        return self.TimedOperation(self, operation, extra)

    def print_summary(self, console: Optional[Console] = None):
        """Print a formatted metrics summary to console."""
        summary = self.get_summary()
        if not summary['operations']:
            return

        console = console or Console()

        table = Table(title="Ledger Call Latency")
        table.add_column("Operation", style="cyan")
        table.add_column("Total", justify="right")
        table.add_column("Success", justify="right", style="green")
        table.add_column("Failure", justify="right", style="red")
        table.add_column("Avg ms", justify="right")
        table.add_column("Min ms", justify="right")
        table.add_column("Max ms", justify="right")

        for op, stats in sorted(summary['operations'].items()):
            table.add_row(
                op,
                str(stats['total']),
                str(stats['success']),
                str(stats['failure']),
                f"{stats['avg_duration_ms']:.0f}",
                f"{stats['min_duration_ms']:.0f}",
                f"{stats['max_duration_ms']:.0f}",
            )

        console.print(Panel(
            f"Total Operations: {summary['total_operations']}\n"
            f"Overall Success Rate: {summary['overall_success_rate']:.1f}%",
            title="Summary",
            border_style="blue"
        ))
        console.print(table)
