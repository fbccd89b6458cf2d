"""
Metrics Collection for Work Order Parts Tracking

In-process counters for:
- write operations: accepted vs rejected, rejections per error code
- report verdicts: how often each report status is produced
- closeout activities: started, completed, failed
- processing times: average and p95 per stage

Exposed as a JSON summary on GET /metrics. Nothing is persisted; counters
reset with the process.
"""

import math
from collections import Counter, defaultdict, deque
from threading import Lock
from typing import Any, Deque, Dict, Optional


MAX_SAMPLES = 1000


# =============================================================================
# Building Blocks
# =============================================================================

class OutcomeCounter:
    """Per-name tallies for a fixed set of outcomes (e.g. accepted/rejected)."""

    def __init__(self, *outcomes: str):
        self.outcomes = outcomes
        self.totals: Counter = Counter({o: 0 for o in outcomes})
        self.by_name: Dict[str, Counter] = defaultdict(lambda: Counter({o: 0 for o in outcomes}))

    def add(self, name: str, outcome: str):
        self.totals[outcome] += 1
        self.by_name[name][outcome] += 1

    def snapshot(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {o: self.totals[o] for o in self.outcomes}
        data["by_name"] = {name: dict(c) for name, c in self.by_name.items()}
        return data


class TimingWindow:
    """Last MAX_SAMPLES durations, overall and per stage."""

    def __init__(self, max_samples: int = MAX_SAMPLES):
        self.max_samples = max_samples
        self.overall: Deque[float] = deque(maxlen=max_samples)
        self.by_stage: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=self.max_samples))

    def add(self, duration_ms: float, stage: Optional[str] = None):
        self.overall.append(duration_ms)
        if stage:
            self.by_stage[stage].append(duration_ms)

    def samples(self, stage: Optional[str] = None) -> Deque[float]:
        if stage is None:
            return self.overall
        return self.by_stage.get(stage, deque())

    def stats(self, stage: Optional[str] = None) -> Dict[str, float]:
        samples = sorted(self.samples(stage))
        if not samples:
            return {"average_ms": 0.0, "p95_ms": 0.0, "sample_count": 0}
        # nearest-rank percentile
        rank = max(1, math.ceil(0.95 * len(samples)))
        return {
            "average_ms": sum(samples) / len(samples),
            "p95_ms": samples[rank - 1],
            "sample_count": len(samples),
        }


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_operation("add_installations", accepted=False, error_code="SERIAL_ALREADY_INSTALLED")
        metrics.record_report_status("NEEDS_QA")
    """

    _instance: Optional["MetricsCollector"] = None
    _instance_lock = Lock()

    def __init__(self):
        self._lock = Lock()
        self.operations = OutcomeCounter("accepted", "rejected")
        self.rejections_by_code: Counter = Counter()
        self.report_statuses: Counter = Counter()
        self.activities = OutcomeCounter("started", "completed", "failed")
        self.activity_failures_by_code: Counter = Counter()
        self.timings = TimingWindow()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls):
        """Drop the singleton so the next instance() starts from zero."""
        with cls._instance_lock:
            cls._instance = None

    # -- operations -----------------------------------------------------------

    def record_operation(
        self,
        operation: str,
        accepted: bool,
        error_code: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ):
        """Count one service write as accepted or rejected."""
        with self._lock:
            self.operations.add(operation, "accepted" if accepted else "rejected")
            if not accepted and error_code:
                self.rejections_by_code[error_code] += 1
            if duration_ms is not None:
                self.timings.add(duration_ms, f"operation.{operation}")

    def record_report_status(self, status: str):
        with self._lock:
            self.report_statuses[status] += 1

    # -- activities -----------------------------------------------------------

    def record_activity_started(self, activity_name: str):
        with self._lock:
            self.activities.add(activity_name, "started")

    def record_activity_completed(self, activity_name: str, duration_ms: Optional[float] = None):
        with self._lock:
            self.activities.add(activity_name, "completed")
            if duration_ms is not None:
                self.timings.add(duration_ms, f"activity.{activity_name}")

    def record_activity_failed(self, activity_name: str, error: Optional[str] = None):
        with self._lock:
            self.activities.add(activity_name, "failed")
            if error:
                self.activity_failures_by_code[error] += 1

    # -- timings --------------------------------------------------------------

    def record_processing_time(self, stage: str, duration_ms: float):
        with self._lock:
            self.timings.add(duration_ms, stage)

    def get_timing_stats(self, stage: Optional[str] = None) -> Dict[str, float]:
        with self._lock:
            return self.timings.stats(stage)

    # -- summary --------------------------------------------------------------

    def get_summary(self) -> Dict[str, Any]:
        """JSON-ready snapshot of every counter."""
        with self._lock:
            operations = self.operations.snapshot()
            activities = self.activities.snapshot()
            overall = self.timings.stats()
            return {
                "operations": {
                    "accepted": operations["accepted"],
                    "rejected": operations["rejected"],
                    "by_operation": operations["by_name"],
                    "rejections_by_code": dict(self.rejections_by_code),
                },
                "report_statuses": dict(self.report_statuses),
                "activities": {
                    **activities,
                    "failures_by_code": dict(self.activity_failures_by_code),
                },
                "timings": {
                    "overall": {"average_ms": overall["average_ms"], "p95_ms": overall["p95_ms"]},
                    "by_stage": {
                        stage: {k: v for k, v in self.timings.stats(stage).items() if k != "sample_count"}
                        for stage in self.timings.by_stage
                    },
                },
            }


# =============================================================================
# Module-level shortcuts
# =============================================================================

def get_metrics() -> MetricsCollector:
    return MetricsCollector.instance()


def record_operation(operation: str, accepted: bool, error_code: Optional[str] = None, duration_ms: Optional[float] = None):
    get_metrics().record_operation(operation, accepted, error_code, duration_ms)


def record_report_status(status: str):
    get_metrics().record_report_status(status)


def record_activity_started(activity_name: str):
    get_metrics().record_activity_started(activity_name)


def record_activity_completed(activity_name: str, duration_ms: Optional[float] = None):
    get_metrics().record_activity_completed(activity_name, duration_ms)


def record_activity_failed(activity_name: str, error: Optional[str] = None):
    get_metrics().record_activity_failed(activity_name, error)


def record_processing_time(stage: str, duration_ms: float):
    get_metrics().record_processing_time(stage, duration_ms)
