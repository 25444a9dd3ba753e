"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from job_engine.constants import (
    METRIC_JOB_DURATION,
    METRIC_JOB_RETRIES,
    METRIC_JOBS_CLAIMED,
    METRIC_JOBS_CREATED,
    METRIC_JOBS_RESOLVED,
    METRIC_JOBS_SWEPT,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job engine.

    Collects metrics for:
    - Job creation and claims
    - Terminal resolutions and retries
    - Job execution duration
    - Stale claim sweeps
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.jobs_created = Counter(
            METRIC_JOBS_CREATED,
            "Total number of jobs created",
            ["type"],
            registry=self._registry,
        )

        self.jobs_claimed = Counter(
            METRIC_JOBS_CLAIMED,
            "Total number of jobs claimed by workers",
            ["type"],
            registry=self._registry,
        )

        # Terminal outcomes: completed, failed, cancelled
        self.jobs_resolved = Counter(
            METRIC_JOBS_RESOLVED,
            "Total number of jobs reaching a terminal status",
            ["type", "status"],
            registry=self._registry,
        )

        self.job_retries = Counter(
            METRIC_JOB_RETRIES,
            "Total number of failures that re-queued a job",
            ["type"],
            registry=self._registry,
        )

        self.jobs_swept = Counter(
            METRIC_JOBS_SWEPT,
            "Total number of stale jobs returned to pending",
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration (started to completed) in seconds",
            ["type"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0),
            registry=self._registry,
        )

    def record_jobs_created(self, job_type: str, count: int = 1) -> None:
        """Record job creation."""
        self.jobs_created.labels(type=job_type).inc(count)

    def record_job_claimed(self, job_type: str) -> None:
        """Record a successful claim."""
        self.jobs_claimed.labels(type=job_type).inc()

    def record_job_resolved(
        self,
        job_type: str,
        status: str,
        duration_seconds: float | None = None,
    ) -> None:
        """Record a job reaching a terminal status."""
        self.jobs_resolved.labels(type=job_type, status=status).inc()
        if duration_seconds is not None:
            self.job_duration.labels(type=job_type).observe(duration_seconds)

    def record_job_retried(self, job_type: str) -> None:
        """Record a failure that re-queued the job."""
        self.job_retries.labels(type=job_type).inc()

    def record_jobs_swept(self, count: int) -> None:
        """Record jobs recovered by a sweep."""
        self.jobs_swept.inc(count)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
