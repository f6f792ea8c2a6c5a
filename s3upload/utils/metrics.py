"""
Prometheus metrics for upload sessions.

Metrics Provided:
    - s3upload_sessions_total: Upload sessions by outcome
    - s3upload_files_total: Uploaded files by status
    - s3upload_bytes_total: Bytes uploaded
    - s3upload_batch_duration_seconds: Duration of one directory batch
    - s3upload_store_errors_total: Object-store errors by operation

Metrics are collected in-process; hosts that run long enough to be scraped
can expose them with prometheus_client.start_http_server().

Usage:
    from s3upload.utils.metrics import get_metrics

    metrics = get_metrics()
    with metrics.track_batch():
        store.batch_put_objects(...)
"""

import os
from contextlib import nullcontext
from typing import Any, ContextManager, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

from s3upload.utils.logging import get_logger

logger = get_logger(__name__)


class UploadMetrics:
    """
    Collectors for the upload pipeline.

    Example:
        >>> metrics = UploadMetrics(registry=CollectorRegistry())
        >>> metrics.record_batch_success(files=2, bytes_uploaded=4096)
    """

    def __init__(self, enabled: bool = True, registry: Optional[CollectorRegistry] = None) -> None:
        """
        Initialize collectors.

        Args:
            enabled: Whether metrics are collected at all
            registry: Prometheus registry (default registry if None)
        """
        self.enabled = enabled
        self.registry = registry if registry is not None else REGISTRY

        if not self.enabled:
            logger.debug("Metrics collection disabled")
            return

        self.sessions = Counter(
            name="s3upload_sessions_total",
            documentation="Upload sessions by outcome",
            labelnames=["outcome"],  # success, partial, failure, aborted
            registry=self.registry,
        )
        self.files = Counter(
            name="s3upload_files_total",
            documentation="Files processed by status",
            labelnames=["status"],  # uploaded, failed, unresolved
            registry=self.registry,
        )
        self.bytes_uploaded = Counter(
            name="s3upload_bytes_total",
            documentation="Bytes uploaded to the object store",
            registry=self.registry,
        )
        self.batch_duration = Histogram(
            name="s3upload_batch_duration_seconds",
            documentation="Time spent uploading one directory group",
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
            registry=self.registry,
        )
        self.store_errors = Counter(
            name="s3upload_store_errors_total",
            documentation="Object-store errors",
            labelnames=["operation", "error_type"],  # operation: list/get/put
            registry=self.registry,
        )

    def track_batch(self) -> ContextManager[Any]:
        """Context manager timing one batch transfer."""
        if not self.enabled:
            return nullcontext()
        return self.batch_duration.time()

    def record_session(self, outcome: str) -> None:
        if self.enabled:
            self.sessions.labels(outcome=outcome).inc()

    def record_batch_success(self, files: int, bytes_uploaded: int) -> None:
        if not self.enabled:
            return
        self.files.labels(status="uploaded").inc(files)
        self.bytes_uploaded.inc(bytes_uploaded)

    def record_batch_failure(self, files: int) -> None:
        if self.enabled:
            self.files.labels(status="failed").inc(files)

    def record_unresolved(self, files: int = 1) -> None:
        if self.enabled:
            self.files.labels(status="unresolved").inc(files)

    def record_store_error(self, operation: str, error_type: str) -> None:
        if self.enabled:
            self.store_errors.labels(operation=operation, error_type=error_type).inc()


_metrics_instance: Optional[UploadMetrics] = None


def get_metrics() -> UploadMetrics:
    """
    Global metrics instance, enabled unless METRICS_ENABLED=false.

    Returns:
        Shared UploadMetrics
    """
    global _metrics_instance

    if _metrics_instance is None:
        enabled = os.getenv("METRICS_ENABLED", "true").lower() == "true"
        _metrics_instance = UploadMetrics(enabled=enabled)

    return _metrics_instance
