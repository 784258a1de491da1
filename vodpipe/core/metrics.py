"""Prometheus metrics for the upload, transcode and streaming pipeline."""

import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
)

REGISTRY = CollectorRegistry()

# Celery prefork workers and gunicorn both need the multiprocess collector
if "PROMETHEUS_MULTIPROC_DIR" in os.environ or "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "vodpipe_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Upload Metrics
# ============================================
CHUNKS_RECEIVED_TOTAL = Counter(
    "chunks_received_total",
    "Chunk files stored",
    registry=REGISTRY,
)

CHUNK_BYTES_RECEIVED_TOTAL = Counter(
    "chunk_bytes_received_total",
    "Bytes stored as chunk files",
    registry=REGISTRY,
)

MERGES_TOTAL = Counter(
    "merges_total",
    "Chunk merges by result",
    ["result"],
    registry=REGISTRY,
)


# ============================================
# Transcode Metrics
# ============================================
TRANSCODE_JOBS_TOTAL = Counter(
    "transcode_jobs_total",
    "Transcode jobs by terminal result",
    ["result"],
    registry=REGISTRY,
)

TRANSCODE_JOBS_IN_PROGRESS = Gauge(
    "transcode_jobs_in_progress",
    "Transcode jobs currently running",
    registry=REGISTRY,
)

VARIANT_ENCODE_DURATION_SECONDS = Histogram(
    "variant_encode_duration_seconds",
    "Wall time of one variant encode",
    ["variant"],
    buckets=[1, 5, 15, 30, 60, 120, 300, 600, 1200, 3600],
    registry=REGISTRY,
)

VARIANT_ENCODE_FAILURES_TOTAL = Counter(
    "variant_encode_failures_total",
    "Failed variant encodes",
    ["variant"],
    registry=REGISTRY,
)


# ============================================
# Streaming Metrics
# ============================================
STREAM_REQUESTS_TOTAL = Counter(
    "stream_requests_total",
    "Manifest and segment requests",
    ["kind", "status_code"],
    registry=REGISTRY,
)

PATH_TRAVERSAL_REJECTIONS_TOTAL = Counter(
    "path_traversal_rejections_total",
    "Stream requests rejected for escaping the video root",
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
