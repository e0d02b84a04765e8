"""Application metrics using the Prometheus client library.

All metrics are defined here so there is a single inventory of what the
service measures; the owning modules import and increment them.

  HTTP (MetricsMiddleware):
    http_requests_total, http_request_duration_seconds, http_active_requests

  Domain:
    video_progress_writes_total  : result=ok|rejected|error
    quiz_grades_total            : result=graded|not_found|provider_error
    crm_sync_total               : kind=enrollment|completed, result=...
    cache_operations_total       : operation=hit|miss
    task_queue_depth             : per queue, sampled by the worker

CRM sync runs outside the request (see worker.py), so crm_sync_total is
the only place its failures show up apart from the worker logs.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Domain metrics
# ---------------------------------------------------------------------------

VIDEO_PROGRESS_WRITES = Counter(
    "video_progress_writes_total",
    "Video progress submissions by outcome",
    ["result"],  # ok | rejected (bad video id) | error (store returned Err)
)

QUIZ_GRADES = Counter(
    "quiz_grades_total",
    "Quiz submissions by outcome",
    ["result"],
)

CRM_SYNC = Counter(
    "crm_sync_total",
    "CRM course-list sync attempts by list kind and outcome",
    ["kind", "result"],  # result: updated | skipped | failed
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)
