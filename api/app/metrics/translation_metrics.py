"""Prometheus metrics for translation orchestration (providers, cache, queue)."""

from prometheus_client import Counter, Gauge, Histogram

language_detection_total = Counter(
    "translation_language_detection_total",
    "Total language detection outcomes by backend/result",
    ["backend", "result"],
)

language_detection_confidence = Histogram(
    "translation_language_detection_confidence",
    "Confidence of language detection outcomes",
    ["backend"],
    buckets=(0.0, 0.1, 0.3, 0.5, 0.7, 0.8, 0.9, 1.0),
)

provider_requests_total = Counter(
    "translation_provider_requests_total",
    "Provider translate attempts by outcome",
    ["provider", "result"],  # result: success, failure, timeout, skipped
)

provider_request_duration_seconds = Histogram(
    "translation_provider_request_duration_seconds",
    "Duration of successful provider translate calls",
    ["provider"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)

provider_circuit_state = Gauge(
    "translation_provider_circuit_state",
    "Circuit breaker state per provider (0=closed, 1=open, 2=half_open)",
    ["provider"],
)

provider_health_checks_total = Counter(
    "translation_provider_health_checks_total",
    "Background provider health probes by outcome",
    ["provider", "result"],
)

translation_fallback_exhausted_total = Counter(
    "translation_fallback_exhausted_total",
    "Requests for which every provider failed",
    ["resolution"],  # resolution: cache, error
)

translation_cache_lookups_total = Counter(
    "translation_cache_lookups_total",
    "Translation cache lookups by tier and outcome",
    ["tier", "result"],
)

translation_cache_errors_total = Counter(
    "translation_cache_errors_total",
    "Swallowed translation cache backend errors",
    ["operation"],
)

offline_queue_size = Gauge(
    "translation_offline_queue_size",
    "Number of requests waiting in the offline queue",
)

offline_queue_dropped_total = Counter(
    "translation_offline_queue_dropped_total",
    "Queued requests dropped because the offline queue was full",
)

translation_operation_duration_seconds = Histogram(
    "translation_operation_duration_seconds",
    "Duration of translation service operations",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)

translation_errors_total = Counter(
    "translation_errors_total",
    "Translation errors by operation and error type",
    ["operation", "error_type"],
)

batch_requests_total = Counter(
    "translation_batch_requests_total",
    "Items processed by batch translation by outcome",
    ["result"],  # result: cached, translated, degraded
)
