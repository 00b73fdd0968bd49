from prometheus_client import Counter, Histogram

COLLECTOR_REQUESTS = Counter("collector_requests_total", "Source collector requests", ["source"])
COLLECTOR_ERRORS = Counter("collector_errors_total", "Source collector errors", ["source"])
COLLECTOR_LATENCY = Histogram("collector_request_seconds", "Source collector latency", ["source"])

CIRCUIT_TRANSITIONS = Counter("circuit_transitions_total", "Circuit breaker state transitions", ["target", "state"])
RETRY_ATTEMPTS = Counter("retry_attempts_total", "Retries scheduled by the resilience wrapper", ["target", "error_class"])

CACHE_LOOKUPS = Counter("confidence_cache_lookups_total", "Confidence cache lookups", ["result"])
