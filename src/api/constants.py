"""API-related constants."""

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"
RETRY_AFTER_HEADER = "Retry-After"
RATE_LIMIT_LIMIT_HEADER = "X-RateLimit-Limit"
RATE_LIMIT_REMAINING_HEADER = "X-RateLimit-Remaining"
RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset"

# Content types
JSON_CONTENT_TYPES = {"application/json"}
FORM_CONTENT_TYPES = {"application/x-www-form-urlencoded"}

# Error bodies
ROUTE_NOT_FOUND = "Route not found"
INTERNAL_SERVER_ERROR = "Internal server error"
GENERIC_ERROR_MESSAGE = "Something went wrong"
INVALID_JSON_BODY = "Invalid JSON body"
METRICS_UNAVAILABLE = "Failed to collect metrics"

# Business operation labels
OPERATION_ERROR_HANDLING = "error_handling"
OPERATION_DATA_FETCH = "data_fetch"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"

# Paths never written to the access log or traced
OPERATIONAL_PATHS = frozenset({"/health", "/metrics"})
