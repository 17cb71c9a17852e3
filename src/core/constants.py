"""Core application constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000

# Security and redaction
REDACTED = "[REDACTED]"
DEFAULT_HSTS_MAX_AGE = 31536000  # 1 year in seconds

# Request limits
DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024  # 10 MiB

# Rate limiting
DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 15 * 60
DEFAULT_RATE_LIMIT_MAX_REQUESTS = 100

# Process exit codes
EXIT_CODE_CLEAN = 0
EXIT_CODE_RELEASE_FAILURE = 1
