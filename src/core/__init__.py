"""Core package for shared application functionality.

- **config**: Configuration resolved once at startup
- **context**: Per-request context and its terminal event
- **exceptions**: Structured exception hierarchy with error codes
- **error_context**: Sensitive data sanitization for safe logging
- **logging**: Loguru setup and standard logging interception
- **observability**: Distributed tracing with OpenTelemetry
- **metrics**: Process-wide metrics registry
- **rate_limit**: Per-client fixed-window admission control
- **shutdown**: Draining and store release on termination
"""
