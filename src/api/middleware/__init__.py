"""Stages of the request pipeline.

Requests pass through the stages in this order (responses in reverse):

1. **RequestContextMiddleware**: request context, correlation ID, shutdown
   admission, terminal event (metrics finish and access log)
2. **SecurityHeadersMiddleware**: security response headers
3. **CORSMiddleware** (Starlette): origin policy
4. **RateLimitMiddleware**: per-client admission under ``/api``
5. **BodyLimitMiddleware**: body size ceiling and decoding
6. **MetricsMiddleware**: metrics start
7. **ErrorInterceptionMiddleware**: renders uncaught handler exceptions
"""
