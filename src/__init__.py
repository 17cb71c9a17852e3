"""Vigil - an HTTP service shell for small backends.

Vigil bundles the parts every small backend repeats: a fixed-order request
pipeline (security headers, origin policy, rate limiting, body limits,
metrics, error interception), a health endpoint, a Prometheus scrape endpoint,
backing store connectivity tracking and a graceful shutdown sequence.

Architecture Overview:
- **API Layer**: FastAPI application, request pipeline and routes
- **Core Layer**: Configuration, logging, metrics, rate limiting, shutdown
- **Infrastructure Layer**: Backing store connection and its state machine
"""
