"""Helpers shared by the pipeline stages and routes.

- **responses**: JSON responses serialized with orjson
- **client_ip**: Client identity of a request
"""
