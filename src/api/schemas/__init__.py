"""Pydantic models for the response bodies of the service."""
