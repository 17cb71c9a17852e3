"""Error response schema shared by every error path of the pipeline.

All errors rendered by the service, whether raised by a handler, produced by
a short-circuiting pipeline stage or by the not-found fallback, use the same
small JSON body so clients can rely on a single ``error`` key.
"""

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standardized error response body."""

    error: str = Field(
        ...,
        description="Short error description",
        examples=["Route not found", "Payload too large", "Internal server error"],
    )

    message: str | None = Field(
        default=None,
        description="Details about the error (generic in production)",
        examples=["division by zero", "Something went wrong"],
    )

    limit: int | None = Field(
        default=None,
        description="The ceiling that was exceeded, in bytes",
        examples=[10485760],
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"error": "Route not found"},
                {"error": "Internal server error", "message": "Something went wrong"},
                {"error": "Payload too large", "limit": 10485760},
            ]
        }
    }

    def to_content(self) -> dict[str, object]:
        """Body as a dict, without unset optional keys."""
        return self.model_dump(exclude_none=True)
