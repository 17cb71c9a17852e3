"""JSON response class serialized with orjson.

Every JSON body the service writes, error bodies of short-circuiting pipeline
stages included, goes through ``ORJSONResponse`` so keys are always sorted
and timestamps, UUIDs and pydantic models render the same way everywhere.
"""

from typing import Any

import orjson
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ORJSONResponse(JSONResponse):
    """JSON response rendered with orjson and sorted keys."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401
        """Serialize ``content``; pydantic models are dumped by alias first."""
        if isinstance(content, BaseModel):
            content = content.model_dump(by_alias=True, exclude_none=True)

        return orjson.dumps(content, option=orjson.OPT_SORT_KEYS)
