"""orjson-backed JSON response class used for every typedapi response.

Keys are sorted so that identical payloads always serialize to identical
bytes, which keeps generated documents and error bodies reproducible.
"""

from typing import Any

import orjson
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ORJSONResponse(JSONResponse):
    """JSONResponse rendering through orjson with sorted keys."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401
        """Render the content as JSON using orjson.

        Args:
            content: The content to serialize to JSON.

        Returns:
            bytes: The JSON-encoded bytes.
        """
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json", by_alias=True, exclude_none=True)

        return orjson.dumps(content, option=orjson.OPT_SORT_KEYS)
