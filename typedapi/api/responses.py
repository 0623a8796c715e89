"""Response writing for sectioned response models.

A response model may declare ``body``, ``headers`` and ``cookies``
sections. The body is serialized with its wire names, header fields are
copied onto the response (empty values skipped) and cookie fields become
``Set-Cookie`` entries. A response without a body yields 204.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, TypeAdapter
from starlette import status
from starlette.responses import Response

from typedapi.api.constants import BODY_SECTION, COOKIES_SECTION, HEADERS_SECTION
from typedapi.api.introspection import model_fields, request_sections
from typedapi.api.utils.responses import ORJSONResponse
from typedapi.core.exceptions import ServerFaultError


def _wire_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, list | tuple | set | frozenset):
        return ",".join(_wire_value(item) for item in value)
    return str(value)


def _section_values(section: BaseModel) -> list[tuple[str, str]]:
    pairs = []
    for spec in model_fields(type(section)):
        value = getattr(section, spec.name, None)
        if value is None or value == "":
            continue
        pairs.append((spec.wire_name, _wire_value(value)))
    return pairs


def serialize_body(body: Any, annotation: Any = None) -> Any:
    """JSON-ready form of a body value, using wire names."""
    if isinstance(body, BaseModel):
        return body.model_dump(mode="json", by_alias=True)
    adapter = TypeAdapter(annotation if annotation is not None else type(body))
    return adapter.dump_python(body, mode="json", by_alias=True)


def write_response(response: Any, status_code: int | None = None) -> Response:
    """Turn a handler's return value into a Starlette response.

    Args:
        response: ``None``, a Starlette ``Response`` (passed through) or a
            sectioned response model.
        status_code: Status overriding the 200/204 default.

    Returns:
        Response: The transport response.

    Raises:
        ServerFaultError: If the value is none of the accepted shapes.
    """
    if response is None:
        return Response(status_code=status_code or status.HTTP_204_NO_CONTENT)
    if isinstance(response, Response):
        return response
    if not isinstance(response, BaseModel):
        msg = f"handler returned unsupported response type {type(response).__name__}"
        raise ServerFaultError(msg)

    sections = request_sections(type(response))
    body = response.__dict__.get(BODY_SECTION) if BODY_SECTION in sections else None

    http_response: Response
    if body is None:
        http_response = Response(status_code=status_code or status.HTTP_204_NO_CONTENT)
    elif isinstance(body, bytes | bytearray):
        http_response = Response(
            content=bytes(body),
            status_code=status_code or status.HTTP_200_OK,
            media_type="application/octet-stream",
        )
    else:
        annotation = sections[BODY_SECTION].field_info.annotation
        http_response = ORJSONResponse(
            serialize_body(body, annotation),
            status_code=status_code or status.HTTP_200_OK,
        )

    headers = (
        response.__dict__.get(HEADERS_SECTION) if HEADERS_SECTION in sections else None
    )
    if isinstance(headers, BaseModel):
        for name, value in _section_values(headers):
            http_response.headers[name] = value

    cookies = (
        response.__dict__.get(COOKIES_SECTION) if COOKIES_SECTION in sections else None
    )
    if isinstance(cookies, BaseModel):
        for name, value in _section_values(cookies):
            http_response.set_cookie(name, value)

    return http_response
