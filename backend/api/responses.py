"""
Content negotiation and rendering for API responses.

The response format comes from the path suffix (`/api/v1/results.xml`),
then from the Accept header, and defaults to JSON. Bodies are rendered as
JSON or as XML under a `<response>` root element.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional
from xml.etree import ElementTree

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from services.result_policy import Reply

SUPPORTED_FORMATS: tuple[str, ...] = ("json", "xml")
DEFAULT_FORMAT = "json"
XML_MEDIA_TYPES: tuple[str, ...] = ("application/xml", "text/xml")


def format_from_path(path: str) -> Optional[str]:
    """Return the `.json`/`.xml` suffix of the last path segment, if any."""
    last_segment = path.rstrip("/").rsplit("/", 1)[-1]
    if "." not in last_segment:
        return None
    suffix = last_segment.rsplit(".", 1)[-1].lower()
    return suffix if suffix in SUPPORTED_FORMATS else None


def negotiate_format(request: Request) -> str:
    suffix = format_from_path(request.url.path)
    if suffix:
        return suffix
    accept = request.headers.get("accept", "").lower()
    if any(media_type in accept for media_type in XML_MEDIA_TYPES):
        return "xml"
    return DEFAULT_FORMAT


def _append_xml(parent: ElementTree.Element, tag: str, value: Any) -> None:
    if isinstance(value, (list, tuple)):
        # Lists render as repeated elements sharing the parent key
        for item in value:
            _append_xml(parent, tag, item)
        return

    element = ElementTree.SubElement(parent, tag)
    if isinstance(value, Mapping):
        for key, child in value.items():
            _append_xml(element, str(key), child)
    elif isinstance(value, bool):
        element.text = "true" if value else "false"
    elif value is not None:
        element.text = str(value)


def to_xml(payload: Mapping[str, Any]) -> bytes:
    root = ElementTree.Element("response")
    for key, value in payload.items():
        _append_xml(root, str(key), value)
    return ElementTree.tostring(root, encoding="utf-8", xml_declaration=True)


def api_response(
    status_code: int,
    payload: Optional[Mapping[str, Any]],
    fmt: str,
    headers: Optional[dict[str, str]] = None,
) -> Response:
    """Render a payload in the requested format; None yields an empty body."""
    if payload is None:
        return Response(status_code=status_code, headers=headers)
    if fmt == "xml":
        return Response(
            content=to_xml(payload),
            status_code=status_code,
            media_type="application/xml",
            headers=headers,
        )
    return JSONResponse(content=dict(payload), status_code=status_code, headers=headers)


def render_reply(reply: Reply, fmt: str) -> Response:
    return api_response(reply.status_code, reply.payload, fmt)
