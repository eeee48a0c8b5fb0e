"""HTTP utilities used when talking to instances."""

from __future__ import annotations

from enum import Enum


class Method(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


JSON_MEDIA_TYPE = "application/json"
HTML_MEDIA_TYPE = "text/html"


def normalize_method(method: str | Method) -> str:
    """Return the upper-cased verb for ``method``."""

    verb = str(method).strip().upper()
    if not verb:
        raise ValueError("HTTP method must not be empty")
    return verb


def media_type(content_type: str | None) -> str:
    """Return the bare, lower-cased media type of a ``Content-Type`` header."""

    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def is_html(content_type: str | None) -> bool:
    return media_type(content_type) == HTML_MEDIA_TYPE


def is_json(content_type: str | None) -> bool:
    kind = media_type(content_type)
    return kind == JSON_MEDIA_TYPE or kind.endswith("+json")


__all__ = [
    "HTML_MEDIA_TYPE",
    "JSON_MEDIA_TYPE",
    "Method",
    "is_html",
    "is_json",
    "media_type",
    "normalize_method",
]
