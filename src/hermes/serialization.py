from __future__ import annotations

from typing import Any, Protocol, cast

import msgspec


class _JSONModule(Protocol):
    def encode(self, obj: Any) -> bytes: ...

    def decode(self, data: bytes) -> Any: ...


_json = cast(_JSONModule, getattr(msgspec, "json"))

_SCALARS = (str, bytes, bytearray, int, float, bool)


def json_encode(value: Any) -> bytes:
    """Serialize ``value`` to JSON bytes using msgspec."""

    return _json.encode(value)


def json_decode(data: bytes | str) -> Any:
    """Deserialize JSON ``data`` into native Python values."""

    if isinstance(data, str):
        data = data.encode("utf-8")
    return _json.decode(data)


def is_scalar(value: Any) -> bool:
    """Return ``True`` when ``value`` is sent as a raw body rather than JSON."""

    return isinstance(value, _SCALARS)


def error_envelope(body: Any) -> tuple[str | None, str | None] | None:
    """Extract ``(code, message)`` from an ``{"error": {...}}`` response body."""

    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if not isinstance(error, dict):
        return None
    code = error.get("code")
    message = error.get("message")
    if code is None and message is None:
        return None
    return (None if code is None else str(code), None if message is None else str(message))
