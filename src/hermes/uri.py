"""Path helpers for instance-relative resource URIs."""

from __future__ import annotations

from typing import Any

SEPARATOR = "/"


def segment(*parts: Any, leading: bool = False) -> str:
    """Join ``parts`` into a path with exactly one separator between segments.

    ``None`` and empty parts are skipped and surrounding separators are stripped
    from every part, so ``segment("/admin/", 5)`` and ``segment("admin", "5")``
    both produce ``"admin/5"``. The result never ends with a separator.
    """

    cleaned = [str(part).strip(SEPARATOR) for part in parts if part is not None]
    path = SEPARATOR.join(piece for piece in cleaned if piece)
    if leading:
        return SEPARATOR + path
    return path


def normalize_base(endpoint: str, resource_uri: str | None = None) -> str:
    """Combine an endpoint and resource prefix into a base URI ending in one separator."""

    base = endpoint.strip().rstrip(SEPARATOR)
    if not base:
        raise ValueError("Instance endpoint must not be empty")
    prefix = segment(resource_uri)
    if prefix:
        base = f"{base}{SEPARATOR}{prefix}"
    return base + SEPARATOR


def join(base_uri: str, uri: str | None) -> str:
    """Resolve ``uri`` beneath ``base_uri``.

    Leading separators on ``uri`` do not escape the base, ``"/instance/x"`` and
    ``"instance/x"`` address the same resource. A trailing separator on ``uri``
    is kept so collection roots can be addressed explicitly.
    """

    if not base_uri.endswith(SEPARATOR):
        base_uri += SEPARATOR
    if not uri:
        return base_uri
    relative = uri.lstrip(SEPARATOR)
    return base_uri + relative


__all__ = ["SEPARATOR", "join", "normalize_base", "segment"]
