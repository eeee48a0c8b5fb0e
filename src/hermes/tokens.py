"""Deterministic tokens used to authenticate the console to its instances."""

from __future__ import annotations

import hashlib
from typing import Any, Iterable

from .exceptions import ConfigurationError

DEFAULT_SIGNATURE_METHOD = "sha256"


class TokenGenerator:
    """Hash ordered identity parts into an opaque token.

    Tokens carry no key material: the output depends only on the parts and the
    configured algorithm, so the console and an instance that share the same
    identifiers derive the same value independently.
    """

    def __init__(self, algorithm: str = DEFAULT_SIGNATURE_METHOD) -> None:
        self.algorithm = _validate_algorithm(algorithm)

    def generate(self, parts: Iterable[Any]) -> str:
        material = "".join(str(part) for part in parts)
        digest = hashlib.new(self.algorithm)
        digest.update(material.encode("utf-8"))
        return digest.hexdigest()

    __call__ = generate

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"TokenGenerator(algorithm={self.algorithm!r})"


def generate_token(parts: Iterable[Any], *, algorithm: str = DEFAULT_SIGNATURE_METHOD) -> str:
    """Return the token for ``parts`` using ``algorithm``."""

    return TokenGenerator(algorithm).generate(parts)


def _validate_algorithm(algorithm: str) -> str:
    name = (algorithm or "").strip().lower()
    if not name:
        raise ConfigurationError("Token signature method must not be empty")
    try:
        probe = hashlib.new(name)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(f"Unsupported token signature method '{algorithm}'") from exc
    if probe.digest_size == 0 or name.startswith("shake_"):
        raise ConfigurationError(f"Token signature method '{algorithm}' has no fixed digest size")
    return name


__all__ = ["DEFAULT_SIGNATURE_METHOD", "TokenGenerator", "generate_token"]
