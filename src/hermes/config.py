"""Gateway configuration objects."""

from __future__ import annotations

import os
from typing import Any, Mapping

import msgspec
from msgspec import Struct

from .exceptions import ConfigurationError
from .observability import ObservabilityConfig
from .tokens import DEFAULT_SIGNATURE_METHOD

DEFAULT_CONSOLE_HEADER = "X-DreamFactory-Console-Key"

ENV_SIGNATURE_METHOD = "HERMES_SIGNATURE_METHOD"
ENV_CONSOLE_HEADER = "HERMES_CONSOLE_HEADER"
ENV_TIMEOUT = "HERMES_TIMEOUT"


class GatewayConfig(Struct, frozen=True):
    """Typed configuration for an :class:`~hermes.client.InstanceApiClient`."""

    signature_method: str = DEFAULT_SIGNATURE_METHOD
    console_header: str = DEFAULT_CONSOLE_HEADER
    timeout: float | None = None
    observability: ObservabilityConfig = ObservabilityConfig()

    def __post_init__(self) -> None:
        if not self.console_header.strip():
            raise ConfigurationError("Console header name must not be empty")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError("Timeout must be a positive number of seconds")

    def transport_options(self) -> dict[str, Any]:
        """Default per-call options derived from this configuration."""

        if self.timeout is None:
            return {}
        return {"timeout": self.timeout}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GatewayConfig":
        try:
            return msgspec.convert(dict(data), type=cls)
        except msgspec.ValidationError as exc:
            raise ConfigurationError(f"Invalid gateway configuration: {exc}") from exc

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "GatewayConfig":
        """Build a configuration from ``HERMES_*`` environment variables."""

        source = os.environ if env is None else env
        data: dict[str, Any] = {}
        method = _read_env(source, ENV_SIGNATURE_METHOD)
        if method is not None:
            data["signature_method"] = method
        header = _read_env(source, ENV_CONSOLE_HEADER)
        if header is not None:
            data["console_header"] = header
        timeout = _read_env(source, ENV_TIMEOUT)
        if timeout is not None:
            try:
                data["timeout"] = float(timeout)
            except ValueError as exc:
                raise ConfigurationError(f"{ENV_TIMEOUT} must be a number, got {timeout!r}") from exc
        return cls.from_mapping(data)


def _read_env(env: Mapping[str, str], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


__all__ = [
    "DEFAULT_CONSOLE_HEADER",
    "ENV_CONSOLE_HEADER",
    "ENV_SIGNATURE_METHOD",
    "ENV_TIMEOUT",
    "GatewayConfig",
]
