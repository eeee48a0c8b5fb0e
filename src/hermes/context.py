"""Per-connection context shared by the gateway and transport."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from .instances import InstanceRecord, InstanceRef
from .tokens import TokenGenerator
from .uri import join, normalize_base


@dataclass(frozen=True, slots=True)
class ConnectionContext:
    """Everything needed to address and authenticate against one instance.

    Built once per :meth:`~hermes.client.InstanceApiClient.connect` call and
    never modified afterwards; reconnecting produces a new context.
    """

    instance: InstanceRecord
    base_uri: str
    header_name: str
    token: str
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def ref(self) -> InstanceRef:
        return self.instance.ref

    @property
    def auth_header(self) -> tuple[str, str]:
        return (self.header_name, self.token)

    def url_for(self, uri: str | None) -> str:
        return join(self.base_uri, uri)


def build_context(
    instance: InstanceRecord,
    *,
    header_name: str,
    tokens: TokenGenerator,
    options: Mapping[str, Any] | None = None,
) -> ConnectionContext:
    """Derive a fresh :class:`ConnectionContext` for ``instance``."""

    ref = instance.ref
    return ConnectionContext(
        instance=instance,
        base_uri=normalize_base(ref.provisioned_endpoint, ref.resource_uri),
        header_name=header_name,
        token=tokens.generate(ref.identity),
        options=MappingProxyType(dict(options or {})),
    )


__all__ = ["ConnectionContext", "build_context"]
