"""Long-lived service the console uses to reach its instances."""

from __future__ import annotations

from typing import Any

import httpx

from .config import GatewayConfig
from .context import ConnectionContext, build_context
from .gateway import ResourceGateway
from .instances import InstanceRecord
from .observability import Observability
from .probe import ReadinessProbe
from .tokens import TokenGenerator
from .transport import TransportClient


class InstanceApiClient:
    """Create gateways and readiness probes for instances.

    The client holds no per-instance state: every :meth:`connect` call derives
    a new :class:`ConnectionContext`, so one client can serve concurrent
    probes of different instances.
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        observability: Observability | None = None,
    ) -> None:
        self.config = config or GatewayConfig()
        self.tokens = TokenGenerator(self.config.signature_method)
        self.observability = observability or Observability(self.config.observability)
        self.transport = TransportClient(transport=transport, observability=self.observability)

    def context_for(self, instance: InstanceRecord, **options: Any) -> ConnectionContext:
        return build_context(
            instance,
            header_name=self.config.console_header,
            tokens=self.tokens,
            options={**self.config.transport_options(), **options},
        )

    def connect(self, instance: InstanceRecord, **options: Any) -> ResourceGateway:
        """Return a gateway bound to a fresh context for ``instance``.

        ``options`` become the default transport options of every call made
        through the gateway (for example ``timeout``).
        """

        return ResourceGateway(self.context_for(instance, **options), self.transport)

    def probe(self, instance: InstanceRecord, **options: Any) -> ReadinessProbe:
        return ReadinessProbe(self.connect(instance, **options), observability=self.observability)

    async def determine_instance_state(self, instance: InstanceRecord, *, sync: bool = False, **options: Any):
        return await self.probe(instance, **options).determine_instance_state(sync=sync)

    def generate_token(self, instance: InstanceRecord) -> str:
        return self.tokens.generate(instance.ref.identity)


__all__ = ["InstanceApiClient"]
