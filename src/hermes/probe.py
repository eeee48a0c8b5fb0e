"""Readiness probe deciding whether an instance can serve traffic."""

from __future__ import annotations

import logging
from typing import Any

from .gateway import ResourceGateway
from .instances import DeactivationReason, ReadyState
from .observability import Observability
from .results import CallError, CallResult, Empty, Err, ErrorKind, NotReady, Ok, ProbeResult, Ready, Unknown

logger = logging.getLogger(__name__)

ADMIN_RESOURCE = "admin"


class ReadinessProbe:
    """Reconcile database, environment and admin state into one verdict.

    A pass runs strictly in order: table count, environment call, admin
    lookup, then the optional write-back. Failures along the way degrade the
    verdict and are never raised.
    """

    def __init__(self, gateway: ResourceGateway, *, observability: Observability | None = None) -> None:
        self.gateway = gateway
        self._observability = observability or Observability()

    async def determine_instance_state(self, *, sync: bool = False) -> ProbeResult:
        ref = self.gateway.context.ref
        observation = self._observability.on_probe_start(ref, sync=sync)
        result = await self._determine(sync=sync)
        self._observability.on_probe_finish(observation, result)
        return result

    async def _determine(self, *, sync: bool) -> ProbeResult:
        ref = self.gateway.context.ref

        # An instance already recorded as ready is trusted; only the environment is refreshed.
        if ref.activated and ref.ready_state == ReadyState.READY:
            environment = await self._fetch_environment()
            if isinstance(environment, Ok):
                return Ready(environment=environment.value)
            return Unknown(state=ReadyState.READY, error=_error_of(environment))

        tables = await self.gateway.count_tables()
        if isinstance(tables, Err) and ref.is_deactivated and not ref.activated:
            logger.info(
                "Skipping deactivated instance without data [cluster=%s instance=%s]",
                ref.cluster_id,
                ref.instance_id,
            )
            return Unknown(state=ReadyState.INIT_REQUIRED, error=tables.error)

        environment: CallResult = await self._fetch_environment() if isinstance(tables, Ok) else tables
        state = await self._classify(environment)
        # An instance awaiting initialization never has a usable environment.
        activated = isinstance(environment, Ok) and state is not ReadyState.INIT_REQUIRED
        result = _verdict(state, environment)
        if sync:
            await self._sync(result, activated=activated)
        return result

    async def _fetch_environment(self) -> CallResult:
        result = await self.gateway.environment()
        if isinstance(result, Err):
            return result
        if isinstance(result, Empty):
            return Err.of(ErrorKind.APPLICATION, "empty environment response", status=result.status)
        if not isinstance(result.value, dict) or "platform" not in result.value:
            return Err.of(ErrorKind.APPLICATION, "environment response has no platform", status=result.status)
        return result

    async def _classify(self, environment: CallResult) -> ReadyState:
        if not isinstance(environment, Ok) or _current_version(environment.value) is None:
            return ReadyState.INIT_REQUIRED
        if await self._has_admin():
            return ReadyState.READY
        return ReadyState.ADMIN_REQUIRED

    async def _has_admin(self) -> bool:
        ref = self.gateway.context.ref
        try:
            admins = await self.gateway.resource(ADMIN_RESOURCE)
        except Exception:
            logger.exception("Admin check failed [cluster=%s instance=%s]", ref.cluster_id, ref.instance_id)
            return False
        return isinstance(admins, Ok) and bool(admins.value)

    async def _sync(self, result: ProbeResult, *, activated: bool) -> None:
        instance = self.gateway.context.instance
        ref = instance.ref
        reason = DeactivationReason.NONE if activated else DeactivationReason.INCOMPLETE_PROVISIONING
        try:
            await instance.update_readiness_state(
                activated=activated,
                noted=True,
                deactivation_reason=reason,
                ready_state=result.state,
            )
        except Exception:
            logger.exception(
                "Unable to record readiness state %s [cluster=%s instance=%s]",
                result.state.name,
                ref.cluster_id,
                ref.instance_id,
            )


def _current_version(environment: Any) -> Any:
    platform = environment.get("platform") if isinstance(environment, dict) else None
    if not isinstance(platform, dict):
        return None
    return platform.get("version_current")


def _verdict(state: ReadyState, environment: CallResult) -> ProbeResult:
    if not isinstance(environment, Ok):
        return Unknown(state=state, error=_error_of(environment))
    if state is ReadyState.READY:
        return Ready(environment=environment.value)
    if state is ReadyState.INIT_REQUIRED:
        return NotReady(state=state, reason="instance requires initialization")
    return NotReady(state=state, reason="admin user required", environment=environment.value)


def _error_of(result: CallResult) -> CallError:
    if isinstance(result, Err):
        return result.error
    return CallError(kind=ErrorKind.APPLICATION, message="no usable response", status=result.status)


__all__ = ["ADMIN_RESOURCE", "ReadinessProbe"]
