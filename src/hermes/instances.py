"""The instance registry boundary: what the gateway reads from and writes to an instance record."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, AsyncIterator, Callable, Protocol

import msgspec

from .database import Database, DatabaseConfig, DatabaseConnection, DatabaseError, PoolConfig, PoolFactory, SecretResolver


class ReadyState(IntEnum):
    INIT_REQUIRED = 0
    ADMIN_REQUIRED = 1
    READY = 2


class PlatformState(IntEnum):
    NOT_ACTIVATED = 0
    ACTIVATED = 1
    DEACTIVATED = 2


class DeactivationReason(IntEnum):
    NONE = 0
    NON_USE = 1
    INCOMPLETE_PROVISIONING = 2


class InstanceRef(msgspec.Struct, frozen=True):
    """Identity, location and state of an instance as recorded by the console."""

    cluster_id: str
    instance_id: str
    provisioned_endpoint: str
    resource_uri: str = ""
    activated: bool = False
    ready_state: ReadyState = ReadyState.INIT_REQUIRED
    platform_state: PlatformState = PlatformState.NOT_ACTIVATED

    @property
    def identity(self) -> tuple[str, str]:
        """Ordered parts the instance token is derived from."""

        return (self.cluster_id, self.instance_id)

    @property
    def is_deactivated(self) -> bool:
        return self.platform_state == PlatformState.DEACTIVATED


class ReadinessUpdate(msgspec.Struct, frozen=True):
    activated: bool
    noted: bool
    deactivation_reason: DeactivationReason
    ready_state: ReadyState


class InstanceRecord(Protocol):
    """Operations the gateway needs from an instance record, and nothing more."""

    @property
    def ref(self) -> InstanceRef: ...

    def open_database(self) -> AbstractAsyncContextManager[DatabaseConnection]: ...

    async def update_readiness_state(
        self,
        *,
        activated: bool,
        noted: bool,
        deactivation_reason: DeactivationReason,
        ready_state: ReadyState,
    ) -> None: ...


DatabaseOpener = Callable[[], AbstractAsyncContextManager[DatabaseConnection]]


@dataclass(slots=True)
class StaticInstance:
    """In-memory instance record.

    Readiness updates are appended to :attr:`updates` instead of being
    persisted; ``database`` supplies the instance database handle, if any.
    """

    ref: InstanceRef
    database: DatabaseOpener | None = None
    updates: list[ReadinessUpdate] = field(default_factory=list)

    @asynccontextmanager
    async def open_database(self) -> AsyncIterator[DatabaseConnection]:
        if self.database is None:
            raise DatabaseError(f"No database configured for instance '{self.ref.instance_id}'")
        async with self.database() as connection:
            yield connection

    async def update_readiness_state(
        self,
        *,
        activated: bool,
        noted: bool,
        deactivation_reason: DeactivationReason,
        ready_state: ReadyState,
    ) -> None:
        self.updates.append(
            ReadinessUpdate(
                activated=activated,
                noted=noted,
                deactivation_reason=deactivation_reason,
                ready_state=ready_state,
            )
        )


_SELECT_INSTANCE = """
SELECT i.id, i.instance_id_text, c.cluster_id_text, i.provisioned_endpoint_text,
       i.resource_uri_text, i.activate_ind, i.ready_state_nbr, i.platform_state_nbr,
       i.db_config_text
FROM instance_t i
JOIN cluster_t c ON c.id = i.cluster_id
WHERE i.instance_id_text = $1
""".strip()


class InstanceRegistry:
    """Instance records stored in the console database."""

    def __init__(
        self,
        database: Database,
        *,
        pool_factory: PoolFactory | None = None,
        secret_resolver: SecretResolver | None = None,
    ) -> None:
        self.database = database
        self._pool_factory = pool_factory
        self._secret_resolver = secret_resolver

    async def get(self, instance_id: str) -> "RegisteredInstance":
        async with self.database.connection() as connection:
            row = await connection.fetch_one(_SELECT_INSTANCE, [instance_id])
        if row is None:
            raise LookupError(f"Instance '{instance_id}' is not registered")
        return RegisteredInstance(
            registry=self,
            row_id=row["id"],
            ref=InstanceRef(
                cluster_id=str(row["cluster_id_text"]),
                instance_id=str(row["instance_id_text"]),
                provisioned_endpoint=str(row["provisioned_endpoint_text"]),
                resource_uri=str(row.get("resource_uri_text") or ""),
                activated=bool(row.get("activate_ind")),
                ready_state=ReadyState(int(row.get("ready_state_nbr") or 0)),
                platform_state=PlatformState(int(row.get("platform_state_nbr") or 0)),
            ),
            pool=_decode_pool_config(row.get("db_config_text")),
        )

    async def update_readiness_state(self, row_id: Any, update: ReadinessUpdate) -> None:
        assignments = ["activate_ind = $1", "ready_state_nbr = $2", "deactivation_reason_nbr = $3"]
        if update.noted:
            assignments.append("last_state_date = now()")
        query = f"UPDATE instance_t SET {', '.join(assignments)} WHERE id = $4"
        parameters = [
            update.activated,
            int(update.ready_state),
            int(update.deactivation_reason),
            row_id,
        ]
        async with self.database.connection() as connection:
            await connection.execute(query, parameters)

    def instance_database(self, pool: PoolConfig) -> Database:
        return Database(
            DatabaseConfig(pool=pool),
            pool_factory=self._pool_factory,
            secret_resolver=self._secret_resolver,
        )


@dataclass(frozen=True, slots=True)
class RegisteredInstance:
    """An :class:`InstanceRecord` backed by :class:`InstanceRegistry`."""

    registry: InstanceRegistry
    row_id: Any
    ref: InstanceRef
    pool: PoolConfig | None = None

    @asynccontextmanager
    async def open_database(self) -> AsyncIterator[DatabaseConnection]:
        if self.pool is None:
            raise DatabaseError(f"No database configured for instance '{self.ref.instance_id}'")
        database = self.registry.instance_database(self.pool)
        async with database.session() as connection:
            yield connection

    async def update_readiness_state(
        self,
        *,
        activated: bool,
        noted: bool,
        deactivation_reason: DeactivationReason,
        ready_state: ReadyState,
    ) -> None:
        update = ReadinessUpdate(
            activated=activated,
            noted=noted,
            deactivation_reason=deactivation_reason,
            ready_state=ready_state,
        )
        await self.registry.update_readiness_state(self.row_id, update)


def _decode_pool_config(raw: Any) -> PoolConfig | None:
    if not raw:
        return None
    try:
        if isinstance(raw, (str, bytes)):
            return msgspec.json.decode(raw, type=PoolConfig)
        return msgspec.convert(raw, type=PoolConfig)
    except msgspec.DecodeError as exc:
        raise DatabaseError(f"Invalid instance database configuration: {exc}") from exc


__all__ = [
    "DatabaseOpener",
    "DeactivationReason",
    "InstanceRecord",
    "InstanceRef",
    "InstanceRegistry",
    "PlatformState",
    "ReadinessUpdate",
    "ReadyState",
    "RegisteredInstance",
    "StaticInstance",
]
