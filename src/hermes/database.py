"""PostgreSQL access for the console registry and instance databases, built on :mod:`psqlpy`."""

from __future__ import annotations

import inspect
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Mapping, Protocol, Sequence

import msgspec

from .exceptions import HermesError

try:  # pragma: no cover - optional import exercised in runtime integration tests
    from psqlpy import ConnectionPool as _PsqlpyConnectionPool
except ModuleNotFoundError:  # pragma: no cover - unit tests inject a fake pool
    _PsqlpyConnectionPool = None  # type: ignore[assignment]


class DatabaseError(HermesError, RuntimeError):
    """Raised when the database integration cannot satisfy an operation."""


PoolFactory = Callable[[Mapping[str, Any]], Any]


class SecretRef(msgspec.Struct, frozen=True, omit_defaults=True):
    """Location of a secret managed outside the console."""

    provider: str
    name: str
    version: str | None = None


class SecretResolver(Protocol):
    """Resolve secret references into concrete values."""

    def resolve(self, secret: SecretRef) -> str: ...


class SecretValue(msgspec.Struct, frozen=True, omit_defaults=True):
    """String material sourced either inline or from a secret manager."""

    secret: SecretRef | None = None
    literal: str | None = None

    def resolve(self, resolver: "SecretResolver | None", *, field: str) -> str | None:
        if self.secret is None:
            return self.literal
        if resolver is None:
            raise DatabaseError(f"Secret resolver required for {field}")
        value = resolver.resolve(self.secret)
        if not isinstance(value, str):
            raise DatabaseError(f"Secret resolver returned non-string value for {field}")
        return value


class DatabaseCredentials(msgspec.Struct, frozen=True, omit_defaults=True):
    username: SecretValue | None = None
    password: SecretValue | None = None

    def resolve(self, resolver: "SecretResolver | None") -> dict[str, str]:
        resolved: dict[str, str] = {}
        for source, option_key in ((self.username, "username"), (self.password, "password")):
            if source is None:
                continue
            value = source.resolve(resolver, field=f"credentials.{option_key}")
            if value is not None:
                resolved[option_key] = value
        return resolved


class PoolConfig(msgspec.Struct, frozen=True, omit_defaults=True):
    """Configuration values passed to :class:`psqlpy.ConnectionPool`.

    Instance records store one of these as JSON so the console can reach each
    instance's own database.
    """

    dsn: str | None = None
    host: str | None = None
    port: int | None = None
    db_name: str | None = None
    application_name: str | None = "hermes"
    max_db_pool_size: int = 2
    connect_timeout_sec: int | None = None
    credentials: DatabaseCredentials = DatabaseCredentials()


class DatabaseConfig(msgspec.Struct, frozen=True):
    """High level configuration for :class:`Database`."""

    pool: PoolConfig = PoolConfig()
    search_path: tuple[str, ...] = ()
    default_role: str | None = None


@dataclass(slots=True)
class DatabaseResult:
    """Normalized representation of a query result."""

    rows: list[dict[str, Any]]

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None

    def scalar(self) -> Any:
        row = self.first()
        if not row:
            return None
        return next(iter(row.values()))


class DatabaseConnection:
    """Thin wrapper adding ergonomic helpers to a raw psqlpy connection."""

    def __init__(self, raw_connection: Any) -> None:
        self._raw = raw_connection

    async def execute(self, query: str, parameters: Sequence[Any] | None = None) -> DatabaseResult:
        result = await self._raw.execute(query, list(parameters) if parameters is not None else None)
        return DatabaseResult(_coerce_rows(result))

    async def fetch_one(self, query: str, parameters: Sequence[Any] | None = None) -> dict[str, Any] | None:
        return (await self.execute(query, parameters)).first()

    async def fetch_value(self, query: str, parameters: Sequence[Any] | None = None) -> Any:
        return (await self.execute(query, parameters)).scalar()

    async def set_search_path(self, schemas: Sequence[str]) -> None:
        if not schemas:
            return
        quoted = ", ".join(_quote_identifier(name) for name in schemas)
        await self.execute(f"SET search_path TO {quoted}")

    async def set_role(self, role: str | None) -> None:
        if role is None:
            return
        await self.execute(f"SET ROLE {_quote_identifier(role)}")


class Database:
    """Lazily created connection pool with scoped connection helpers."""

    def __init__(
        self,
        config: DatabaseConfig,
        *,
        pool: Any | None = None,
        pool_factory: PoolFactory | None = None,
        secret_resolver: "SecretResolver | None" = None,
    ) -> None:
        self.config = config
        self._pool = pool
        self._pool_factory = pool_factory or _default_pool_factory
        self._secret_resolver = secret_resolver

    async def shutdown(self) -> None:
        """Dispose the connection pool."""

        pool, self._pool = self._pool, None
        if pool is None:
            return
        close = getattr(pool, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):  # pragma: no cover - depends on pool implementation
            await result

    @asynccontextmanager
    async def connection(self, *, role: str | None = None) -> AsyncIterator[DatabaseConnection]:
        pool = self._ensure_pool()
        async with pool.acquire() as raw_connection:
            connection = DatabaseConnection(raw_connection)
            await connection.set_search_path(self.config.search_path)
            await connection.set_role(role or self.config.default_role)
            yield connection

    @asynccontextmanager
    async def session(self, *, role: str | None = None) -> AsyncIterator[DatabaseConnection]:
        """Open the pool, yield one connection and dispose the pool on every exit path."""

        try:
            async with self.connection(role=role) as connection:
                yield connection
        finally:
            await self.shutdown()

    def _ensure_pool(self) -> Any:
        if self._pool is not None:
            return self._pool
        options = _pool_kwargs(self.config.pool, resolver=self._secret_resolver)
        self._pool = self._pool_factory(options)
        return self._pool


def _coerce_rows(result: Any) -> list[dict[str, Any]]:
    if result is None:
        return []
    data = result.result() if hasattr(result, "result") else result
    if data is None:
        return []
    if isinstance(data, list):
        return [dict(row) for row in data]
    if isinstance(data, dict):
        return [dict(data)]
    raise DatabaseError(f"Unexpected query result type: {type(data)!r}")


def _pool_kwargs(config: PoolConfig, *, resolver: "SecretResolver | None" = None) -> dict[str, Any]:
    fields = msgspec.structs.asdict(config)
    fields.pop("credentials", None)
    payload: dict[str, Any] = {key: value for key, value in fields.items() if value is not None}
    payload.update(config.credentials.resolve(resolver))
    return payload


def _default_pool_factory(options: Mapping[str, Any]) -> Any:  # pragma: no cover - exercised in integration
    if _PsqlpyConnectionPool is None:
        raise DatabaseError("psqlpy is not installed; install psqlpy to use the default pool")
    return _PsqlpyConnectionPool(**options)


def _quote_identifier(identifier: str) -> str:
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


__all__ = [
    "Database",
    "DatabaseConfig",
    "DatabaseConnection",
    "DatabaseCredentials",
    "DatabaseError",
    "DatabaseResult",
    "PoolConfig",
    "PoolFactory",
    "SecretRef",
    "SecretResolver",
    "SecretValue",
    "_quote_identifier",
]
