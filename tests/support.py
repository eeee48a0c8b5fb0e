"""Test support utilities for gateway, probe and database tests."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Iterable, List, Mapping, Sequence

import httpx

from hermes.database import DatabaseConnection, SecretRef
from hermes.instances import InstanceRef, PlatformState, ReadyState, StaticInstance

ENDPOINT = "https://acme.example.com"
RESOURCE_URI = "/api/v2"
BASE_PATH = "/api/v2/"


@dataclass
class FakeResult:
    rows: List[dict[str, Any]]

    def result(self) -> List[dict[str, Any]]:
        return self.rows


class FakeConnection:
    def __init__(self, *, fail_on: str | None = None) -> None:
        self.calls: list[tuple[str, list[Any]]] = []
        self._queued: list[list[dict[str, Any]]] = []
        self.fail_on = fail_on

    def queue_result(self, rows: Iterable[dict[str, Any]]) -> None:
        self._queued.append([dict(row) for row in rows])

    async def execute(self, query: str, parameters: Sequence[Any] | None = None) -> FakeResult:
        self.calls.append((query, list(parameters or [])))
        if self.fail_on is not None and self.fail_on in query:
            raise RuntimeError(f"statement failed: {self.fail_on}")
        if query.lstrip().upper().startswith("SET "):
            return FakeResult([])
        rows = self._queued.pop(0) if self._queued else []
        return FakeResult(rows)

    def queries(self) -> list[str]:
        return [query for query, _ in self.calls]


class _Acquire:
    def __init__(self, pool: "FakePool") -> None:
        self._pool = pool

    async def __aenter__(self) -> FakeConnection:
        self._pool.acquired += 1
        return self._pool.connection

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._pool.released += 1
        return None


class FakePool:
    def __init__(self, connection: FakeConnection | None = None) -> None:
        self.connection = connection or FakeConnection()
        self.closed = False
        self.acquired = 0
        self.released = 0

    def acquire(self) -> _Acquire:
        return _Acquire(self)

    def close(self) -> None:
        self.closed = True


class StaticSecretResolver:
    def __init__(self, secrets: Mapping[tuple[str, str, str | None], str]) -> None:
        self._secrets = dict(secrets)
        self.calls: list[SecretRef] = []

    def resolve(self, secret: SecretRef) -> str:
        self.calls.append(secret)
        return self._secrets[(secret.provider, secret.name, secret.version)]


class FakeInstanceDatabase:
    """Database opener for :class:`StaticInstance` that counts open and close."""

    def __init__(self, connection: FakeConnection | None = None, *, fail_open: bool = False) -> None:
        self.connection = connection or FakeConnection()
        self.fail_open = fail_open
        self.opened = 0
        self.closed = 0

    def __call__(self) -> AbstractAsyncContextManager[DatabaseConnection]:
        return self._open()

    @asynccontextmanager
    async def _open(self) -> AsyncIterator[DatabaseConnection]:
        if self.fail_open:
            raise ConnectionRefusedError("instance database unreachable")
        self.opened += 1
        try:
            yield DatabaseConnection(self.connection)
        finally:
            self.closed += 1

    def with_tables(self, count: int) -> "FakeInstanceDatabase":
        self.connection.queue_result([{"table_count": count}])
        return self


def make_instance(
    *,
    database: FakeInstanceDatabase | None = None,
    activated: bool = False,
    ready_state: ReadyState = ReadyState.INIT_REQUIRED,
    platform_state: PlatformState = PlatformState.ACTIVATED,
    cluster_id: str = "cluster-east",
    instance_id: str = "acme",
) -> StaticInstance:
    ref = InstanceRef(
        cluster_id=cluster_id,
        instance_id=instance_id,
        provisioned_endpoint=ENDPOINT,
        resource_uri=RESOURCE_URI,
        activated=activated,
        ready_state=ready_state,
        platform_state=platform_state,
    )
    return StaticInstance(ref, database=database)


Responder = Callable[[httpx.Request], httpx.Response]


class InstanceServer:
    """Route table for :class:`httpx.MockTransport` emulating an instance API."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Responder] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        status: int = 200,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if content is not None:
                return httpx.Response(status, content=content, headers=dict(headers or {}))
            return httpx.Response(status, json=json, headers=dict(headers or {}))

        self.routes[(method.upper(), BASE_PATH + path.lstrip("/"))] = respond

    def fail(self, method: str, path: str, error: type[httpx.HTTPError] = httpx.ConnectError) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            raise error("connection refused", request=request)

        self.routes[(method.upper(), BASE_PATH + path.lstrip("/"))] = respond

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get((request.method, request.url.path))
        if responder is None:
            return httpx.Response(404, json={"error": {"code": 404, "message": "Resource not found"}})
        return responder(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]
