"""Resource-level access to an instance's REST API."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .context import ConnectionContext
from .http import Method
from .results import CallResult, Empty, Err, ErrorKind, Ok
from .transport import TransportClient
from .uri import segment

logger = logging.getLogger(__name__)

RESOURCE_ENVELOPE = "resource"
LEGACY_SETTING_RESOURCE = "setting"

ENVIRONMENT_PATH = "environment"
TABLE_COUNT_PATH = "/instance/table-count"
CLEAR_LIMITS_CACHE_PATH = "/instance/clear-limits-cache"
CLEAR_LIMITS_COUNTER_PATH = "/instance/clear-limits-counter"
MANAGED_DATA_CACHE_PATH = "/instance/managed-data-cache"

COUNT_TABLES_SQL = (
    "SELECT count(*) AS table_count FROM information_schema.tables "
    "WHERE table_schema NOT IN ('pg_catalog', 'information_schema')"
)
PURGE_LEGACY_SETTING_SQL = "DELETE FROM system_resource WHERE name = $1"


class ResourceGateway:
    """Verb helpers and resource lookups bound to one :class:`ConnectionContext`."""

    def __init__(self, context: ConnectionContext, transport: TransportClient) -> None:
        self.context = context
        self.transport = transport

    async def get(self, uri: str, payload: Any = None, options: Mapping[str, Any] | None = None) -> CallResult:
        return await self.transport.call(self.context, uri, payload, options, Method.GET)

    async def post(self, uri: str, payload: Any = None, options: Mapping[str, Any] | None = None) -> CallResult:
        return await self.transport.call(self.context, uri, payload, options, Method.POST)

    async def put(self, uri: str, payload: Any = None, options: Mapping[str, Any] | None = None) -> CallResult:
        return await self.transport.call(self.context, uri, payload, options, Method.PUT)

    async def patch(self, uri: str, payload: Any = None, options: Mapping[str, Any] | None = None) -> CallResult:
        return await self.transport.call(self.context, uri, payload, options, Method.PATCH)

    async def delete(self, uri: str, payload: Any = None, options: Mapping[str, Any] | None = None) -> CallResult:
        return await self.transport.call(self.context, uri, payload, options, Method.DELETE)

    async def any(
        self,
        method: str | Method,
        uri: str,
        payload: Any = None,
        options: Mapping[str, Any] | None = None,
    ) -> CallResult:
        return await self.transport.call(self.context, uri, payload, options, method)

    async def resources(self) -> CallResult:
        """List every resource the instance exposes."""

        result = await self.get("/", options={"params": {"as_list": "true"}})
        return _unwrap_resource(result)

    async def resource(self, name: str, id: Any = None) -> CallResult:
        """Fetch a resource collection, or one member when ``id`` is given.

        ``"setting"`` is not a remote resource; asking for it purges the
        legacy row instead, see :meth:`purge_legacy_setting`.
        """

        if segment(name) == LEGACY_SETTING_RESOURCE:
            return await self.purge_legacy_setting()
        result = await self.get(segment(name, id))
        return _unwrap_resource(result)

    async def purge_legacy_setting(self) -> CallResult:
        """Delete the obsolete ``setting`` row from the instance's ``system_resource`` table."""

        ref = self.context.ref
        try:
            async with self.context.instance.open_database() as connection:
                await connection.execute(PURGE_LEGACY_SETTING_SQL, [LEGACY_SETTING_RESOURCE])
        except Exception as exc:
            logger.exception(
                "Unable to purge legacy setting resource [cluster=%s instance=%s]",
                ref.cluster_id,
                ref.instance_id,
            )
            return Err.of(ErrorKind.DATA_UNAVAILABLE, str(exc) or type(exc).__name__)
        return Empty()

    async def count_tables(self) -> CallResult:
        """Count the tables in the instance's own database.

        A provisioned instance always has a schema, so zero tables is reported
        as unavailable data rather than as a valid count.
        """

        ref = self.context.ref
        try:
            async with self.context.instance.open_database() as connection:
                count = await connection.fetch_value(COUNT_TABLES_SQL)
        except Exception as exc:
            logger.warning(
                "Unable to count tables [cluster=%s instance=%s]: %s",
                ref.cluster_id,
                ref.instance_id,
                exc,
            )
            return Err.of(ErrorKind.DATA_UNAVAILABLE, str(exc) or type(exc).__name__)
        if not count:
            logger.info("No tables found [cluster=%s instance=%s]", ref.cluster_id, ref.instance_id)
            return Err.of(ErrorKind.DATA_UNAVAILABLE, "no tables found")
        return Ok(int(count))

    async def environment(self) -> CallResult:
        return await self.get(ENVIRONMENT_PATH)

    async def table_count(self) -> CallResult:
        return await self.get(TABLE_COUNT_PATH)

    async def clear_limits_cache(self) -> CallResult:
        return await self.delete(CLEAR_LIMITS_CACHE_PATH)

    async def clear_limits_counter(self, cache_key: str) -> CallResult:
        return await self.delete(CLEAR_LIMITS_COUNTER_PATH, options={"params": {"cacheKey": cache_key}})

    async def clear_managed_data_cache(self) -> CallResult:
        return await self.delete(MANAGED_DATA_CACHE_PATH)


def _unwrap_resource(result: CallResult) -> CallResult:
    if not isinstance(result, Ok):
        return result
    body = result.value
    if isinstance(body, dict) and RESOURCE_ENVELOPE in body:
        return Ok(body[RESOURCE_ENVELOPE], status=result.status)
    return Empty(status=result.status)


__all__ = [
    "CLEAR_LIMITS_CACHE_PATH",
    "CLEAR_LIMITS_COUNTER_PATH",
    "COUNT_TABLES_SQL",
    "ENVIRONMENT_PATH",
    "LEGACY_SETTING_RESOURCE",
    "MANAGED_DATA_CACHE_PATH",
    "PURGE_LEGACY_SETTING_SQL",
    "RESOURCE_ENVELOPE",
    "ResourceGateway",
    "TABLE_COUNT_PATH",
]
