"""Hermes: authenticated console gateway and readiness probe for remote instances."""

from .client import InstanceApiClient
from .config import GatewayConfig
from .context import ConnectionContext, build_context
from .database import Database, DatabaseConfig, DatabaseError, PoolConfig
from .exceptions import ConfigurationError, HermesError
from .gateway import ResourceGateway
from .instances import (
    DeactivationReason,
    InstanceRecord,
    InstanceRef,
    InstanceRegistry,
    PlatformState,
    ReadinessUpdate,
    ReadyState,
    RegisteredInstance,
    StaticInstance,
)
from .observability import Observability, ObservabilityConfig
from .probe import ReadinessProbe
from .results import (
    CallError,
    CallResult,
    Empty,
    Err,
    ErrorKind,
    NotReady,
    Ok,
    ProbeResult,
    Ready,
    Unknown,
)
from .tokens import DEFAULT_SIGNATURE_METHOD, TokenGenerator, generate_token
from .transport import TransportClient

__all__ = [
    "DEFAULT_SIGNATURE_METHOD",
    "CallError",
    "CallResult",
    "ConfigurationError",
    "ConnectionContext",
    "Database",
    "DatabaseConfig",
    "DatabaseError",
    "DeactivationReason",
    "Empty",
    "Err",
    "ErrorKind",
    "GatewayConfig",
    "HermesError",
    "InstanceApiClient",
    "InstanceRecord",
    "InstanceRef",
    "InstanceRegistry",
    "NotReady",
    "Observability",
    "ObservabilityConfig",
    "Ok",
    "PlatformState",
    "PoolConfig",
    "ProbeResult",
    "ReadinessProbe",
    "ReadinessUpdate",
    "ReadyState",
    "Ready",
    "RegisteredInstance",
    "ResourceGateway",
    "StaticInstance",
    "TokenGenerator",
    "TransportClient",
    "Unknown",
    "build_context",
    "generate_token",
]
