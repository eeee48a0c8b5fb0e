"""Tagged results returned by the transport, gateway and readiness probe."""

from __future__ import annotations

from enum import Enum
from typing import Any, Union

import msgspec

from .instances import ReadyState


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    APPLICATION = "application"
    DATA_UNAVAILABLE = "data_unavailable"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class CallError(msgspec.Struct, frozen=True, omit_defaults=True):
    """Why a call to an instance did not produce a usable response."""

    kind: ErrorKind
    message: str = ""
    status: int | None = None
    code: str | None = None

    def describe(self) -> str:
        parts = [self.kind.value]
        if self.status is not None:
            parts.append(str(self.status))
        if self.code:
            parts.append(self.code)
        if self.message:
            parts.append(self.message)
        return ": ".join(parts)


class Ok(msgspec.Struct, frozen=True):
    """A successful response carrying a decoded body."""

    value: Any
    status: int = 200

    @property
    def ok(self) -> bool:
        return True

    def unwrap_or(self, default: Any = None) -> Any:
        return self.value


class Empty(msgspec.Struct, frozen=True):
    """A successful response with nothing in it, or an absent resource envelope."""

    status: int = 200

    @property
    def ok(self) -> bool:
        return True

    def unwrap_or(self, default: Any = None) -> Any:
        return default


class Err(msgspec.Struct, frozen=True):
    """A failed call."""

    error: CallError

    @property
    def ok(self) -> bool:
        return False

    def unwrap_or(self, default: Any = None) -> Any:
        return default

    @classmethod
    def of(cls, kind: ErrorKind, message: str = "", *, status: int | None = None, code: str | None = None) -> "Err":
        return cls(CallError(kind=kind, message=message, status=status, code=code))


CallResult = Union[Ok, Empty, Err]


class Ready(msgspec.Struct, frozen=True):
    """The instance is ready; ``environment`` is the descriptor fetched in this pass."""

    environment: dict[str, Any]
    state: ReadyState = ReadyState.READY

    @property
    def ready(self) -> bool:
        return True


class NotReady(msgspec.Struct, frozen=True):
    """The instance answered but has not finished provisioning.

    ``environment`` is kept when the instance is usable but still lacks an
    admin user; an instance awaiting initialization never carries one.
    """

    state: ReadyState
    reason: str
    environment: dict[str, Any] | None = None

    @property
    def ready(self) -> bool:
        return False


class Unknown(msgspec.Struct, frozen=True):
    """Readiness could not be determined because a call or query failed."""

    state: ReadyState
    error: CallError

    @property
    def ready(self) -> bool:
        return False


ProbeResult = Union[Ready, NotReady, Unknown]


__all__ = [
    "CallError",
    "CallResult",
    "Empty",
    "Err",
    "ErrorKind",
    "NotReady",
    "Ok",
    "ProbeResult",
    "Ready",
    "Unknown",
]
