"""Error taxonomy shared by the gateway and the workflow services.

Every failure raised by the engine is a :class:`FieldOpsError` carrying an
explicit :class:`ErrorKind`, so callers switch on ``error.kind`` rather than
probing response objects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    HARDWARE_UNAVAILABLE = "hardware_unavailable"
    NETWORK_UNREACHABLE = "network_unreachable"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    SERVER = "server"
    UNAUTHORIZED = "unauthorized"
    CANCELLED = "cancelled"
    CONFLICT = "conflict"
    UNKNOWN = "unknown"


class FieldOpsError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str = "", *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class GatewayError(FieldOpsError):
    """A classified failure of a backend call."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status_code: int | None = None,
        detail: Any = None,
    ) -> None:
        super().__init__(message, kind=kind)
        self.status_code = status_code
        self.detail = detail

    def __repr__(self) -> str:
        return f"GatewayError(kind={self.kind.value!r}, status_code={self.status_code!r}, message={self.message!r})"


class OperationCancelled(FieldOpsError):
    """The owning workflow aborted the call; never shown to the operator."""

    kind = ErrorKind.CANCELLED


class LocationError(FieldOpsError):
    kind = ErrorKind.HARDWARE_UNAVAILABLE


class PermissionDenied(LocationError):
    kind = ErrorKind.PERMISSION_DENIED


class LocationPermissionRefused(PermissionDenied):
    """Permission permanently refused during the strict startup check."""


class HardwareUnavailable(LocationError):
    kind = ErrorKind.HARDWARE_UNAVAILABLE


class WorkflowError(FieldOpsError):
    kind = ErrorKind.CONFLICT


class IllegalTransition(WorkflowError):
    def __init__(self, machine: str, current: Enum, target: Enum) -> None:
        super().__init__(f"{machine}: cannot move from {current.name} to {target.name}")
        self.current = current
        self.target = target


class StaleVisitError(WorkflowError):
    def __init__(self, storage_key: str, session_id: str) -> None:
        super().__init__(
            f"A visit ({session_id}) is still open under '{storage_key}'. Close or discard it first."
        )
        self.storage_key = storage_key
        self.session_id = session_id


class NoOpenVisitError(WorkflowError):
    def __init__(self, storage_key: str) -> None:
        super().__init__("Please start a new visit.")
        self.storage_key = storage_key


class RemarkValidationError(WorkflowError):
    kind = ErrorKind.VALIDATION


@dataclass(frozen=True, slots=True)
class UserMessage:
    title: str
    message: str


GENERIC_MESSAGES: dict[ErrorKind, UserMessage] = {
    ErrorKind.NETWORK_UNREACHABLE: UserMessage(
        "Network Error", "Can't reach server. Please check your internet connection."
    ),
    ErrorKind.TIMEOUT: UserMessage(
        "Connection Timeout", "Can't reach server. Please check your connection and try again."
    ),
    ErrorKind.SERVER: UserMessage("Server Error", "Something went wrong. Please try again later."),
    ErrorKind.VALIDATION: UserMessage("Validation Error", "Please fix the highlighted fields."),
    ErrorKind.PERMISSION_DENIED: UserMessage(
        "Permission Required",
        "Location permission is required. Please enable it from settings to continue.",
    ),
    ErrorKind.HARDWARE_UNAVAILABLE: UserMessage("Location Error", "Failed to fetch location"),
    ErrorKind.UNKNOWN: UserMessage("Error", "Something went wrong. Please try again."),
}


def describe_error(error: BaseException) -> Optional[UserMessage]:
    """Pick the operator-facing message for an error, or ``None`` when nothing is shown."""

    kind = getattr(error, "kind", ErrorKind.UNKNOWN)
    if kind in (ErrorKind.CANCELLED, ErrorKind.UNAUTHORIZED):
        return None
    if kind is ErrorKind.VALIDATION:
        text = getattr(error, "message", "") or GENERIC_MESSAGES[kind].message
        return UserMessage(GENERIC_MESSAGES[kind].title, text)
    if kind is ErrorKind.CONFLICT:
        return UserMessage("Error", str(error))
    return GENERIC_MESSAGES.get(kind, GENERIC_MESSAGES[ErrorKind.UNKNOWN])


class Alerting(Protocol):
    def alert(self, title: str, message: str) -> None: ...


def present_error(notifier: Alerting, error: BaseException) -> bool:
    """Show at most one acknowledgement prompt for ``error``; return whether one was shown."""

    user_message = describe_error(error)
    if user_message is None:
        return False
    notifier.alert(user_message.title, user_message.message)
    return True


def report_error(error: FieldOpsError, context: str) -> None:
    """Single reporting path for classified backend failures."""

    if isinstance(error, GatewayError):
        logger.error(
            f"[{context}] {error.kind.value} error (status={error.status_code}): {error.message}"
        )
    else:
        logger.error(f"[{context}] {error.kind.value} error: {error}")
