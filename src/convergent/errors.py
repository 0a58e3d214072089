"""Error types raised by the reconciler and resource types."""

from __future__ import annotations

from typing import TYPE_CHECKING

from botocore.exceptions import ClientError

if TYPE_CHECKING:
    from .state import ResourceState


class ReconcileError(Exception):
    """Base class for all reconciliation errors."""

    def __init__(
        self,
        message: str,
        *,
        resource_type: str | None = None,
        identity: str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.identity = identity
        super().__init__(message)


class ValidationFailed(ReconcileError, ValueError):
    """Desired configuration fails static constraints."""

    def __init__(self, errors: list[str], *, resource_type: str | None = None) -> None:
        self.errors = errors
        prefix = f"{resource_type}: " if resource_type else ""
        super().__init__(prefix + "; ".join(errors), resource_type=resource_type)


class MalformedReference(ReconcileError, ValueError):
    """Import reference does not match the identity encoding."""


class ReplacementRequired(ReconcileError):
    """A create-time-only attribute changed; the resource must be replaced."""

    def __init__(self, attrs: list[str], **kwargs) -> None:
        self.attrs = attrs
        super().__init__(f"cannot update {', '.join(attrs)} in place", **kwargs)


class OperationCancelled(ReconcileError):
    """Polling stopped by the cancellation signal or the context deadline."""


class RemoteRejected(ReconcileError):
    """Remote API returned a non-retryable error for a mutating call."""


class RemoteError(ReconcileError):
    """Transport, authorization or unexpected API failure."""


class NotFound(RemoteError):
    """The identified remote object does not exist."""


class PropagationTimeout(RemoteError):
    """The propagation window elapsed without the object becoming visible."""


class PartialCreate(RemoteError):
    """The object was created but a follow-up step or the read back failed."""

    def __init__(self, message: str, *, state: ResourceState, **kwargs) -> None:
        self.state = state
        super().__init__(message, **kwargs)


def error_code(exc: BaseException) -> str:
    """Return the AWS error code of a botocore ClientError ('' otherwise)."""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "")
    return ""


def error_message(exc: BaseException) -> str:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        return f"{error.get('Code', 'Unknown')}: {error.get('Message', '')}"
    return str(exc)
