"""Boltbox exceptions."""

from typing import Any


class BoltboxError(Exception):
    """Base exception for boltbox.

    Carries enough context (operation, owner key, session id) to diagnose a
    failure from the log line alone.
    """

    code = "internal_error"

    def __init__(
        self,
        message: str = "",
        *,
        operation: str | None = None,
        owner_key: Any = None,
        session_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.owner_key = owner_key
        self.session_id = session_id

    def context(self) -> dict[str, Any]:
        """Return the diagnostic context as a flat dictionary."""
        result: dict[str, Any] = {"code": self.code}
        if self.operation:
            result["operation"] = self.operation
        if self.owner_key is not None:
            result["owner_key"] = str(self.owner_key)
        if self.session_id:
            result["session_id"] = self.session_id
        return result

    def __str__(self) -> str:
        details = ", ".join(
            f"{k}={v}" for k, v in self.context().items() if k != "code"
        )
        if details:
            return f"{self.message} ({details})"
        return self.message


class ConfigError(BoltboxError):
    """Configuration error."""

    code = "config_error"


class SandboxError(BoltboxError):
    """Sandbox backend error."""

    code = "sandbox_error"


class BackendUnreachableError(SandboxError):
    """Backend could not be reached (network failure, timeout or 5xx).

    Transient: callers may retry with backoff.
    """

    code = "backend_unreachable"


class BackendRejectedError(SandboxError):
    """Backend refused the request (4xx, quota exceeded, validation)."""

    code = "backend_rejected"


class NotFoundError(SandboxError):
    """File or path not found inside a sandbox."""

    code = "not_found"


class SessionError(BoltboxError):
    """Session lifecycle error."""

    code = "session_error"


class SessionNotFoundError(SessionError):
    """No session is registered under the given id."""

    code = "session_not_found"


class SessionNotReadyError(SessionError):
    """Session is not active yet (still creating, paused or destroyed)."""

    code = "session_not_ready"


class ConcurrentCreationInProgressError(SessionError):
    """Another creation for the same owner key is in flight."""

    code = "concurrent_creation_in_progress"


class InvocationRejectedError(BoltboxError):
    """The agent rejected the turn (malformed input)."""

    code = "invocation_rejected"
