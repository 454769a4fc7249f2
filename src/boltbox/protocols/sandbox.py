"""Sandbox protocol for remote code execution backends."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from boltbox.sessions.models import OwnerKey


@dataclass
class SandboxSpec:
    """Provisioning parameters passed to ``SandboxBackend.create``."""

    template: str = "base"
    image: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    ports: list[int] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class CommandResult:
    """Result from a remote command."""

    stdout: str
    stderr: str
    exit_code: int


@dataclass
class FileEntry:
    """A directory entry inside a sandbox."""

    name: str
    path: str
    is_dir: bool = False
    size: int = 0


@runtime_checkable
class SandboxBackend(Protocol):
    """Protocol for sandbox backends (code interpreter, workspace container, local).

    Every method is a remote call with no local state the caller depends on.
    Any method may raise ``BackendUnreachableError`` (network, timeout, 5xx)
    or ``BackendRejectedError`` (4xx, quota). ``create`` is not idempotent:
    two calls provision two sandboxes.
    """

    async def create(self, owner_key: "OwnerKey", spec: SandboxSpec) -> str:
        """Provision a sandbox and return its backend reference."""
        ...

    async def run_command(
        self,
        ref: str,
        command: str,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a shell command and wait for it to finish."""
        ...

    async def read_file(self, ref: str, path: str) -> bytes:
        """Read a file. Raises ``NotFoundError`` if it does not exist."""
        ...

    async def write_file(self, ref: str, path: str, content: bytes) -> None:
        """Create or overwrite a file, creating parent directories."""
        ...

    async def list_files(self, ref: str, path: str) -> list[FileEntry]:
        """List a directory. Raises ``NotFoundError`` if it does not exist."""
        ...

    async def pause(self, ref: str) -> None:
        """Pause the sandbox, preserving its filesystem."""
        ...

    async def resume(self, ref: str) -> None:
        """Resume a paused sandbox. No-op when already running."""
        ...

    async def destroy(self, ref: str) -> None:
        """Release the sandbox. No-op when already destroyed."""
        ...
