"""Local subprocess-based sandbox for development."""

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Any
from uuid import uuid4

from boltbox.exceptions import BackendRejectedError, BackendUnreachableError, NotFoundError
from boltbox.protocols.sandbox import CommandResult, FileEntry, SandboxSpec
from boltbox.sessions.models import OwnerKey
from boltbox.utils.validation import normalize_sandbox_path


class LocalSandbox:
    """Temp-directory sandbox running shell commands as local subprocesses.

    WARNING: NOT for production use. Provides no security isolation.
    Use the e2b or daytona backend for production deployments.

    Sandbox paths are rooted at the sandbox's temp directory; pause only
    flags the sandbox so commands are refused until it is resumed.
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        base_dir: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize local sandbox.

        Args:
            timeout_seconds: Default command timeout
            base_dir: Parent directory for sandbox workdirs (system temp by default)
            **kwargs: Ignored (for compatibility with other backends)
        """
        self._timeout = timeout_seconds
        self._base_dir = base_dir
        self._workdirs: dict[str, Path] = {}
        self._paused: set[str] = set()
        self._env: dict[str, dict[str, str]] = {}

    def _workdir(self, ref: str, *, running: bool = True) -> Path:
        workdir = self._workdirs.get(ref)
        if workdir is None or not workdir.exists():
            raise BackendUnreachableError(f"Sandbox not found: {ref}")
        if running and ref in self._paused:
            raise BackendRejectedError(f"Sandbox {ref} is paused")
        return workdir

    def _resolve(self, ref: str, path: str) -> Path:
        workdir = self._workdir(ref)
        return workdir / normalize_sandbox_path(path).lstrip("/")

    async def create(self, owner_key: OwnerKey, spec: SandboxSpec) -> str:
        """Create a new sandbox directory and return its reference."""
        ref = f"local-{owner_key.user_id}-{uuid4().hex[:8]}"
        workdir = Path(tempfile.mkdtemp(prefix="boltbox-sandbox-", dir=self._base_dir))
        self._workdirs[ref] = workdir
        self._env[ref] = dict(spec.env)
        return ref

    async def run_command(
        self,
        ref: str,
        command: str,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Execute a shell command inside the sandbox directory."""
        workdir = self._workdir(ref)
        run_dir = self._resolve(ref, cwd) if cwd else workdir
        if not run_dir.is_dir():
            raise NotFoundError(f"No such directory: {cwd}")
        timeout = timeout or self._timeout

        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=run_dir,
            env={"HOME": str(workdir), "PATH": "/usr/local/bin:/usr/bin:/bin", **self._env[ref]},
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            return CommandResult(
                stdout="",
                stderr=f"Execution timed out after {timeout} seconds",
                exit_code=-1,
            )
        finally:
            # Also reached when the caller cancels us mid-command
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

        return CommandResult(
            stdout=stdout.decode(errors="replace") if stdout else "",
            stderr=stderr.decode(errors="replace") if stderr else "",
            exit_code=proc.returncode or 0,
        )

    async def read_file(self, ref: str, path: str) -> bytes:
        file_path = self._resolve(ref, path)
        if not file_path.is_file():
            raise NotFoundError(f"No such file: {path}")
        return file_path.read_bytes()

    async def write_file(self, ref: str, path: str, content: bytes) -> None:
        file_path = self._resolve(ref, path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(content)

    async def list_files(self, ref: str, path: str) -> list[FileEntry]:
        directory = self._resolve(ref, path)
        if not directory.is_dir():
            raise NotFoundError(f"No such directory: {path}")
        workdir = self._workdirs[ref]
        return [
            FileEntry(
                name=child.name,
                path="/" + str(child.relative_to(workdir)),
                is_dir=child.is_dir(),
                size=child.stat().st_size if child.is_file() else 0,
            )
            for child in sorted(directory.iterdir())
        ]

    async def pause(self, ref: str) -> None:
        self._workdir(ref, running=False)
        self._paused.add(ref)

    async def resume(self, ref: str) -> None:
        self._workdir(ref, running=False)
        self._paused.discard(ref)

    async def destroy(self, ref: str) -> None:
        """Destroy a sandbox and clean up its directory."""
        workdir = self._workdirs.pop(ref, None)
        self._paused.discard(ref)
        self._env.pop(ref, None)
        if workdir and workdir.exists():
            shutil.rmtree(workdir, ignore_errors=True)
