"""In-memory sandbox backend.

Suitable for development and testing. Records every call so tests can
assert exactly which remote operations a transition performed.
"""

import asyncio
import posixpath
import shlex
from collections import Counter, defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from boltbox.exceptions import BackendRejectedError, BackendUnreachableError, NotFoundError
from boltbox.protocols.sandbox import CommandResult, FileEntry, SandboxSpec
from boltbox.sessions.models import OwnerKey
from boltbox.utils.validation import normalize_sandbox_path

CommandHandler = Callable[[str], CommandResult]


@dataclass
class MemoryBox:
    """State of one simulated sandbox."""

    ref: str
    owner_key: OwnerKey
    spec: SandboxSpec
    state: str = "running"  # running | paused | destroyed
    files: dict[str, bytes] = field(default_factory=dict)


def echo_handler(command: str) -> CommandResult:
    """Default command handler: understands ``echo`` and ``true``."""
    argv = shlex.split(command)
    if argv and argv[0] == "echo":
        return CommandResult(stdout=" ".join(argv[1:]) + "\n", stderr="", exit_code=0)
    if argv == ["true"]:
        return CommandResult(stdout="", stderr="", exit_code=0)
    name = argv[0] if argv else ""
    return CommandResult(stdout="", stderr=f"{name}: command not found\n", exit_code=127)


class MemorySandbox:
    """Simulated sandbox backend keeping all state in process memory.

    Example:
        backend = MemorySandbox(latency=0.05)
        backend.fail_next("create", BackendUnreachableError("boom"))
        ...
        assert backend.calls["create"] == 1
    """

    def __init__(
        self,
        latency: float = 0.0,
        command_handler: CommandHandler | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize memory sandbox backend.

        Args:
            latency: Seconds every call sleeps before acting
            command_handler: Function producing the result of ``run_command``
            **kwargs: Ignored (for compatibility with other backends)
        """
        self.latency = latency
        self.command_handler = command_handler or echo_handler
        self.calls: Counter[str] = Counter()
        self.boxes: dict[str, MemoryBox] = {}
        self._failures: dict[str, deque[BaseException]] = defaultdict(deque)

    def fail_next(self, operation: str, error: BaseException) -> None:
        """Make the next call of ``operation`` raise ``error``."""
        self._failures[operation].append(error)

    async def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        if self.latency:
            await asyncio.sleep(self.latency)
        pending = self._failures.get(operation)
        if pending:
            raise pending.popleft()

    def _box(self, ref: str, *, running: bool = True) -> MemoryBox:
        box = self.boxes.get(ref)
        if box is None or box.state == "destroyed":
            raise BackendUnreachableError(f"Sandbox {ref} is gone")
        if running and box.state != "running":
            raise BackendRejectedError(f"Sandbox {ref} is {box.state}")
        return box

    async def create(self, owner_key: OwnerKey, spec: SandboxSpec) -> str:
        await self._enter("create")
        ref = f"mem-{uuid4().hex[:10]}"
        self.boxes[ref] = MemoryBox(ref=ref, owner_key=owner_key, spec=spec)
        return ref

    async def run_command(
        self,
        ref: str,
        command: str,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        await self._enter("run_command")
        self._box(ref)
        return self.command_handler(command)

    async def read_file(self, ref: str, path: str) -> bytes:
        await self._enter("read_file")
        box = self._box(ref)
        path = normalize_sandbox_path(path)
        if path not in box.files:
            raise NotFoundError(f"No such file: {path}")
        return box.files[path]

    async def write_file(self, ref: str, path: str, content: bytes) -> None:
        await self._enter("write_file")
        box = self._box(ref)
        box.files[normalize_sandbox_path(path)] = content

    async def list_files(self, ref: str, path: str) -> list[FileEntry]:
        await self._enter("list_files")
        box = self._box(ref)
        directory = normalize_sandbox_path(path)
        prefix = directory.rstrip("/") + "/"

        entries: dict[str, FileEntry] = {}
        for file_path, content in box.files.items():
            if not file_path.startswith(prefix):
                continue
            head, _, rest = file_path[len(prefix):].partition("/")
            if head in entries:
                continue
            entries[head] = FileEntry(
                name=head,
                path=posixpath.join(directory, head),
                is_dir=bool(rest),
                size=0 if rest else len(content),
            )

        if not entries and directory != "/":
            raise NotFoundError(f"No such directory: {directory}")
        return sorted(entries.values(), key=lambda e: e.name)

    async def pause(self, ref: str) -> None:
        await self._enter("pause")
        box = self._box(ref, running=False)
        box.state = "paused"

    async def resume(self, ref: str) -> None:
        await self._enter("resume")
        box = self._box(ref, running=False)
        box.state = "running"

    async def destroy(self, ref: str) -> None:
        await self._enter("destroy")
        box = self.boxes.get(ref)
        if box is not None:
            box.state = "destroyed"

    @property
    def live_count(self) -> int:
        """Number of sandboxes not yet destroyed."""
        return sum(1 for box in self.boxes.values() if box.state != "destroyed")
