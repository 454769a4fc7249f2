"""Daytona workspace-container backend.

Long-lived Docker workspaces running a pre-built agent image. Creation is
slower than a code-interpreter sandbox; stop/start keeps the disk but not
process memory.
"""

import base64
import shlex
from typing import Any
from uuid import uuid4

import httpx

from boltbox.backends.sandbox.http import HTTPSandboxBackend
from boltbox.exceptions import BackendRejectedError, NotFoundError
from boltbox.protocols.sandbox import CommandResult, SandboxSpec
from boltbox.sessions.models import OwnerKey
from boltbox.utils.validation import normalize_sandbox_path

DEFAULT_API_URL = "https://api.daytona.io"


class DaytonaSandbox(HTTPSandboxBackend):
    """Daytona workspace backend over the REST API."""

    name = "daytona"

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        image: str = "opencode-agent",
        agent_port: int = 8080,
        timeout_seconds: float = 30.0,
        workdir: str = "/home/daytona",
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize Daytona backend.

        Args:
            api_key: Daytona API key
            api_url: Daytona API URL
            image: Workspace image with the agent pre-installed
            agent_port: Port the in-workspace agent listens on
            timeout_seconds: Per-request timeout
            workdir: Default working directory inside workspaces
            transport: Custom httpx transport
            **kwargs: Ignored (for compatibility with other backends)
        """
        super().__init__(api_key, api_url or DEFAULT_API_URL, timeout_seconds, transport)
        self.image = image
        self.agent_port = agent_port
        self.workdir = workdir

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def create(self, owner_key: OwnerKey, spec: SandboxSpec) -> str:
        """Create and auto-start a workspace."""
        name = spec.metadata.get("session_id") or f"ws-{uuid4().hex[:12]}"
        response = await self._request(
            "POST",
            "/workspaces",
            "create",
            json={
                "name": name,
                "image": spec.image or self.image,
                "env": spec.env,
                "ports": spec.ports or [self.agent_port],
                "labels": {**spec.metadata, "owner": str(owner_key)},
                "autoStart": True,
            },
        )
        data = response.json()
        ref = data.get("id") or data.get("name") or name
        if not ref:
            raise BackendRejectedError(f"No workspace id in response: {data}", operation="create")
        return str(ref)

    async def _exec(self, ref: str, command: str, cwd: str | None = None) -> CommandResult:
        response = await self._request(
            "POST",
            f"/workspaces/{ref}/exec",
            "run_command",
            json={"command": f"sh -c {shlex.quote(command)}", "cwd": cwd or self.workdir},
        )
        data = response.json()
        return CommandResult(
            stdout=str(data.get("output") or data.get("stdout") or ""),
            stderr=str(data.get("stderr") or ""),
            exit_code=int(data.get("exitCode") or 0),
        )

    async def run_command(
        self,
        ref: str,
        command: str,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        return await self._exec(ref, command, cwd)

    async def read_file(self, ref: str, path: str) -> bytes:
        response = await self._request(
            "GET",
            f"/workspaces/{ref}/files/download",
            "read_file",
            missing=NotFoundError,
            params={"path": normalize_sandbox_path(path, self.workdir)},
        )
        return response.content

    async def write_file(self, ref: str, path: str, content: bytes) -> None:
        await self._request(
            "POST",
            f"/workspaces/{ref}/files/upload",
            "write_file",
            json={
                "path": normalize_sandbox_path(path, self.workdir),
                "content": base64.b64encode(content).decode(),
                "encoding": "base64",
            },
        )

    async def pause(self, ref: str) -> None:
        await self._request("POST", f"/workspaces/{ref}/stop", "pause", ok_statuses=(409,))

    async def resume(self, ref: str) -> None:
        await self._request("POST", f"/workspaces/{ref}/start", "resume", ok_statuses=(409,))

    async def destroy(self, ref: str) -> None:
        await self._request("DELETE", f"/workspaces/{ref}", "destroy", ok_statuses=(404,))
