"""E2B code-interpreter sandbox backend.

Ephemeral microVM sandboxes with sub-second to few-second cold starts.
Pause snapshots memory and filesystem; resume restores both.

Control plane calls go to ``api_url``; file transfer goes to the sandbox's
own envd endpoint (``https://{envd_port}-{sandbox_id}.{domain}``).
"""

from typing import Any

import httpx

from boltbox.backends.sandbox.http import HTTPSandboxBackend
from boltbox.exceptions import BackendRejectedError, NotFoundError
from boltbox.protocols.sandbox import CommandResult, SandboxSpec
from boltbox.sessions.models import OwnerKey
from boltbox.utils.validation import normalize_sandbox_path

DEFAULT_API_URL = "https://api.e2b.dev"

# The API returns the sandbox id under different names across versions
SANDBOX_ID_FIELDS = ("sandboxID", "sandboxId", "id", "sandbox_id")


class E2BSandbox(HTTPSandboxBackend):
    """E2B sandbox backend over the REST API."""

    name = "e2b"

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        template: str = "base",
        timeout_seconds: float = 30.0,
        sandbox_timeout_seconds: int = 3600,
        domain: str = "e2b.app",
        envd_port: int = 49983,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize E2B backend.

        Args:
            api_key: E2B API key
            api_url: Control plane URL
            template: Sandbox template id
            timeout_seconds: Per-request timeout
            sandbox_timeout_seconds: Provider-side lifetime of a running sandbox
            domain: Domain hosting per-sandbox envd endpoints
            envd_port: Port of the in-sandbox envd daemon
            transport: Custom httpx transport
            **kwargs: Ignored (for compatibility with other backends)
        """
        super().__init__(api_key, api_url or DEFAULT_API_URL, timeout_seconds, transport)
        self.template = template
        self.sandbox_timeout_seconds = sandbox_timeout_seconds
        self.domain = domain
        self.envd_port = envd_port
        self._access_tokens: dict[str, str] = {}

    def _headers(self) -> dict[str, str]:
        return {"X-API-Key": self.api_key}

    def _envd_url(self, ref: str) -> str:
        return f"https://{self.envd_port}-{ref}.{self.domain}"

    def _envd_headers(self, ref: str) -> dict[str, str]:
        token = self._access_tokens.get(ref)
        return {"X-Access-Token": token} if token else {}

    async def create(self, owner_key: OwnerKey, spec: SandboxSpec) -> str:
        """Create a sandbox from the configured template."""
        response = await self._request(
            "POST",
            "/sandboxes",
            "create",
            json={
                "templateID": spec.template or self.template,
                "timeout": self.sandbox_timeout_seconds,
                "envVars": spec.env,
                "metadata": {**spec.metadata, "owner": str(owner_key)},
            },
        )
        data = response.json()
        ref = next((data[f] for f in SANDBOX_ID_FIELDS if data.get(f)), None)
        if not ref:
            raise BackendRejectedError(f"No sandbox id in response: {data}", operation="create")
        if data.get("envdAccessToken"):
            self._access_tokens[ref] = data["envdAccessToken"]
        return str(ref)

    async def _exec(self, ref: str, command: str, cwd: str | None = None) -> CommandResult:
        payload: dict[str, Any] = {"command": command}
        if cwd:
            payload["cwd"] = cwd
        response = await self._request(
            "POST", f"/v2/sandboxes/{ref}/commands", "run_command", json=payload
        )
        data = response.json()
        return CommandResult(
            stdout=data.get("stdout") or "",
            stderr=data.get("stderr") or "",
            exit_code=int(data.get("exitCode", data.get("exit_code", 0)) or 0),
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
            f"{self._envd_url(ref)}/files",
            "read_file",
            missing=NotFoundError,
            params={"path": normalize_sandbox_path(path, "/home/user")},
            headers=self._envd_headers(ref),
        )
        return response.content

    async def write_file(self, ref: str, path: str, content: bytes) -> None:
        target = normalize_sandbox_path(path, "/home/user")
        await self._request(
            "POST",
            f"{self._envd_url(ref)}/files",
            "write_file",
            params={"path": target},
            files={"file": (target.rsplit("/", 1)[-1], content)},
            headers=self._envd_headers(ref),
        )

    async def pause(self, ref: str) -> None:
        # 409: already paused
        await self._request("POST", f"/sandboxes/{ref}/pause", "pause", ok_statuses=(409,))

    async def resume(self, ref: str) -> None:
        # 409: already running
        await self._request(
            "POST",
            f"/sandboxes/{ref}/resume",
            "resume",
            ok_statuses=(409,),
            json={"timeout": self.sandbox_timeout_seconds},
        )

    async def destroy(self, ref: str) -> None:
        # 404: already gone
        await self._request("DELETE", f"/sandboxes/{ref}", "destroy", ok_statuses=(404,))
        self._access_tokens.pop(ref, None)
