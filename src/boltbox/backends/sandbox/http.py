"""Shared HTTP plumbing for REST sandbox providers."""

import shlex
from typing import Any

import httpx

from boltbox.exceptions import (
    BackendRejectedError,
    BackendUnreachableError,
    NotFoundError,
    SandboxError,
)
from boltbox.protocols.sandbox import CommandResult, FileEntry
from boltbox.utils.validation import normalize_sandbox_path


def error_message(response: httpx.Response) -> str:
    """Extract a human-readable error from a provider response."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or response.reason_phrase
    if isinstance(data, dict):
        errors = data.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            return str(errors[0].get("message", "Unknown error"))
        for key in ("message", "error", "detail"):
            if data.get(key):
                return str(data[key])
    return response.text[:500]


class HTTPSandboxBackend:
    """Base class for sandbox providers reached over a REST API.

    Maps transport failures, timeouts and 5xx responses to
    ``BackendUnreachableError`` and other 4xx responses to
    ``BackendRejectedError``.
    """

    name = "http"

    def __init__(
        self,
        api_key: str | None,
        api_url: str,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            api_key: Provider API key
            api_url: Base URL of the provider's control plane
            timeout_seconds: Per-request timeout
            transport: Custom httpx transport (tests use ``httpx.MockTransport``)

        Raises:
            ValueError: If the API key is missing
        """
        if not api_key:
            raise ValueError(f"{self.name} backend requires an api_key")
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        """Get API request headers."""
        return {"Authorization": f"Bearer {self.api_key}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self._headers(),
            timeout=self.timeout_seconds,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        *,
        missing: type[SandboxError] | None = None,
        ok_statuses: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and translate failures into sandbox errors.

        Args:
            method: HTTP method
            url: Absolute URL or path under ``api_url``
            operation: Operation name for error context
            missing: Error raised on 404 (``BackendRejectedError`` when None)
            ok_statuses: Non-2xx statuses that count as success (idempotent no-ops)
        """
        if not url.startswith("http"):
            url = f"{self.api_url}{url}"

        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise BackendUnreachableError(
                f"{self.name} {operation} timed out", operation=operation
            ) from e
        except httpx.TransportError as e:
            raise BackendUnreachableError(
                f"{self.name} {operation} failed: {e}", operation=operation
            ) from e

        status = response.status_code
        if status in ok_statuses or status < 400:
            return response

        message = f"{self.name} {operation} failed ({status}): {error_message(response)}"
        if status >= 500:
            raise BackendUnreachableError(message, operation=operation)
        if status == 404 and missing is not None:
            raise missing(message, operation=operation)
        raise BackendRejectedError(message, operation=operation)

    async def _exec(self, ref: str, command: str) -> CommandResult:
        raise NotImplementedError

    async def list_files(self, ref: str, path: str) -> list[FileEntry]:
        """List a directory by running ``find`` in the sandbox."""
        directory = normalize_sandbox_path(path)
        command = (
            f"find {shlex.quote(directory)} -mindepth 1 -maxdepth 1 "
            "-printf '%y\\t%s\\t%p\\n'"
        )
        result = await self._exec(ref, command)
        if result.exit_code != 0:
            if "No such file" in result.stderr:
                raise NotFoundError(f"No such directory: {directory}", operation="list_files")
            raise BackendRejectedError(
                f"list_files failed: {result.stderr.strip()}", operation="list_files"
            )

        entries = []
        for line in result.stdout.splitlines():
            kind, _, rest = line.partition("\t")
            size, _, file_path = rest.partition("\t")
            if not file_path:
                continue
            entries.append(FileEntry(
                name=file_path.rsplit("/", 1)[-1],
                path=file_path,
                is_dir=kind == "d",
                size=int(size) if size.isdigit() else 0,
            ))
        return sorted(entries, key=lambda e: e.name)
