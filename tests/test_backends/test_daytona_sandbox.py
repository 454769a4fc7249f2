"""Tests for the Daytona workspace backend."""

import base64
import json

import httpx
import pytest

from boltbox.backends.sandbox.daytona import DaytonaSandbox
from boltbox.exceptions import BackendUnreachableError, NotFoundError
from boltbox.protocols.sandbox import SandboxSpec
from boltbox.sessions import OwnerKey


@pytest.fixture
def requests_seen():
    return []


@pytest.fixture
def daytona(requests_seen):
    """Daytona backend answering from a canned handler."""

    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        path = request.url.path
        if path == "/workspaces" and request.method == "POST":
            return httpx.Response(200, json={"id": "ws-123"})
        if path.endswith("/exec"):
            return httpx.Response(200, json={"output": "done", "exitCode": 1})
        if path.endswith("/files/download"):
            if request.url.params["path"].endswith("missing.txt"):
                return httpx.Response(404, json={"error": "file not found"})
            return httpx.Response(200, content=b"data")
        if path.endswith("/stop"):
            return httpx.Response(409)
        if path.endswith("/start"):
            return httpx.Response(500, json={"message": "node unavailable"})
        return httpx.Response(204)

    return DaytonaSandbox(api_key="dt-key", transport=httpx.MockTransport(handler))


class TestDaytonaSandbox:
    """Tests for DaytonaSandbox."""

    @pytest.mark.asyncio
    async def test_create(self, daytona, requests_seen):
        """Workspaces are named after the session and expose the agent port."""
        ref = await daytona.create(
            OwnerKey("u", "p"),
            SandboxSpec(image="agent:1", ports=[3000], metadata={"session_id": "sess-9"}),
        )

        assert ref == "ws-123"
        request = requests_seen[0]
        assert request.headers["Authorization"] == "Bearer dt-key"
        body = json.loads(request.content)
        assert body["name"] == "sess-9"
        assert body["image"] == "agent:1"
        assert body["ports"] == [3000]
        assert body["labels"]["owner"] == "u/p"
        assert body["autoStart"] is True

    @pytest.mark.asyncio
    async def test_create_defaults(self, daytona, requests_seen):
        await daytona.create(OwnerKey("u", "p"), SandboxSpec())

        body = json.loads(requests_seen[0].content)
        assert body["image"] == "opencode-agent"
        assert body["ports"] == [8080]
        assert body["name"].startswith("ws-")

    @pytest.mark.asyncio
    async def test_run_command_wraps_shell(self, daytona, requests_seen):
        result = await daytona.run_command("ws-123", "ls | wc -l")

        assert result.stdout == "done"
        assert result.exit_code == 1
        body = json.loads(requests_seen[0].content)
        assert body == {"command": "sh -c 'ls | wc -l'", "cwd": "/home/daytona"}

    @pytest.mark.asyncio
    async def test_files(self, daytona, requests_seen):
        """Uploads are base64 encoded; paths resolve under the workdir."""
        await daytona.write_file("ws-123", "app/main.py", b"print()")
        assert await daytona.read_file("ws-123", "/etc/hosts") == b"data"

        upload = json.loads(requests_seen[0].content)
        assert upload["path"] == "/home/daytona/app/main.py"
        assert base64.b64decode(upload["content"]) == b"print()"
        assert requests_seen[1].url.params["path"] == "/etc/hosts"

    @pytest.mark.asyncio
    async def test_read_missing(self, daytona):
        with pytest.raises(NotFoundError, match="file not found"):
            await daytona.read_file("ws-123", "missing.txt")

    @pytest.mark.asyncio
    async def test_pause_tolerates_conflict(self, daytona, requests_seen):
        await daytona.pause("ws-123")
        assert requests_seen[0].url.path == "/workspaces/ws-123/stop"

    @pytest.mark.asyncio
    async def test_resume_server_error(self, daytona):
        with pytest.raises(BackendUnreachableError, match="node unavailable"):
            await daytona.resume("ws-123")

    @pytest.mark.asyncio
    async def test_destroy(self, daytona, requests_seen):
        await daytona.destroy("ws-123")
        assert requests_seen[0].method == "DELETE"
