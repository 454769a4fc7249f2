"""Tests for the E2B sandbox backend."""

import json

import httpx
import pytest

from boltbox.backends.sandbox.e2b import E2BSandbox
from boltbox.exceptions import BackendRejectedError, BackendUnreachableError, NotFoundError
from boltbox.protocols.sandbox import SandboxSpec
from boltbox.sessions import OwnerKey


class FakeE2B:
    """Records requests and answers like the E2B API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: dict[tuple[str, str], httpx.Response] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key in self.responses:
            return self.responses[key]
        if key == ("POST", "/sandboxes"):
            return httpx.Response(201, json={"sandboxID": "sbx-1", "envdAccessToken": "tok"})
        if request.url.path.endswith("/commands"):
            return httpx.Response(200, json={"stdout": "ok\n", "stderr": "", "exitCode": 0})
        return httpx.Response(200, content=b"")

    def backend(self) -> E2BSandbox:
        return E2BSandbox(api_key="e2b-key", transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake():
    return FakeE2B()


class TestE2BSandbox:
    """Tests for E2BSandbox."""

    def test_requires_api_key(self):
        with pytest.raises(ValueError, match="api_key"):
            E2BSandbox()

    @pytest.mark.asyncio
    async def test_create(self, fake):
        """Create posts the template and returns the sandbox id."""
        backend = fake.backend()

        ref = await backend.create(
            OwnerKey("u", "p"),
            SandboxSpec(template="agent", env={"A": "1"}, metadata={"session_id": "sess-1"}),
        )

        assert ref == "sbx-1"
        request = fake.requests[0]
        assert request.url == "https://api.e2b.dev/sandboxes"
        assert request.headers["X-API-Key"] == "e2b-key"
        body = json.loads(request.content)
        assert body["templateID"] == "agent"
        assert body["envVars"] == {"A": "1"}
        assert body["metadata"] == {"session_id": "sess-1", "owner": "u/p"}

    @pytest.mark.asyncio
    async def test_create_without_id_rejected(self, fake):
        fake.responses[("POST", "/sandboxes")] = httpx.Response(201, json={})
        with pytest.raises(BackendRejectedError):
            await fake.backend().create(OwnerKey("u", "p"), SandboxSpec())

    @pytest.mark.asyncio
    async def test_run_command(self, fake):
        backend = fake.backend()
        result = await backend.run_command("sbx-1", "echo ok", cwd="/home/user")

        assert result.stdout == "ok\n"
        assert result.exit_code == 0
        assert json.loads(fake.requests[0].content) == {"command": "echo ok", "cwd": "/home/user"}

    @pytest.mark.asyncio
    async def test_files_use_envd_with_access_token(self, fake):
        """File calls go to the sandbox's envd host with its token."""
        backend = fake.backend()
        await backend.create(OwnerKey("u", "p"), SandboxSpec())
        fake.responses[("GET", "/files")] = httpx.Response(200, content=b"hello")

        await backend.write_file("sbx-1", "notes.txt", b"hello")
        content = await backend.read_file("sbx-1", "notes.txt")

        assert content == b"hello"
        upload, download = fake.requests[1], fake.requests[2]
        assert upload.url.host == "49983-sbx-1.e2b.app"
        assert upload.url.params["path"] == "/home/user/notes.txt"
        assert upload.headers["X-Access-Token"] == "tok"
        assert upload.headers["Content-Type"].startswith("multipart/form-data")
        assert download.url.params["path"] == "/home/user/notes.txt"

    @pytest.mark.asyncio
    async def test_read_missing_file(self, fake):
        fake.responses[("GET", "/files")] = httpx.Response(404, json={"message": "not found"})
        with pytest.raises(NotFoundError):
            await fake.backend().read_file("sbx-1", "/nope")

    @pytest.mark.asyncio
    async def test_list_files_parses_find_output(self, fake):
        fake.responses[("POST", "/v2/sandboxes/sbx-1/commands")] = httpx.Response(
            200,
            json={"stdout": "d\t4096\t/home/user/src\nf\t12\t/home/user/a.txt\n", "exitCode": 0},
        )

        entries = await fake.backend().list_files("sbx-1", "/home/user")

        assert [(e.name, e.is_dir, e.size) for e in entries] == [("a.txt", False, 12), ("src", True, 4096)]

    @pytest.mark.asyncio
    async def test_pause_resume_tolerate_conflict(self, fake):
        """409 means the sandbox is already in the requested state."""
        fake.responses[("POST", "/sandboxes/sbx-1/pause")] = httpx.Response(409)
        fake.responses[("POST", "/sandboxes/sbx-1/resume")] = httpx.Response(409)
        backend = fake.backend()

        await backend.pause("sbx-1")
        await backend.resume("sbx-1")

    @pytest.mark.asyncio
    async def test_destroy_tolerates_missing(self, fake):
        fake.responses[("DELETE", "/sandboxes/sbx-1")] = httpx.Response(404)
        await fake.backend().destroy("sbx-1")

    @pytest.mark.asyncio
    async def test_server_error_is_unreachable(self, fake):
        fake.responses[("POST", "/sandboxes")] = httpx.Response(503, json={"message": "overloaded"})
        with pytest.raises(BackendUnreachableError, match="overloaded") as exc:
            await fake.backend().create(OwnerKey("u", "p"), SandboxSpec())
        assert exc.value.operation == "create"

    @pytest.mark.asyncio
    async def test_client_error_is_rejected(self, fake):
        fake.responses[("POST", "/sandboxes")] = httpx.Response(
            429, json={"errors": [{"message": "quota exceeded"}]}
        )
        with pytest.raises(BackendRejectedError, match="quota exceeded"):
            await fake.backend().create(OwnerKey("u", "p"), SandboxSpec())

    @pytest.mark.asyncio
    async def test_transport_failure_is_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        backend = E2BSandbox(api_key="k", transport=httpx.MockTransport(handler))
        with pytest.raises(BackendUnreachableError):
            await backend.pause("sbx-1")
