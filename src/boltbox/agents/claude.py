"""Claude Agent SDK client operating on a sandbox session."""

import os
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ResultMessage,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
    create_sdk_mcp_server,
    query,
    tool,
)

from boltbox.exceptions import BoltboxError
from boltbox.sessions.models import SandboxSession
from boltbox.sessions.orchestrator import SessionOrchestrator
from boltbox.streaming.source import EventSource, RawEvent

SANDBOX_SERVER = "sandbox"
SANDBOX_TOOLS = ["run_command", "read_file", "write_file", "list_files"]

RUN_COMMAND_SCHEMA = {
    "type": "object",
    "properties": {
        "command": {"type": "string"},
        "cwd": {"type": "string", "description": "Working directory"},
    },
    "required": ["command"],
}


def _text_result(text: str, is_error: bool = False) -> dict[str, Any]:
    result: dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["is_error"] = True
    return result


def _block_text(content: Any) -> Any:
    """Flatten tool-result content to text where it is a list of text items."""
    if isinstance(content, list):
        return "".join(
            item.get("text", "") for item in content if isinstance(item, dict)
        )
    return content


def build_sandbox_server(orchestrator: SessionOrchestrator, session_id: str) -> Any:
    """Create an in-process MCP server whose tools act on one session's sandbox."""

    @tool("run_command", "Run a shell command in the sandbox", RUN_COMMAND_SCHEMA)
    async def run_command(args: dict[str, Any]) -> dict[str, Any]:
        try:
            result = await orchestrator.run_command(session_id, args["command"], args.get("cwd"))
        except BoltboxError as e:
            return _text_result(f"Error: {e}", is_error=True)
        output = result.stdout
        if result.stderr:
            output += f"\n[stderr]\n{result.stderr}"
        return _text_result(f"{output}\n[exit code {result.exit_code}]", result.exit_code != 0)

    @tool("read_file", "Read a file from the sandbox", {"path": str})
    async def read_file(args: dict[str, Any]) -> dict[str, Any]:
        try:
            content = await orchestrator.read_file(session_id, args["path"])
        except BoltboxError as e:
            return _text_result(f"Error: {e}", is_error=True)
        return _text_result(content.decode(errors="replace"))

    @tool("write_file", "Write a text file in the sandbox", {"path": str, "content": str})
    async def write_file(args: dict[str, Any]) -> dict[str, Any]:
        try:
            await orchestrator.write_file(session_id, args["path"], args["content"].encode())
        except BoltboxError as e:
            return _text_result(f"Error: {e}", is_error=True)
        return _text_result(f"Wrote {args['path']}")

    @tool("list_files", "List a directory in the sandbox", {"path": str})
    async def list_files(args: dict[str, Any]) -> dict[str, Any]:
        try:
            entries = await orchestrator.list_files(session_id, args.get("path") or "/")
        except BoltboxError as e:
            return _text_result(f"Error: {e}", is_error=True)
        lines = [
            f"{entry.path}/" if entry.is_dir else f"{entry.path} ({entry.size} bytes)"
            for entry in entries
        ]
        return _text_result("\n".join(lines) or "(empty)")

    return create_sdk_mcp_server(
        name=SANDBOX_SERVER,
        version="1.0.0",
        tools=[run_command, read_file, write_file, list_files],
    )


class ClaudeAgentClient:
    """Runs a Claude Agent SDK turn whose tools execute in the session's sandbox.

    Emits records in the ``claude`` dialect: ``text``, ``tool_use``,
    ``tool_result`` and a final ``result``.

    Example:
        client = ClaudeAgentClient(orchestrator, model="claude-sonnet-4-5")
        source = await client.invoke(session, "Run the tests")
    """

    dialect = "claude"

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        model: str | None = None,
        system_prompt: str | None = None,
        allowed_tools: list[str] | None = None,
        max_turns: int | None = None,
        permission_mode: str = "bypassPermissions",
        backend: str = "anthropic",
        **kwargs: Any,
    ) -> None:
        """Initialize the client.

        Args:
            orchestrator: Orchestrator proxying tool calls to the sandbox
            model: Model ID
            system_prompt: Custom system prompt
            allowed_tools: Extra SDK tools on top of the sandbox tools
            max_turns: Maximum agent turns per invocation
            permission_mode: SDK permission mode for tool use
            backend: API backend ("anthropic", "bedrock" or "vertex")
            **kwargs: Ignored (for compatibility with other clients)
        """
        self.orchestrator = orchestrator
        self.model = model
        self.system_prompt = system_prompt
        self.allowed_tools = allowed_tools or []
        self.max_turns = max_turns
        self.permission_mode = permission_mode
        self.backend = backend

        # The SDK selects its API backend from the environment
        if backend == "bedrock":
            os.environ["CLAUDE_CODE_USE_BEDROCK"] = "1"
        elif backend == "vertex":
            os.environ["CLAUDE_CODE_USE_VERTEX"] = "1"

    def _build_options(self, session: SandboxSession) -> ClaudeAgentOptions:
        sandbox_tools = [f"mcp__{SANDBOX_SERVER}__{name}" for name in SANDBOX_TOOLS]
        kwargs: dict[str, Any] = {
            "mcp_servers": {
                SANDBOX_SERVER: build_sandbox_server(self.orchestrator, session.session_id),
            },
            "allowed_tools": [*sandbox_tools, *self.allowed_tools],
            "permission_mode": self.permission_mode,
        }
        if self.model:
            kwargs["model"] = self.model
        if self.system_prompt:
            kwargs["system_prompt"] = self.system_prompt
        if self.max_turns is not None:
            kwargs["max_turns"] = self.max_turns
        return ClaudeAgentOptions(**kwargs)

    async def invoke(self, session: SandboxSession, turn: str) -> EventSource:
        session.require_ready("invoke")
        options = self._build_options(session)
        return EventSource(self._records(turn, options), self.dialect)

    async def _records(self, turn: str, options: ClaudeAgentOptions) -> AsyncIterator[RawEvent]:
        tool_names: dict[str, str] = {}

        async with aclosing(query(prompt=turn, options=options)) as messages:
            async for message in messages:
                if isinstance(message, AssistantMessage):
                    for block in message.content:
                        if isinstance(block, TextBlock):
                            yield {"type": "text", "text": block.text}
                        elif isinstance(block, ToolUseBlock):
                            tool_names[block.id] = block.name
                            yield {
                                "type": "tool_use",
                                "id": block.id,
                                "name": block.name,
                                "input": block.input,
                            }

                elif isinstance(message, UserMessage) and isinstance(message.content, list):
                    for block in message.content:
                        if isinstance(block, ToolResultBlock):
                            yield {
                                "type": "tool_result",
                                "tool_use_id": block.tool_use_id,
                                "name": tool_names.get(block.tool_use_id),
                                "content": _block_text(block.content),
                                "is_error": bool(block.is_error),
                            }

                elif isinstance(message, ResultMessage):
                    yield {
                        "type": "result",
                        "subtype": message.subtype,
                        "is_error": message.is_error,
                        "result": message.result,
                        "usage": message.usage,
                    }

    async def close(self) -> None:
        """No-op: every turn runs its own stateless query."""
        pass
