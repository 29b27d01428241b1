"""Shared runtime helpers for MCP integration tests.

Integration tests spawn the server as a subprocess (stdio transport) and talk to
it through an MCP ClientSession. Env setup, session init and result unwrapping
live here so the tests stay short.
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Mapping

from mcp import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client

ROOT = Path(__file__).resolve().parents[2]

_PROVIDER_PREFIXES = ("WITHINGS_", "WHOOP_")


def build_test_env(tmp_path: Path, *, transport: str = "stdio", extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """Build a clean environment for integration tests.

    - Starts from current process env (so PATH, python, etc. stay intact).
    - Drops any provider credentials/tokens from the developer's shell.
    - Points repo root (and therefore .env lookup and the token DB) at tmp_path.
    """
    env = {k: v for k, v in os.environ.items() if not k.startswith(_PROVIDER_PREFIXES)}
    env["MCP_TRANSPORT"] = transport
    env["HLINK_REPO_ROOT"] = str(tmp_path)
    env["HLINK_TOKEN_DB"] = str(Path(tmp_path) / "tokens.sqlite")
    env["HLINK_LOG_LEVEL"] = "WARNING"
    env["PYTHONPATH"] = os.pathsep.join(
        [str(ROOT / "src"), str(ROOT), *([env["PYTHONPATH"]] if env.get("PYTHONPATH") else [])]
    )

    if extra:
        for k, v in extra.items():
            env[str(k)] = str(v)

    return env


@asynccontextmanager
async def mcp_stdio_session(
    module: str,
    *,
    env: Mapping[str, str] | None = None,
    python_executable: str = sys.executable,
) -> AsyncIterator[ClientSession]:
    """Start an MCP server (`python -m <module>`) over stdio and yield an initialized ClientSession."""
    server = StdioServerParameters(
        command=python_executable,
        args=["-m", module],
        env=dict(env) if env is not None else dict(os.environ),
    )

    async with stdio_client(server) as (read, write):
        async with ClientSession(read, write) as session:
            await asyncio.wait_for(session.initialize(), timeout=30)
            yield session


async def list_tool_names(session: ClientSession) -> list[str]:
    tools = await session.list_tools()
    return [t.name for t in tools.tools]


def unwrap_text_result(res: Any) -> str:
    """Return the text of the first content item of a call_tool result."""
    content = getattr(res, "content", None)
    if isinstance(content, list) and content:
        text = getattr(content[0], "text", None)
        if isinstance(text, str):
            return text
    raise AssertionError(f"Unexpected tool result shape: {type(res)} {res!r}")


async def call_tool_text(session: ClientSession, tool_name: str, args: Mapping[str, Any] | None = None) -> str:
    res = await asyncio.wait_for(session.call_tool(tool_name, dict(args or {})), timeout=30)
    return unwrap_text_result(res)


async def call_tool_json(session: ClientSession, tool_name: str, args: Mapping[str, Any] | None = None) -> Any:
    return json.loads(await call_tool_text(session, tool_name, args))


async def assert_tools_present(session: ClientSession, expected: Iterable[str]) -> None:
    names = await list_tool_names(session)
    missing = [t for t in expected if t not in names]
    assert not missing, f"Missing tools: {missing}. Present tools: {sorted(names)}"
