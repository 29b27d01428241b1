from __future__ import annotations

import pytest

from hlink_config.settings import load_settings
from tests.helpers.fakes import NOW_MS
from tests.helpers.mcp_runtime import build_test_env, mcp_stdio_session

CONFIGURED_ENV = {
    "WITHINGS_CLIENT_ID": "w-id",
    "WITHINGS_CLIENT_SECRET": "w-secret",
    "WHOOP_CLIENT_ID": "h-id",
    "WHOOP_CLIENT_SECRET": "h-secret",
    "HLINK_TOKEN_BACKEND": "env",
}


@pytest.fixture
def settings():
    """Both providers configured, tokens in memory only."""
    return load_settings(CONFIGURED_ENV)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return lambda: NOW_MS


@pytest.fixture
async def server_session(tmp_path):
    """Initialized session for the Health-Link MCP server (stdio transport), no credentials."""
    env = build_test_env(tmp_path)
    async with mcp_stdio_session("hlink_mcp.server", env=env) as session:
        yield session


@pytest.fixture
async def configured_session(tmp_path):
    """Same server with client credentials set but no tokens stored."""
    env = build_test_env(tmp_path, extra=CONFIGURED_ENV)
    async with mcp_stdio_session("hlink_mcp.server", env=env) as session:
        yield session
