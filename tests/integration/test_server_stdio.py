from __future__ import annotations

import pytest

from tests.helpers.mcp_runtime import assert_tools_present, call_tool_json, call_tool_text

TOOLS = [
    "healthz",
    "withings_get_auth_url",
    "withings_exchange_code",
    "withings_get_weight",
    "withings_get_latest_weight",
    "withings_refresh_token",
    "whoop_get_auth_url",
    "whoop_exchange_code",
    "whoop_get_daily_stats",
    "whoop_get_workouts",
    "whoop_refresh_token",
]


@pytest.mark.integration
@pytest.mark.anyio
async def test_healthz_and_tools(server_session):
    await assert_tools_present(server_session, TOOLS)

    payload = await call_tool_json(server_session, "healthz", {})
    assert payload.get("ok") is True


@pytest.mark.integration
@pytest.mark.anyio
async def test_missing_credentials_are_reported(server_session):
    payload = await call_tool_json(server_session, "whoop_get_daily_stats", {"days": 7})

    assert payload["error"]["kind"] == "configuration_missing"
    assert payload["error"]["code"] == -32002
    assert "WHOOP_CLIENT_ID" in payload["error"]["message"]


@pytest.mark.integration
@pytest.mark.anyio
async def test_auth_url_then_not_authorized(configured_session):
    url = await call_tool_text(configured_session, "withings_get_auth_url", {"state": "s1"})
    assert url.startswith("https://account.withings.com/oauth2_user/authorize2?")
    assert "client_id=w-id" in url

    payload = await call_tool_json(configured_session, "whoop_get_workouts", {})
    assert payload["error"]["kind"] == "not_authorized"
    assert payload["error"]["code"] == -32001


@pytest.mark.integration
@pytest.mark.anyio
async def test_bad_window_is_bad_request(configured_session):
    payload = await call_tool_json(configured_session, "withings_get_weight", {"start_date": "last tuesday"})
    assert payload["error"]["kind"] == "bad_request"
