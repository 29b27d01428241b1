from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from hlink_common.errors import RefreshFailed, UpstreamRequestFailed, UpstreamUnauthorized
from hlink_config.settings import load_settings
from hlink_mcp.connectors.whoop import fetch as whoop_fetch
from hlink_mcp.connectors.whoop import oauth as whoop_oauth
from hlink_mcp.connectors.withings import oauth as withings_oauth
from hlink_mcp.connectors.withings.fetch import fetch_measure_groups, unwrap_body
from hlink_mcp.core_infrastructure.http_client import HttpClient, HttpClientConfig
from hlink_mcp.core_infrastructure.token_store import TokenRecord
from tests.helpers.fakes import FakeResponse, FakeSession

SETTINGS = load_settings({
    "HLINK_TOKEN_BACKEND": "env",
    "WITHINGS_CLIENT_ID": "w-id",
    "WITHINGS_CLIENT_SECRET": "w-secret",
    "WHOOP_CLIENT_ID": "h-id",
    "WHOOP_CLIENT_SECRET": "h-secret",
})


def _http(*responses):
    session = FakeSession(*responses)
    return HttpClient(config=HttpClientConfig(timeout=None, retries=0), session=session), session


def test_whoop_authorization_url():
    url = whoop_oauth.authorization_url(SETTINGS.whoop.credentials(), "st")
    q = parse_qs(urlparse(url).query)
    assert url.startswith(whoop_oauth.WHOOP_AUTH_URL)
    assert q["client_id"] == ["h-id"]
    assert q["state"] == ["st"]
    assert q["response_type"] == ["code"]
    assert "read:recovery" in q["scope"][0]
    assert q["scope"][0].split()[0] == "offline"


def test_whoop_exchange_code_posts_form():
    http, session = _http(FakeResponse(200, {"access_token": "a", "refresh_token": "r", "expires_in": 3600}))
    rec = whoop_oauth.exchange_code(SETTINGS.whoop.credentials(), " abc ", http=http)

    assert rec.access_token == "a"
    assert rec.expires_at > 0
    form = session.calls[0]["data"]
    assert form["grant_type"] == "authorization_code"
    assert form["code"] == "abc"
    assert form["client_secret"] == "h-secret"


def test_whoop_refresh_requests_offline_scope():
    http, session = _http(FakeResponse(200, {"access_token": "a2", "refresh_token": "r2", "expires_in": 60}))
    creds = SETTINGS.whoop.credentials(TokenRecord("a", "r", 0))
    rec = whoop_oauth.refresh_tokens(creds, http=http)

    assert rec.refresh_token == "r2"
    form = session.calls[0]["data"]
    assert form["grant_type"] == "refresh_token"
    assert form["refresh_token"] == "r"
    assert form["scope"].startswith("offline ")


def test_whoop_refresh_rejection_is_refresh_failed():
    http, _ = _http(FakeResponse(400, None, text='{"error":"invalid_grant"}'))
    with pytest.raises(RefreshFailed, match="invalid_grant"):
        whoop_oauth.refresh_tokens(SETTINGS.whoop.credentials(TokenRecord("a", "r", 0)), http=http)


def test_refresh_without_refresh_token():
    with pytest.raises(RefreshFailed):
        whoop_oauth.refresh_tokens(SETTINGS.whoop.credentials(), http=None)
    with pytest.raises(RefreshFailed):
        withings_oauth.refresh_tokens(SETTINGS.withings.credentials(), http=None)


def test_whoop_fetch_window_and_first_page_only():
    http, session = _http(FakeResponse(200, {"records": [{"id": 1}], "next_token": "more"}))
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    end = datetime(2024, 1, 8, tzinfo=timezone.utc)

    out = whoop_fetch.fetch_cycles("tok", start=start, end=end, http=http)

    assert out == [{"id": 1}]
    call = session.calls[0]
    assert call["url"] == f"{whoop_fetch.WHOOP_API_BASE}/v2/cycle"
    assert call["params"] == {"start": "2024-01-01T00:00:00.000Z", "end": "2024-01-08T00:00:00.000Z"}
    assert call["headers"]["Authorization"] == "Bearer tok"


def test_whoop_404_is_token_rejection():
    http, _ = _http(FakeResponse(404, None, text=""))
    with pytest.raises(UpstreamUnauthorized):
        whoop_fetch.fetch_workouts("tok", http=http)


def test_withings_authorization_url():
    url = withings_oauth.authorization_url(SETTINGS.withings.credentials(), "st")
    q = parse_qs(urlparse(url).query)
    assert q["scope"] == ["user.metrics"]
    assert q["redirect_uri"] == ["http://localhost:3000/callback"]


def test_withings_exchange_unwraps_body():
    http, session = _http(FakeResponse(200, {"status": 0, "body": {"access_token": "a", "refresh_token": "r", "expires_in": 10800}}))
    rec = withings_oauth.exchange_code(SETTINGS.withings.credentials(), "c", http=http)

    assert (rec.access_token, rec.refresh_token) == ("a", "r")
    assert session.calls[0]["data"]["action"] == "requesttoken"


def test_withings_refresh_rejected_in_body():
    http, _ = _http(FakeResponse(200, {"status": 503, "error": "Invalid Params"}))
    with pytest.raises(RefreshFailed):
        withings_oauth.refresh_tokens(SETTINGS.withings.credentials(TokenRecord("a", "r", 0)), http=http)


def test_withings_body_status_classification():
    with pytest.raises(UpstreamUnauthorized):
        unwrap_body({"status": 401, "error": "XRequestID: Not provided"})
    with pytest.raises(UpstreamRequestFailed) as ei:
        unwrap_body({"status": 2555, "error": "An unknown error occurred"})
    assert not isinstance(ei.value, UpstreamUnauthorized)
    assert unwrap_body({"status": 0}) == {}


def test_withings_measure_request():
    http, session = _http(FakeResponse(200, {"status": 0, "body": {"measuregrps": [{"date": 1, "measures": []}]}}))
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)

    groups = fetch_measure_groups("tok", start=start, http=http)

    assert groups == [{"date": 1, "measures": []}]
    form = session.calls[0]["data"]
    assert form["action"] == "getmeas"
    assert form["category"] == "1"
    assert form["meastypes"] == "1,6,8,76,77,88"
    assert form["startdate"] == "1704067200"
    assert "enddate" not in form
