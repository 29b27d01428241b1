from __future__ import annotations

import logging
from urllib.parse import urlencode

import requests

from hlink_common.errors import RefreshFailed, UpstreamRequestFailed
from hlink_config.settings import Credentials
from hlink_mcp.connectors.withings.fetch import PROVIDER, WITHINGS_API_BASE, unwrap_body
from hlink_mcp.core_infrastructure.http_client import DEFAULT_HTTP_CLIENT, HttpClient
from hlink_mcp.core_infrastructure.token_store import TokenRecord

logger = logging.getLogger(__name__)

WITHINGS_AUTH_URL = "https://account.withings.com/oauth2_user/authorize2"
WITHINGS_TOKEN_URL = f"{WITHINGS_API_BASE}/v2/oauth2"
WITHINGS_SCOPE = "user.metrics"


def authorization_url(creds: Credentials, state: str) -> str:
    params = {
        "response_type": "code",
        "client_id": creds.client_id,
        "redirect_uri": creds.redirect_uri,
        "scope": WITHINGS_SCOPE,
        "state": state,
    }
    return f"{WITHINGS_AUTH_URL}?{urlencode(params)}"


def _request_token(form: dict, *, http: HttpClient | None) -> TokenRecord:
    client = http or DEFAULT_HTTP_CLIENT
    data = client.post_form(WITHINGS_TOKEN_URL, {"action": "requesttoken", **form}, provider=PROVIDER)
    return TokenRecord.from_token_response(unwrap_body(data))


def exchange_code(creds: Credentials, code: str, *, http: HttpClient | None = None) -> TokenRecord:
    record = _request_token(
        {
            "grant_type": "authorization_code",
            "client_id": creds.client_id,
            "client_secret": creds.client_secret,
            "code": code.strip(),
            "redirect_uri": creds.redirect_uri,
        },
        http=http,
    )
    logger.info("Withings authorization code exchanged")
    return record


def refresh_tokens(creds: Credentials, *, http: HttpClient | None = None) -> TokenRecord:
    """Trade the stored refresh token for a new pair; any rejection becomes RefreshFailed."""
    if not creds.refresh_token:
        raise RefreshFailed(PROVIDER, "No refresh token available")

    logger.info("Refreshing Withings access token")
    try:
        record = _request_token(
            {
                "grant_type": "refresh_token",
                "client_id": creds.client_id,
                "client_secret": creds.client_secret,
                "refresh_token": creds.refresh_token,
            },
            http=http,
        )
    except UpstreamRequestFailed as e:
        logger.error("Withings token refresh failed (status=%s): %s", e.status, e.body)
        raise RefreshFailed(PROVIDER, e.body) from e
    except requests.RequestException as e:
        logger.error("Withings token endpoint unreachable: %s", e)
        raise RefreshFailed(PROVIDER, str(e)) from e

    logger.info("Withings token refreshed")
    return record
