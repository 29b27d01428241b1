from __future__ import annotations

import logging
from urllib.parse import urlencode

import requests

from hlink_common.errors import RefreshFailed, UpstreamRequestFailed
from hlink_config.settings import Credentials
from hlink_mcp.core_infrastructure.http_client import DEFAULT_HTTP_CLIENT, HttpClient
from hlink_mcp.core_infrastructure.token_store import TokenRecord

logger = logging.getLogger(__name__)

PROVIDER = "whoop"
WHOOP_AUTH_URL = "https://api.prod.whoop.com/oauth/oauth2/auth"
WHOOP_TOKEN_URL = "https://api.prod.whoop.com/oauth/oauth2/token"

WHOOP_SCOPES = " ".join([
    "read:recovery",
    "read:cycles",
    "read:workout",
    "read:sleep",
    "read:profile",
    "read:body_measurement",
])
# WHOOP only issues refresh tokens for grants that include "offline"; request it at
# authorization and again on every refresh.
WHOOP_OFFLINE_SCOPES = f"offline {WHOOP_SCOPES}"


def authorization_url(creds: Credentials, state: str) -> str:
    params = {
        "response_type": "code",
        "client_id": creds.client_id,
        "redirect_uri": creds.redirect_uri,
        "scope": WHOOP_OFFLINE_SCOPES,
        "state": state,
    }
    return f"{WHOOP_AUTH_URL}?{urlencode(params)}"


def exchange_code(creds: Credentials, code: str, *, http: HttpClient | None = None) -> TokenRecord:
    client = http or DEFAULT_HTTP_CLIENT
    body = client.post_form(
        WHOOP_TOKEN_URL,
        {
            "grant_type": "authorization_code",
            "code": code.strip(),
            "redirect_uri": creds.redirect_uri,
            "client_id": creds.client_id,
            "client_secret": creds.client_secret,
        },
        provider=PROVIDER,
    )
    logger.info("WHOOP authorization code exchanged")
    return TokenRecord.from_token_response(body)


def refresh_tokens(creds: Credentials, *, http: HttpClient | None = None) -> TokenRecord:
    """Trade the stored refresh token for a new pair; any rejection becomes RefreshFailed."""
    if not creds.refresh_token:
        raise RefreshFailed(PROVIDER, "No refresh token available")

    client = http or DEFAULT_HTTP_CLIENT
    logger.info("Refreshing WHOOP access token")
    try:
        body = client.post_form(
            WHOOP_TOKEN_URL,
            {
                "grant_type": "refresh_token",
                "refresh_token": creds.refresh_token.strip(),
                "client_id": creds.client_id,
                "client_secret": creds.client_secret,
                "scope": WHOOP_OFFLINE_SCOPES,
            },
            provider=PROVIDER,
        )
    except UpstreamRequestFailed as e:
        logger.error("WHOOP token refresh failed (status=%s): %s", e.status, e.body)
        raise RefreshFailed(PROVIDER, e.body) from e
    except requests.RequestException as e:
        logger.error("WHOOP token endpoint unreachable: %s", e)
        raise RefreshFailed(PROVIDER, str(e)) from e

    logger.info("WHOOP token refreshed")
    return TokenRecord.from_token_response(body)
