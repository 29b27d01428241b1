import logging
from datetime import datetime
from typing import Any, Dict, List

from hlink_mcp.connectors.units import iso_z
from hlink_mcp.core_infrastructure.http_client import DEFAULT_HTTP_CLIENT, HttpClient, bearer_headers


logger = logging.getLogger(__name__)

PROVIDER = "whoop"
WHOOP_API_BASE = "https://api.prod.whoop.com/developer"

CYCLES_PATH = "/v2/cycle"
RECOVERIES_PATH = "/v2/recovery"
WORKOUTS_PATH = "/v2/activity/workout"

# WHOOP answers 404 (not 401) on collection endpoints when the token belongs to
# a misconfigured or revoked app, so both count as a rejected token.
WHOOP_AUTH_STATUSES = (401, 404)


def _window_params(start: datetime | None, end: datetime | None, limit: int | None) -> Dict[str, str]:
    params: Dict[str, str] = {}
    if start:
        params["start"] = iso_z(start)
    if end:
        params["end"] = iso_z(end)
    if limit:
        params["limit"] = str(int(limit))
    return params


def fetch_collection(
    access_token: str,
    path: str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = None,
    http: HttpClient | None = None,
) -> List[Dict[str, Any]]:
    """
    Fetch one page of a WHOOP collection endpoint.

    Only the first page is returned: `next_token` is logged but not followed.
    """
    client = http or DEFAULT_HTTP_CLIENT
    url = f"{WHOOP_API_BASE}{path}"
    logger.debug("Fetching WHOOP %s", path)

    data = client.get_json(
        url,
        provider=PROVIDER,
        auth_statuses=WHOOP_AUTH_STATUSES,
        headers=bearer_headers(access_token),
        params=_window_params(start, end, limit),
    )

    if data.get("next_token"):
        logger.info("WHOOP %s has more pages; returning the first page only", path)
    return list(data.get("records") or [])


def fetch_cycles(access_token: str, **kwargs: Any) -> List[Dict[str, Any]]:
    return fetch_collection(access_token, CYCLES_PATH, **kwargs)


def fetch_recoveries(access_token: str, **kwargs: Any) -> List[Dict[str, Any]]:
    return fetch_collection(access_token, RECOVERIES_PATH, **kwargs)


def fetch_workouts(access_token: str, **kwargs: Any) -> List[Dict[str, Any]]:
    return fetch_collection(access_token, WORKOUTS_PATH, **kwargs)
