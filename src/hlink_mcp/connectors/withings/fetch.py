import json
import logging
from datetime import datetime
from typing import Any, Dict, List

from hlink_common.errors import UpstreamRequestFailed
from hlink_mcp.connectors.units import epoch_seconds
from hlink_mcp.core_infrastructure.http_client import DEFAULT_HTTP_CLIENT, HttpClient, bearer_headers


logger = logging.getLogger(__name__)

PROVIDER = "withings"
WITHINGS_API_BASE = "https://wbsapi.withings.net"

# Measurement type codes
MEAS_WEIGHT = 1
MEAS_FAT_RATIO = 6
MEAS_FAT_MASS = 8
MEAS_MUSCLE_MASS = 76
MEAS_HYDRATION = 77
MEAS_BONE_MASS = 88

MEAS_TYPES = (MEAS_WEIGHT, MEAS_FAT_RATIO, MEAS_FAT_MASS, MEAS_MUSCLE_MASS, MEAS_HYDRATION, MEAS_BONE_MASS)

# Withings reports errors in the JSON body with HTTP 200; status 401 is a rejected token.
WITHINGS_AUTH_STATUSES = (401,)


def unwrap_body(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return `body` of a Withings envelope or raise when `status` is not 0."""
    status = data.get("status")
    if status != 0:
        raise UpstreamRequestFailed.from_response(
            PROVIDER,
            status if isinstance(status, int) else None,
            json.dumps(data, ensure_ascii=False),
            auth_statuses=WITHINGS_AUTH_STATUSES,
        )
    return data.get("body") or {}


def fetch_measure_groups(
    access_token: str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    last_update: datetime | None = None,
    http: HttpClient | None = None,
) -> List[Dict[str, Any]]:
    """Fetch real (category=1) body measurements, optionally bounded by a window in epoch seconds."""
    client = http or DEFAULT_HTTP_CLIENT

    form: Dict[str, str] = {
        "action": "getmeas",
        "meastypes": ",".join(str(t) for t in MEAS_TYPES),
        "category": "1",
    }
    if start:
        form["startdate"] = str(epoch_seconds(start))
    if end:
        form["enddate"] = str(epoch_seconds(end))
    if last_update:
        form["lastupdate"] = str(epoch_seconds(last_update))

    data = client.post_form(
        f"{WITHINGS_API_BASE}/measure",
        form,
        provider=PROVIDER,
        auth_statuses=WITHINGS_AUTH_STATUSES,
        headers=bearer_headers(access_token),
    )
    body = unwrap_body(data)
    groups = list(body.get("measuregrps") or [])
    logger.debug("Withings returned %d measure groups", len(groups))
    return groups
