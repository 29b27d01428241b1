"""
Lightweight shared HTTP client for the Withings and WHOOP connectors.

- Centralizes optional timeouts/retries and failure logging.
- Converts non-2xx responses into UpstreamRequestFailed carrying the body text,
  so connectors never deal with requests.HTTPError directly.

No request timeout is applied unless HLINK_HTTP_TIMEOUT is set, and transport
level retries are off unless HLINK_HTTP_RETRIES is set: the only retry the
service performs on purpose is the single token refresh-and-retry.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from hlink_common.errors import UpstreamRequestFailed
from hlink_common.tooling import get_corr_id


logger = logging.getLogger(__name__)


def _env_float(name: str) -> float | None:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return None


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


DEFAULT_RETRY_STATUS = (429, 500, 502, 503, 504)


@dataclass(frozen=True)
class HttpClientConfig:
    timeout: float | None = field(default_factory=lambda: _env_float("HLINK_HTTP_TIMEOUT"))
    retries: int = field(default_factory=lambda: _env_int("HLINK_HTTP_RETRIES", 0))
    backoff: float = 0.4
    retry_statuses: tuple[int, ...] = DEFAULT_RETRY_STATUS
    user_agent: str = field(default_factory=lambda: os.getenv("HLINK_HTTP_USER_AGENT", "health-link-mcp/1.0"))


class HttpClient:
    """A small wrapper around `requests.Session` that raises typed upstream failures."""

    def __init__(self, *, config: HttpClientConfig | None = None, session: requests.Session | None = None) -> None:
        self.config = config or HttpClientConfig()
        self.session = session or requests.Session()
        self._configure_session(self.session, self.config)

    @staticmethod
    def _configure_session(session: requests.Session, config: HttpClientConfig) -> None:
        # Always set a UA; allow callers to override per-request.
        session.headers.setdefault("User-Agent", config.user_agent)

        if config.retries <= 0:
            return

        retry = Retry(
            total=config.retries,
            connect=config.retries,
            read=config.retries,
            status=config.retries,
            backoff_factor=config.backoff,
            status_forcelist=config.retry_statuses,
            allowed_methods=frozenset(["HEAD", "GET", "OPTIONS"]),
            respect_retry_after_header=True,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

    def request(
        self,
        method: str,
        url: str,
        *,
        provider: str,
        auth_statuses: Iterable[int] = (401,),
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        data: Any | None = None,
        **kwargs: Any,
    ) -> Response:
        """Perform an HTTP request; non-2xx raises UpstreamRequestFailed (or UpstreamUnauthorized)."""
        t0 = time.perf_counter()
        resp = self.session.request(
            method=method,
            url=url,
            headers=dict(headers) if headers else None,
            params=dict(params) if params else None,
            data=data,
            timeout=self.config.timeout,
            **kwargs,
        )
        if resp.ok:
            return resp

        ms = int((time.perf_counter() - t0) * 1000)
        body = resp.text
        logger.warning(
            "HTTP %s %s failed (provider=%s, status=%s, ms=%s, corr_id=%s): %s",
            method.upper(),
            url,
            provider,
            resp.status_code,
            ms,
            get_corr_id(),
            body[:500],
        )
        raise UpstreamRequestFailed.from_response(provider, resp.status_code, body, auth_statuses=auth_statuses)

    def get_json(
        self,
        url: str,
        *,
        provider: str,
        auth_statuses: Iterable[int] = (401,),
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        resp = self.request("GET", url, provider=provider, auth_statuses=auth_statuses, headers=headers, params=params)
        return resp.json()

    def post_form(
        self,
        url: str,
        form: Mapping[str, Any],
        *,
        provider: str,
        auth_statuses: Iterable[int] = (401,),
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        hdrs = {"Content-Type": "application/x-www-form-urlencoded", **dict(headers or {})}
        resp = self.request("POST", url, provider=provider, auth_statuses=auth_statuses, headers=hdrs, data=dict(form))
        return resp.json()


def bearer_headers(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token.strip()}"}


# A single shared client is sufficient for the current codebase.
DEFAULT_HTTP_CLIENT = HttpClient()
