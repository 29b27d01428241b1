"""Maps tool names to provider operations run through the auto-refresh wrapper."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from hlink_common.errors import BadRequest, UnknownTool
from hlink_common.tooling import to_text
from hlink_config.settings import WHOOP, WITHINGS, Settings
from hlink_mcp.connectors.whoop import fetch as whoop_fetch
from hlink_mcp.connectors.whoop import oauth as whoop_oauth
from hlink_mcp.connectors.whoop.parse import parse_daily_stats, parse_workouts
from hlink_mcp.connectors.withings import oauth as withings_oauth
from hlink_mcp.connectors.withings.fetch import fetch_measure_groups
from hlink_mcp.connectors.withings.parse import latest_weight, parse_weight_groups
from hlink_mcp.core_infrastructure.http_client import HttpClient
from hlink_mcp.core_infrastructure.token_store import (
    WHOOP_TOKEN_KEY,
    WITHINGS_TOKEN_KEY,
    DurableTokenStore,
    SqliteKeyValueStore,
    StaticTokenStore,
    TokenRecord,
    now_ms,
)
from hlink_mcp.domain.auto_refresh import AutoRefresher
from hlink_mcp.domain.ports import TokenStorePort

logger = logging.getLogger(__name__)

LATEST_WEIGHT_LOOKBACK_DAYS = 30

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]

TOOL_DESCRIPTIONS: Dict[str, str] = {
    "withings_get_auth_url": "Get the Withings OAuth authorization URL. Visit it to authorize access to your measurements.",
    "withings_exchange_code": "Exchange a Withings authorization code for access and refresh tokens",
    "withings_get_weight": "Get weight measurements from Withings (weight, fat ratio, fat/muscle/bone mass, hydration)",
    "withings_get_latest_weight": "Get the most recent weight measurement from Withings (last 30 days)",
    "withings_refresh_token": "Manually refresh the Withings access token",
    "whoop_get_auth_url": "Get the WHOOP OAuth authorization URL. Visit it to authorize access to your WHOOP data.",
    "whoop_exchange_code": "Exchange a WHOOP authorization code for access and refresh tokens",
    "whoop_get_daily_stats": "Get daily stats from WHOOP including calories burned, strain, heart rate, and recovery",
    "whoop_get_workouts": "Get workout data from WHOOP including sport, duration, strain, calories, and heart rate",
    "whoop_refresh_token": "Manually refresh the WHOOP access token",
}


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    handler: Handler


def build_token_stores(settings: Settings) -> Dict[str, TokenStorePort]:
    """One store per provider, backed by SQLite or by the environment only."""
    static = {
        name: StaticTokenStore(settings.provider(name).access_token, settings.provider(name).refresh_token)
        for name in (WITHINGS, WHOOP)
    }
    if not settings.durable_tokens:
        return dict(static)

    kv = SqliteKeyValueStore(settings.token_db_path)
    return {
        WITHINGS: DurableTokenStore(kv, WITHINGS_TOKEN_KEY, fallback=static[WITHINGS]),
        WHOOP: DurableTokenStore(kv, WHOOP_TOKEN_KEY, fallback=static[WHOOP]),
    }


def _parse_date_arg(name: str, value: Any) -> datetime:
    """YYYY-MM-DD means midnight UTC; full timestamps keep their offset (UTC when naive)."""
    s = str(value).strip()
    try:
        if len(s) == 10 and s[4] == "-" and s[7] == "-":
            return datetime.fromisoformat(s).replace(tzinfo=timezone.utc)
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError as e:
        raise BadRequest(f"{name} must be an ISO date (YYYY-MM-DD) or timestamp, got {value!r}") from e
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def resolve_window(
    args: Mapping[str, Any],
    *,
    now: datetime,
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """`days` (when positive) wins over start_date/end_date and means [now - days, now]."""
    days = args.get("days")
    if days is not None and days != 0:
        if isinstance(days, bool) or (isinstance(days, float) and not days.is_integer()):
            raise BadRequest(f"days must be an integer, got {days!r}")
        try:
            n = int(days)
        except (TypeError, ValueError) as e:
            raise BadRequest(f"days must be an integer, got {days!r}") from e
        if n < 0:
            raise BadRequest("days must be positive")
        return now - timedelta(days=n), now

    start = _parse_date_arg("start_date", args["start_date"]) if args.get("start_date") else None
    end = _parse_date_arg("end_date", args["end_date"]) if args.get("end_date") else None
    return start, end


class ToolDispatcher:
    """
    Tool registry for both providers.

    Every data tool goes through the provider's AutoRefresher; results are
    normalized records serialized to JSON text.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        stores: Mapping[str, TokenStorePort] | None = None,
        http: HttpClient | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.settings = settings
        self.http = http
        self.clock = clock
        self.stores = dict(stores) if stores is not None else build_token_stores(settings)

        self.withings = AutoRefresher(WITHINGS, self.stores[WITHINGS], self._refresh_withings, clock=clock)
        self.whoop = AutoRefresher(WHOOP, self.stores[WHOOP], self._refresh_whoop, clock=clock)

        self._tools: Dict[str, ToolSpec] = {t.name: t for t in self._build_tools()}

    # -- wiring ---------------------------------------------------------------

    def _refresh_withings(self, record: TokenRecord) -> TokenRecord:
        return withings_oauth.refresh_tokens(self.settings.withings.credentials(record), http=self.http)

    def _refresh_whoop(self, record: TokenRecord) -> TokenRecord:
        return whoop_oauth.refresh_tokens(self.settings.whoop.credentials(record), http=self.http)

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock() / 1000, tz=timezone.utc)

    def _build_tools(self) -> List[ToolSpec]:
        handlers: Dict[str, Handler] = {
            "withings_get_auth_url": self.withings_get_auth_url,
            "withings_exchange_code": self.withings_exchange_code,
            "withings_get_weight": self.withings_get_weight,
            "withings_get_latest_weight": self.withings_get_latest_weight,
            "withings_refresh_token": self.withings_refresh_token,
            "whoop_get_auth_url": self.whoop_get_auth_url,
            "whoop_exchange_code": self.whoop_exchange_code,
            "whoop_get_daily_stats": self.whoop_get_daily_stats,
            "whoop_get_workouts": self.whoop_get_workouts,
            "whoop_refresh_token": self.whoop_refresh_token,
        }
        return [ToolSpec(name, TOOL_DESCRIPTIONS[name], handler) for name, handler in handlers.items()]

    # -- dispatch -------------------------------------------------------------

    def tools(self) -> List[ToolSpec]:
        return list(self._tools.values())

    async def dispatch(self, name: str, arguments: Mapping[str, Any] | None = None) -> str:
        spec = self._tools.get(name)
        if spec is None:
            raise UnknownTool(name)
        args = {k: v for k, v in (arguments or {}).items() if v is not None}
        result = await spec.handler(args)
        return to_text(result)

    # -- shared helpers -------------------------------------------------------

    def _token_payload(self, provider: str, record: TokenRecord, message: str) -> Dict[str, Any]:
        store = self.stores[provider]
        expires_in = max((record.expires_at - self.clock()) // 1000, 0) if record.expires_at else None
        out: Dict[str, Any] = {
            "message": message,
            "expires_in": expires_in,
            "persisted": bool(store.durable),
        }
        if not store.durable:
            # Nothing survives a restart; the user has to copy these into the environment.
            prefix = provider.upper()
            out["note"] = f"Set {prefix}_ACCESS_TOKEN and {prefix}_REFRESH_TOKEN to keep these tokens."
            out["access_token"] = record.access_token
            out["refresh_token"] = record.refresh_token
        return out

    async def _exchange(self, provider: str, args: Dict[str, Any], exchange: Callable[..., TokenRecord]) -> Dict[str, Any]:
        code = str(args.get("code") or "").strip()
        if not code:
            raise BadRequest("code is required")
        creds = self.settings.provider(provider).credentials()
        record = await asyncio.to_thread(exchange, creds, code, http=self.http)
        await asyncio.to_thread(self.stores[provider].save, record)
        return self._token_payload(provider, record, f"{provider} tokens obtained successfully.")

    def _require_configured(self, provider: str) -> None:
        # raises ConfigurationMissing before any token or network work
        self.settings.provider(provider).credentials()

    @staticmethod
    def _state(args: Dict[str, Any]) -> str:
        return str(args.get("state") or uuid.uuid4())

    # -- Withings -------------------------------------------------------------

    async def withings_get_auth_url(self, args: Dict[str, Any]) -> str:
        return withings_oauth.authorization_url(self.settings.withings.credentials(), self._state(args))

    async def withings_exchange_code(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self._exchange(WITHINGS, args, withings_oauth.exchange_code)

    async def _weight_points(self, start: Optional[datetime], end: Optional[datetime]):
        self._require_configured(WITHINGS)

        async def op(token: str):
            return await asyncio.to_thread(fetch_measure_groups, token, start=start, end=end, http=self.http)

        groups = await self.withings.call(op)
        return parse_weight_groups(groups)

    async def withings_get_weight(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        start, end = resolve_window(args, now=self._now())
        points = await self._weight_points(start, end)
        return [p.to_dict() for p in points]

    async def withings_get_latest_weight(self, args: Dict[str, Any]) -> Any:
        end = self._now()
        points = await self._weight_points(end - timedelta(days=LATEST_WEIGHT_LOOKBACK_DAYS), end)
        latest = latest_weight(points)
        if latest is None:
            return f"No weight measurements found in the last {LATEST_WEIGHT_LOOKBACK_DAYS} days."
        return latest.to_dict()

    async def withings_refresh_token(self, args: Dict[str, Any]) -> Dict[str, Any]:
        self._require_configured(WITHINGS)
        record = await self.withings.refresh_now()
        return self._token_payload(WITHINGS, record, "Withings token refreshed.")

    # -- WHOOP ----------------------------------------------------------------

    async def whoop_get_auth_url(self, args: Dict[str, Any]) -> str:
        return whoop_oauth.authorization_url(self.settings.whoop.credentials(), self._state(args))

    async def whoop_exchange_code(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self._exchange(WHOOP, args, whoop_oauth.exchange_code)

    async def whoop_get_daily_stats(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        self._require_configured(WHOOP)
        start, end = resolve_window(args, now=self._now())

        async def op(token: str):
            # cycles and recoveries are independent reads; fetch them side by side
            return await asyncio.gather(
                asyncio.to_thread(whoop_fetch.fetch_cycles, token, start=start, end=end, http=self.http),
                asyncio.to_thread(whoop_fetch.fetch_recoveries, token, start=start, end=end, http=self.http),
            )

        cycles, recoveries = await self.whoop.call(op)
        return [s.to_dict() for s in parse_daily_stats(cycles, recoveries)]

    async def whoop_get_workouts(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        self._require_configured(WHOOP)
        start, end = resolve_window(args, now=self._now())

        async def op(token: str):
            return await asyncio.to_thread(whoop_fetch.fetch_workouts, token, start=start, end=end, http=self.http)

        workouts = await self.whoop.call(op)
        return [w.to_dict() for w in parse_workouts(workouts)]

    async def whoop_refresh_token(self, args: Dict[str, Any]) -> Dict[str, Any]:
        self._require_configured(WHOOP)
        record = await self.whoop.refresh_now()
        return self._token_payload(WHOOP, record, "WHOOP token refreshed.")
