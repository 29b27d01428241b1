import functools
import inspect
import logging
import os

from mcp.server.fastmcp import FastMCP

from hlink_common.tooling import InstrumentConfig, instrument_async_tool
from hlink_config.settings import Settings, init_runtime, load_settings
from hlink_mcp.dispatcher import TOOL_DESCRIPTIONS, ToolDispatcher


logger = logging.getLogger(__name__)

mcp = FastMCP(
    name="Health-Link-MCP",
    instructions=(
        "Withings body measurements and WHOOP strain/recovery/workouts. "
        "Run the *_get_auth_url tool, then *_exchange_code, before fetching data."
    ),
)

MCP_CLIENT_ID = os.getenv("MCP_CLIENT_ID", "assistant")

_dispatcher: ToolDispatcher | None = None


def configure(dispatcher: ToolDispatcher | None) -> None:
    """Install the dispatcher the tools delegate to (main() and tests)."""
    global _dispatcher
    _dispatcher = dispatcher


def get_dispatcher() -> ToolDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = ToolDispatcher(load_settings())
    return _dispatcher


def _cfg(tool_name: str) -> InstrumentConfig:
    return InstrumentConfig(kind="tool", name=tool_name, client_id=MCP_CLIENT_ID)


def hlink_tool(name: str):
    """
    Registers an MCP tool with instrumentation.
    Keeps tool signature stable for MCP schema generation.
    """
    def decorator(fn):
        sig = inspect.signature(fn)
        wrapped = instrument_async_tool(_cfg(name))(fn)
        registered = mcp.tool(name=name, description=TOOL_DESCRIPTIONS.get(name, fn.__doc__))(wrapped)
        registered.__signature__ = sig  # type: ignore[attr-defined]
        return registered

    return decorator


def delegate_to_dispatcher(tool_name: str):
    """
    Replaces the tool body with dispatcher.dispatch(tool_name, bound_args).
    The decorated function only declares the argument schema.
    """
    def decorator(fn):
        tool_sig = inspect.signature(fn)

        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            bound = tool_sig.bind(*args, **kwargs)
            bound.apply_defaults()
            return await get_dispatcher().dispatch(tool_name, dict(bound.arguments))

        wrapper.__signature__ = tool_sig  # type: ignore[attr-defined]
        return wrapper

    return decorator


@hlink_tool("healthz")
async def healthz():
    """Liveness probe."""
    return {"ok": True}


# --- Withings ---------------------------------------------------------------

@hlink_tool("withings_get_auth_url")
@delegate_to_dispatcher("withings_get_auth_url")
async def withings_get_auth_url(state: str | None = None) -> str:
    ...


@hlink_tool("withings_exchange_code")
@delegate_to_dispatcher("withings_exchange_code")
async def withings_exchange_code(code: str) -> str:
    ...


@hlink_tool("withings_get_weight")
@delegate_to_dispatcher("withings_get_weight")
async def withings_get_weight(
    start_date: str | None = None,
    end_date: str | None = None,
    days: int | None = None,
) -> str:
    ...


@hlink_tool("withings_get_latest_weight")
@delegate_to_dispatcher("withings_get_latest_weight")
async def withings_get_latest_weight() -> str:
    ...


@hlink_tool("withings_refresh_token")
@delegate_to_dispatcher("withings_refresh_token")
async def withings_refresh_token() -> str:
    ...


# --- WHOOP ------------------------------------------------------------------

@hlink_tool("whoop_get_auth_url")
@delegate_to_dispatcher("whoop_get_auth_url")
async def whoop_get_auth_url(state: str | None = None) -> str:
    ...


@hlink_tool("whoop_exchange_code")
@delegate_to_dispatcher("whoop_exchange_code")
async def whoop_exchange_code(code: str) -> str:
    ...


@hlink_tool("whoop_get_daily_stats")
@delegate_to_dispatcher("whoop_get_daily_stats")
async def whoop_get_daily_stats(
    start_date: str | None = None,
    end_date: str | None = None,
    days: int | None = None,
) -> str:
    ...


@hlink_tool("whoop_get_workouts")
@delegate_to_dispatcher("whoop_get_workouts")
async def whoop_get_workouts(
    start_date: str | None = None,
    end_date: str | None = None,
    days: int | None = None,
) -> str:
    ...


@hlink_tool("whoop_refresh_token")
@delegate_to_dispatcher("whoop_refresh_token")
async def whoop_refresh_token() -> str:
    ...


def _secure_paths(settings: Settings) -> None:
    """With MCP_SECRET_KEY set, HTTP transports only answer under /mcp/<secret>."""
    if not settings.mcp_secret_key:
        return
    base = f"/mcp/{settings.mcp_secret_key}"
    mcp.settings.streamable_http_path = base
    mcp.settings.sse_path = f"{base}/sse"
    mcp.settings.message_path = f"{base}/messages/"


def main() -> None:
    # Entry points (console_scripts) call main() directly, so we must perform
    # runtime initialization here (dotenv + logging).
    init_runtime()
    settings = load_settings()
    configure(ToolDispatcher(settings))

    if settings.transport != "stdio":
        _secure_paths(settings)
    logger.info("Starting Health-Link MCP (transport=%s, token_backend=%s)", settings.transport, settings.token_backend)
    mcp.run(transport=settings.transport)


if __name__ == "__main__":
    main()
