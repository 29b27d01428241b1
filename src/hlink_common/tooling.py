from __future__ import annotations

import functools
import inspect
import json
import logging
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from hlink_common.errors import REDACT_TOKEN, HealthLinkError, error_envelope


logger = logging.getLogger(__name__)

_corr_id_ctx: ContextVar[str | None] = ContextVar("corr_id", default=None)


def new_corr_id() -> str:
    return uuid.uuid4().hex


def get_corr_id() -> str | None:
    return _corr_id_ctx.get()


# ---------------------------------------------------------------------------
# Shared helpers for MCP tool handlers
# ---------------------------------------------------------------------------


_REDACTION_KEYS = {
    "authorization",
    "token",
    "access_token",
    "refresh_token",
    "client_secret",
    "code",
}


def sanitize_args_for_log(args: dict | None) -> dict:
    """Remove obvious secrets from args before they reach a log line."""
    out: dict[str, Any] = {}
    for k, v in (args or {}).items():
        out[str(k)] = REDACT_TOKEN if str(k).lower() in _REDACTION_KEYS else v
    return out


def to_text(payload: Any) -> str:
    """Tool results travel as text; strings pass through, everything else becomes indented JSON."""
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, indent=2, ensure_ascii=False)


@dataclass(frozen=True)
class InstrumentConfig:
    kind: str
    name: str
    client_id: str

    # attach corr_id to error envelopes for debugging
    attach_corr_id: bool = True


def instrument_async_tool(cfg: InstrumentConfig):
    """Decorator for async MCP tools.

    Gives every call its own correlation id, logs the outcome, and turns raised
    failures into the standard error envelope so the assistant always gets text.
    """

    def decorator(fn: Callable[..., Awaitable[Any]]):
        fn_sig = inspect.signature(fn)

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> str:
            corr_id = new_corr_id()
            token = _corr_id_ctx.set(corr_id)

            t0 = time.perf_counter()
            bound = fn_sig.bind_partial(*args, **kwargs)
            args_for_log = sanitize_args_for_log(dict(bound.arguments))

            ok = True
            try:
                payload = await fn(*args, **kwargs)
            except HealthLinkError as e:
                ok = False
                payload = error_envelope(e, **({"corr_id": corr_id} if cfg.attach_corr_id else {}))
            except Exception as e:
                ok = False
                logger.exception("%s %s crashed (corr_id=%s)", cfg.kind, cfg.name, corr_id)
                payload = error_envelope(e, **({"corr_id": corr_id} if cfg.attach_corr_id else {}))
            finally:
                _corr_id_ctx.reset(token)

            ms = int((time.perf_counter() - t0) * 1000)
            if ok:
                logger.info(
                    "%s %s ok (client=%s, corr_id=%s, ms=%s) args=%s",
                    cfg.kind, cfg.name, cfg.client_id, corr_id, ms, args_for_log,
                )
            else:
                logger.warning(
                    "%s %s failed (client=%s, corr_id=%s, ms=%s) args=%s error=%s",
                    cfg.kind, cfg.name, cfg.client_id, corr_id, ms, args_for_log, payload.get("error"),
                )

            return to_text(payload)

        # Preserve signature for schema generation
        wrapper.__signature__ = fn_sig  # type: ignore[attr-defined]
        return wrapper

    return decorator
