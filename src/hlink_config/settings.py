from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional, TYPE_CHECKING

from dotenv import load_dotenv

from hlink_common.errors import ConfigurationMissing

if TYPE_CHECKING:
    from hlink_mcp.core_infrastructure.token_store import TokenRecord


WITHINGS = "withings"
WHOOP = "whoop"

DEFAULT_REDIRECT_URIS = {
    WITHINGS: "http://localhost:3000/callback",
    WHOOP: "http://localhost:3000/callback-whoop",
}

TOKEN_BACKENDS = ("sqlite", "env")


def _find_repo_root(start: Path) -> Optional[Path]:
    """
    Walk upward until we find pyproject.toml or .git.
    """
    start = start.resolve()
    for p in (start, *start.parents):
        if (p / "pyproject.toml").exists() or (p / ".git").exists():
            return p
    return None


@lru_cache(maxsize=1)
def repo_root() -> Path:
    """Best-effort repository root discovery.

    Order of precedence:
      1) HLINK_REPO_ROOT (explicit override)
      2) walk upward from current working directory
      3) walk upward from this module file's directory
    """
    explicit = os.getenv("HLINK_REPO_ROOT")
    if explicit:
        p = Path(explicit).expanduser().absolute()
        if not p.is_dir():
            raise RuntimeError(f"HLINK_REPO_ROOT does not exist or is not a directory: {p}")
        return p

    root = _find_repo_root(Path.cwd())
    if root:
        return root

    here_dir = Path(__file__).resolve().parent
    root = _find_repo_root(here_dir)
    if root:
        return root

    # Fallback: typical layout (repo/src/hlink_config/settings.py)
    return here_dir.parents[1]


@lru_cache(maxsize=1)
def load_env_once() -> Optional[Path]:
    """
    Load dotenv exactly once. Precedence:
      1) HLINK_ENV_FILE (explicit path)
      2) repo-root/.env
      3) repo-root/config/.env
    """
    explicit = os.getenv("HLINK_ENV_FILE")
    candidates = []

    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.append(repo_root() / ".env")
    candidates.append(repo_root() / "config" / ".env")

    for p in candidates:
        if p.is_file():
            # Do NOT override already-set environment variables
            load_dotenv(dotenv_path=str(p), override=False)
            return p

    return None


def configure_logging() -> None:
    """
    Configure logging explicitly. No import-time side effects.
    Idempotent: if logging is already configured, do nothing.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    level_name = os.getenv("HLINK_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = os.getenv(
        "HLINK_LOG_FORMAT",
        "%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logging.basicConfig(level=level, format=fmt)


def init_runtime(*, configure_logs: bool = True, load_env: bool = True) -> None:
    """
    Call this from entrypoints only (servers, scripts).
    """
    if load_env:
        load_env_once()
    if configure_logs:
        configure_logging()


@dataclass(frozen=True)
class Credentials:
    """OAuth client credentials plus whatever tokens are currently stored."""

    provider: str
    client_id: str
    client_secret: str
    redirect_uri: str
    access_token: str | None = None
    refresh_token: str | None = None


@dataclass(frozen=True)
class ProviderSettings:
    name: str
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str = ""
    access_token: str | None = None
    refresh_token: str | None = None

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def credentials(self, tokens: "TokenRecord | None" = None) -> Credentials:
        """Build credentials for one call; raises ConfigurationMissing without a client id/secret."""
        missing = [
            f"{self.name.upper()}_{label}"
            for label, value in (("CLIENT_ID", self.client_id), ("CLIENT_SECRET", self.client_secret))
            if not value
        ]
        if missing:
            raise ConfigurationMissing(f"{' and '.join(missing)} {'is' if len(missing) == 1 else 'are'} required")

        return Credentials(
            provider=self.name,
            client_id=self.client_id or "",
            client_secret=self.client_secret or "",
            redirect_uri=self.redirect_uri,
            access_token=tokens.access_token if tokens else None,
            refresh_token=tokens.refresh_token if tokens else None,
        )


@dataclass(frozen=True)
class Settings:
    withings: ProviderSettings
    whoop: ProviderSettings
    token_backend: str = "sqlite"
    token_db_path: Path | None = None
    mcp_secret_key: str | None = None
    transport: str = "stdio"

    def provider(self, name: str) -> ProviderSettings:
        if name == WITHINGS:
            return self.withings
        if name == WHOOP:
            return self.whoop
        raise KeyError(name)

    @property
    def durable_tokens(self) -> bool:
        return self.token_backend == "sqlite"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    v = value.strip()
    return v or None


def _provider_from_env(name: str, env: Mapping[str, str]) -> ProviderSettings:
    prefix = name.upper()
    return ProviderSettings(
        name=name,
        client_id=_clean(env.get(f"{prefix}_CLIENT_ID")),
        client_secret=_clean(env.get(f"{prefix}_CLIENT_SECRET")),
        redirect_uri=_clean(env.get(f"{prefix}_REDIRECT_URI")) or DEFAULT_REDIRECT_URIS[name],
        access_token=_clean(env.get(f"{prefix}_ACCESS_TOKEN")),
        refresh_token=_clean(env.get(f"{prefix}_REFRESH_TOKEN")),
    )


def token_db_path(env: Mapping[str, str] | None = None) -> Path:
    """
    Default token database path. Override with HLINK_TOKEN_DB.
    """
    env = os.environ if env is None else env
    p = env.get("HLINK_TOKEN_DB")
    if p:
        path = Path(p).expanduser()
        return path if path.is_absolute() else (repo_root() / path).resolve()
    return (repo_root() / "data" / "hlink_tokens.sqlite").resolve()


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Snapshot the process configuration once; components receive the result explicitly."""
    env = os.environ if env is None else env

    backend = (env.get("HLINK_TOKEN_BACKEND") or "sqlite").strip().lower()
    if backend not in TOKEN_BACKENDS:
        raise ConfigurationMissing(
            f"HLINK_TOKEN_BACKEND must be one of: {', '.join(TOKEN_BACKENDS)} (got {backend!r})"
        )

    return Settings(
        withings=_provider_from_env(WITHINGS, env),
        whoop=_provider_from_env(WHOOP, env),
        token_backend=backend,
        token_db_path=token_db_path(env) if backend == "sqlite" else None,
        mcp_secret_key=_clean(env.get("MCP_SECRET_KEY")),
        transport=(env.get("MCP_TRANSPORT") or "stdio").strip(),
    )
