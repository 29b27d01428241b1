from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

if TYPE_CHECKING:
    from hlink_mcp.domain.ports import KeyValuePort

log = logging.getLogger(__name__)

WITHINGS_TOKEN_KEY = "withings_tokens"
WHOOP_TOKEN_KEY = "whoop_tokens"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TokenRecord:
    access_token: str
    refresh_token: str
    # epoch millis; 0 means "unknown expiry, only refresh after a rejected call"
    expires_at: int = 0

    def expires_within(self, window_ms: int, *, now: int) -> bool:
        return self.expires_at > 0 and self.expires_at < now + window_ms

    def to_json(self) -> Dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "TokenRecord":
        access = str(data.get("accessToken") or "").strip()
        refresh = str(data.get("refreshToken") or "").strip()
        if not access:
            raise ValueError("stored token record has no accessToken")
        return cls(access_token=access, refresh_token=refresh, expires_at=int(data.get("expiresAt") or 0))

    @classmethod
    def from_token_response(cls, body: Mapping[str, Any], *, now: int | None = None) -> "TokenRecord":
        """Build a record from an OAuth token endpoint body (access_token, refresh_token, expires_in)."""
        issued = now_ms() if now is None else now
        return cls(
            access_token=str(body["access_token"]).strip(),
            refresh_token=str(body.get("refresh_token") or "").strip(),
            expires_at=issued + int(body.get("expires_in") or 0) * 1000,
        )


class SqliteKeyValueStore:
    """Durable get/set of JSON documents keyed by name, one row per key."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._ready = False

    def _connect(self) -> sqlite3.Connection:
        if not self._ready:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        con = sqlite3.connect(str(self.db_path))
        if not self._ready:
            con.execute("PRAGMA journal_mode=WAL;")
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS tokens (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,           -- JSON document
                    updated_at INTEGER NOT NULL    -- unix epoch seconds
                );
                """
            )
            con.commit()
            self._ready = True
        return con

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            con = self._connect()
            try:
                row = con.execute("SELECT value FROM tokens WHERE key = ?", (key,)).fetchone()
            finally:
                con.close()
        if row is None:
            return None
        return json.loads(row[0])

    def set(self, key: str, value: Mapping[str, Any]) -> None:
        raw = json.dumps(dict(value), ensure_ascii=False)
        with self._lock:
            con = self._connect()
            try:
                con.execute(
                    """
                    INSERT INTO tokens (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                    """,
                    (key, raw, int(time.time())),
                )
                con.commit()
            finally:
                con.close()


class StaticTokenStore:
    """
    Environment-only backend.

    Serves the statically configured token pair (expiry unknown). Saved records
    live in process memory only, so a restart goes back to the configured pair.
    """

    durable = False

    def __init__(self, access_token: str | None, refresh_token: str | None) -> None:
        self._static = (access_token or "").strip(), (refresh_token or "").strip()
        self._current: TokenRecord | None = None

    def load(self) -> TokenRecord | None:
        if self._current is not None:
            return self._current
        access, refresh = self._static
        if access and refresh:
            return TokenRecord(access_token=access, refresh_token=refresh, expires_at=0)
        return None

    def save(self, record: TokenRecord) -> None:
        log.info("Token store is not durable; keeping refreshed tokens in memory only")
        self._current = record


class DurableTokenStore:
    """
    Key-value backed store with a silent fallback to static configuration.

    load(): durable record first; on any store failure use the fallback.
    save(): write-through; a failed write is logged and the caller keeps going
    with the in-memory record it already has.
    """

    durable = True

    def __init__(self, kv: KeyValuePort, key: str, fallback: StaticTokenStore | None = None) -> None:
        self.kv = kv
        self.key = key
        self.fallback = fallback

    def load(self) -> TokenRecord | None:
        try:
            stored = self.kv.get(self.key)
            if stored:
                log.debug("Loaded %s from durable store", self.key)
                return TokenRecord.from_json(stored)
        except Exception as e:
            log.warning("Durable token store unavailable for %s (%s); using static configuration", self.key, e)

        if self.fallback is not None:
            record = self.fallback.load()
            if record is not None:
                log.debug("Loaded %s from static configuration", self.key)
                return record

        log.info("No tokens found for %s", self.key)
        return None

    def save(self, record: TokenRecord) -> None:
        try:
            self.kv.set(self.key, record.to_json())
        except Exception as e:
            log.error("Failed to persist %s: %s", self.key, e)


__all__ = [
    "TokenRecord",
    "SqliteKeyValueStore",
    "StaticTokenStore",
    "DurableTokenStore",
    "WITHINGS_TOKEN_KEY",
    "WHOOP_TOKEN_KEY",
    "now_ms",
]
