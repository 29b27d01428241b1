from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from hlink_mcp.core_infrastructure.token_store import TokenRecord


@runtime_checkable
class KeyValuePort(Protocol):
    """
    The durable store behind token persistence.
    Only get/set of an opaque JSON document under a fixed key is required.
    """
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    def set(self, key: str, value: Mapping[str, Any]) -> None:
        ...


@runtime_checkable
class TokenStorePort(Protocol):
    """
    Persistence of one provider's token pair.
    `load` returns None when the user has not authorized yet; that is not an error.
    """
    durable: bool

    def load(self) -> Optional[TokenRecord]:
        ...

    def save(self, record: TokenRecord) -> None:
        # may fail to persist; implementations log instead of raising
        ...
