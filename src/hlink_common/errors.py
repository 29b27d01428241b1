from __future__ import annotations

from typing import Any, Iterable

REDACT_TOKEN = "***redacted***"

# Text that upstream error bodies carry when the access token is the problem.
AUTH_FAILURE_MARKERS = ("invalid", "expired", "unauthorized")


class HealthLinkError(Exception):
    """Base class; every subclass names its error kind and JSON-RPC style code."""

    kind = "internal"
    code = -32603

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotAuthorized(HealthLinkError):
    kind = "not_authorized"
    code = -32001

    def __init__(self, provider: str, message: str | None = None) -> None:
        super().__init__(message or f"No valid {provider} access token. Please authorize first.")
        self.provider = provider


class ConfigurationMissing(HealthLinkError):
    kind = "configuration_missing"
    code = -32002


class UpstreamRequestFailed(HealthLinkError):
    kind = "upstream_request_failed"
    code = -32003

    def __init__(self, provider: str, status: int | None, body: str) -> None:
        super().__init__(f"{provider} API error (status={status}): {body}")
        self.provider = provider
        self.status = status
        self.body = body

    @classmethod
    def from_response(
        cls,
        provider: str,
        status: int | None,
        body: str,
        *,
        auth_statuses: Iterable[int] = (401,),
    ) -> "UpstreamRequestFailed":
        """Build the failure, picking UpstreamUnauthorized when it looks like a token problem."""
        if is_auth_failure(status, body, auth_statuses=auth_statuses):
            return UpstreamUnauthorized(provider, status, body)
        return UpstreamRequestFailed(provider, status, body)


class UpstreamUnauthorized(UpstreamRequestFailed):
    """An upstream failure whose status or body says the access token was rejected."""

    kind = "upstream_unauthorized"


class RefreshFailed(HealthLinkError):
    kind = "refresh_failed"
    code = -32004

    def __init__(self, provider: str, detail: str) -> None:
        super().__init__(f"{provider} token refresh failed: {detail}")
        self.provider = provider
        self.detail = detail


class BadRequest(HealthLinkError):
    kind = "bad_request"
    code = -32602


class UnknownTool(HealthLinkError):
    kind = "method_not_found"
    code = -32601

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


def is_auth_failure(status: int | None, body: str | None, *, auth_statuses: Iterable[int] = (401,)) -> bool:
    if status is not None and status in set(auth_statuses):
        return True
    text = (body or "").lower()
    return any(marker in text for marker in AUTH_FAILURE_MARKERS)


def typed_error(code: int, kind: str, message: str, *, details: dict | None = None, **extra: Any) -> dict:
    """
    Standard error envelope:
      {"error": {"code": code, "kind": kind, "message": message, "details": {...}}, ...extra}
    """
    err: dict[str, Any] = {"error": {"code": code, "kind": kind, "message": message}}
    if details:
        err["error"]["details"] = details
    if extra:
        err.update(extra)
    return err


def error_envelope(exc: BaseException, **extra: Any) -> dict:
    if isinstance(exc, HealthLinkError):
        return typed_error(exc.code, exc.kind, exc.message, **extra)
    return typed_error(HealthLinkError.code, HealthLinkError.kind, str(exc) or type(exc).__name__, **extra)
