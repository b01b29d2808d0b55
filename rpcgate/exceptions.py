"""Custom exceptions for rpcgate.

Every failure the gateway reports to a client is one of the classes below.
They all inherit from RpcGateError and carry the HTTP status the gateway
answers with, so the HTTP layer can turn any of them into a JSON error
response without knowing where it came from.

Example:
    from rpcgate.exceptions import ConfigurationError, RpcGateError

    try:
        url = await relay.upload(artifact)
    except ConfigurationError as e:
        print(f"Storage is not configured: {e}")
    except RpcGateError as e:
        print(f"Upload failed with {e.status_code}: {e}")
"""

from __future__ import annotations

from typing import Any


class RpcGateError(Exception):
    """Base exception for all rpcgate errors.

    ``message`` is the human-readable string returned to clients.
    ``details`` is extra context for logs only; it is never serialised
    into a response body.
    """

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """JSON body sent to the client."""
        return {"error": self.message}

    def headers(self) -> dict[str, str]:
        """Extra response headers for this error."""
        return {}


class ClientError(RpcGateError):
    """Raised when a request is malformed.

    This includes:
    - Missing ``method`` or ``endpoint`` fields
    - Unknown network segment names
    - Invalid upload form fields

    Example:
        ClientError("endpoint and method are required")
    """

    status_code = 400


class RateLimitExceeded(ClientError):
    """Raised when a client has used up its request quota for the window."""

    status_code = 429

    def __init__(
        self,
        message: str = "Too many requests, please try again later",
        retry_after: int = 0,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.retry_after = retry_after

    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after)}


class PayloadTooLarge(ClientError):
    """Raised when an upload exceeds the configured size limit."""

    status_code = 413


class ConfigurationError(RpcGateError):
    """Raised when rpcgate is misconfigured.

    This includes:
    - Missing storage backend credentials
    - Malformed numeric environment values

    Raised before any network call is attempted.

    Example:
        ConfigurationError(
            "Storage backend is not configured",
            details={"missing": ["FILEBASE_KEY"]}
        )
    """

    status_code = 500


class UpstreamTimeoutError(RpcGateError):
    """Raised when an upstream service did not answer within its time bound."""

    status_code = 504


class UpstreamError(RpcGateError):
    """Raised when an upstream service answered with a failure status.

    The upstream status code is passed through to the client together with
    the upstream body when one was available.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 502,
        body: Any = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code
        self.body = body

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.body is not None:
            data["upstream"] = self.body
        return data


class InternalError(RpcGateError):
    """Raised for unexpected transport or parse failures."""

    status_code = 500
