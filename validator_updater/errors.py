"""Exception types raised by the validator updater."""

from __future__ import annotations


class UpdaterError(Exception):
    """Base exception for validator updater errors."""

    pass


class TransientNetworkError(UpdaterError):
    """Raised when an HTTP or RPC call fails."""

    pass


class RpcError(TransientNetworkError):
    """Raised when a VMM RPC call fails.

    Carries the RPC method, the HTTP status (None for transport failures)
    and the response body or transport error detail.
    """

    def __init__(self, method: str, status: int | None, body: str):
        self.method = method
        self.status = status
        self.body = body
        if status is None:
            super().__init__(f"RPC {method} failed: {body}")
        else:
            super().__init__(f"RPC {method} failed with status {status}: {body}")


class ConfigApiError(TransientNetworkError):
    """Raised when the compose config API cannot be reached or returns non-2xx."""

    def __init__(self, message: str, status: int | None = None, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(message)


class ValidationError(UpdaterError):
    """Raised for missing required env values or invalid VM parameters."""

    pass


class ProtocolError(UpdaterError):
    """Raised when an API or RPC response is malformed or missing a field."""

    pass


class CryptoError(UpdaterError):
    """Raised when env encryption fails (bad public key, cipher failure)."""

    pass


class PlatformConfigError(UpdaterError):
    """Raised when the persisted platform config cannot be read or written."""

    pass
