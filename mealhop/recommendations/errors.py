from __future__ import annotations

import socket

import httpx

_NETWORK_MARKERS = ("fetch failed", "enotfound", "getaddrinfo", "network")


class InvalidRequestError(ValueError):
    """Raised when a recommendation request body fails validation."""


class UpstreamDataError(RuntimeError):
    """The candidate source could not produce restaurants/menu items."""

    def __init__(self, message: str, is_network: bool = False) -> None:
        super().__init__(message)
        self.is_network = is_network


class ExternalRankerError(RuntimeError):
    """Any failure of the external ranking service."""


class RankerUnavailableError(ExternalRankerError):
    """Credentials are missing/rejected or LLM ranking is disabled."""


class ModelLoadingError(ExternalRankerError):
    """The service answered 503 while the model warms up."""

    def __init__(self, retry_after: float = 10.0) -> None:
        super().__init__(f"Model is loading. Please wait {retry_after:g}s and try again.")
        self.retry_after = retry_after


class RankerResponseError(ExternalRankerError):
    """The service answered but the body could not be used."""


class ReconciliationError(ExternalRankerError):
    """None of the ranked rows matched a known candidate."""


class RequestCancelled(RuntimeError):
    """The caller went away before ranking started."""


def is_network_error(exc: BaseException) -> bool:
    """Best-effort check for DNS/connection style failures of a data source."""
    if isinstance(exc, UpstreamDataError):
        if exc.is_network:
            return True
    elif isinstance(exc, (ConnectionError, socket.gaierror, TimeoutError, httpx.TransportError)):
        return True
    if getattr(exc, "is_network_error", False):
        return True

    message = str(exc).lower()
    if any(marker in message for marker in _NETWORK_MARKERS):
        return True

    cause = exc.__cause__
    return cause is not None and cause is not exc and is_network_error(cause)
