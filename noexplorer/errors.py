"""
Error types for the search client.

Every failure that crosses a component boundary is an ``APIError`` tagged with
one ``ErrorKind``. Retry decisions and user-facing messages are looked up in
tables keyed by kind, so adding a kind without updating them fails loudly.
"""

from __future__ import annotations

import asyncio
import json
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp


class NoexplorerError(Exception):
    """Base exception for the package."""


class ConfigError(NoexplorerError):
    """Invalid configuration values."""


class ErrorKind(str, Enum):
    NETWORK = "network_error"
    TIMEOUT = "timeout_error"
    RATE_LIMITED = "rate_limited"
    CIRCUIT_OPEN = "circuit_breaker"
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    SERVER = "server_error"
    CLIENT = "client_error"
    PARSE = "parse_error"
    CANCELLED = "cancelled"


_RETRYABLE: Dict[ErrorKind, bool] = {
    ErrorKind.NETWORK: True,
    ErrorKind.TIMEOUT: True,
    ErrorKind.RATE_LIMITED: True,
    ErrorKind.SERVER: True,
    ErrorKind.CIRCUIT_OPEN: False,
    ErrorKind.VALIDATION: False,
    ErrorKind.NOT_FOUND: False,
    ErrorKind.CLIENT: False,
    ErrorKind.PARSE: False,
    ErrorKind.CANCELLED: False,
}

ERROR_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.NETWORK: "Unable to connect to search servers. Please check your internet connection.",
    ErrorKind.TIMEOUT: "Search request timed out. Please try again.",
    ErrorKind.RATE_LIMITED: "Too many search requests. Please wait a moment before searching again.",
    ErrorKind.CIRCUIT_OPEN: "Search service is temporarily unavailable. Please try again later.",
    ErrorKind.VALIDATION: "Invalid search query. Please check your input and try again.",
    ErrorKind.NOT_FOUND: "The requested resource was not found.",
    ErrorKind.SERVER: "Search service is experiencing issues. Please try again later.",
    ErrorKind.CLIENT: "The search service rejected the request.",
    ErrorKind.PARSE: "Received an unreadable response from the search service.",
    ErrorKind.CANCELLED: "The request was cancelled.",
}

_SUGGESTIONS: Dict[ErrorKind, List[str]] = {
    ErrorKind.NETWORK: [
        "Check your internet connection",
        "Try refreshing the page",
        "Disable VPN or proxy if enabled",
    ],
    ErrorKind.TIMEOUT: [
        "Try a simpler search query",
        "Check your internet connection speed",
        "Try again in a few moments",
    ],
    ErrorKind.RATE_LIMITED: [
        "Wait a few seconds before searching again",
        "Avoid rapid successive searches",
    ],
    ErrorKind.CIRCUIT_OPEN: [
        "The search service is temporarily overloaded",
        "Try again in a few minutes",
    ],
    ErrorKind.VALIDATION: [
        "Check your search query for special characters",
        "Try a different search term",
        "Make sure your query is not empty",
    ],
    ErrorKind.SERVER: [
        "The search service is experiencing issues",
        "Try again later",
    ],
}


class APIError(NoexplorerError):
    """A failed request, tagged with its kind."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str = "",
        status: Optional[int] = None,
        endpoint: str = "",
        retry_after: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message or ERROR_MESSAGES[kind])
        self.kind = kind
        self.message = message or ERROR_MESSAGES[kind]
        self.status = status
        self.endpoint = endpoint
        self.retry_after = retry_after
        self.details = details or {}

    @property
    def retryable(self) -> bool:
        return _RETRYABLE[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.status is not None:
            data["status"] = self.status
        if self.retry_after is not None:
            data["retryAfter"] = self.retry_after
        return data

    def __repr__(self) -> str:
        return f"APIError({self.kind.value!r}, {self.message!r}, status={self.status})"


def error_from_status(
    status: int,
    message: str = "",
    endpoint: str = "",
    retry_after: Optional[float] = None,
) -> APIError:
    """Map an HTTP status code to an APIError."""
    if status == 0:
        kind = ErrorKind.NETWORK
    elif status == 400:
        kind = ErrorKind.VALIDATION
    elif status == 404:
        kind = ErrorKind.NOT_FOUND
    elif status == 408:
        kind = ErrorKind.TIMEOUT
    elif status == 429:
        kind = ErrorKind.RATE_LIMITED
    elif status >= 500:
        kind = ErrorKind.SERVER
    elif status >= 400:
        kind = ErrorKind.CLIENT
    else:
        kind = ErrorKind.PARSE
    return APIError(
        kind,
        message or f"HTTP {status}",
        status=status,
        endpoint=endpoint,
        retry_after=retry_after,
    )


def classify_exception(exc: BaseException, endpoint: str = "") -> APIError:
    """
    Turn any exception raised while fetching into an APIError.

    APIError passes through unchanged.
    """
    if isinstance(exc, APIError):
        return exc
    if isinstance(exc, asyncio.TimeoutError):
        return APIError(ErrorKind.TIMEOUT, "Request timeout", status=408, endpoint=endpoint)
    if isinstance(exc, aiohttp.ClientResponseError):
        return error_from_status(exc.status, exc.message or "", endpoint=endpoint)
    if isinstance(exc, (aiohttp.ClientError, OSError)):
        return APIError(ErrorKind.NETWORK, f"Network error: {exc}", status=0, endpoint=endpoint)
    if isinstance(exc, (json.JSONDecodeError, UnicodeDecodeError)):
        return APIError(ErrorKind.PARSE, f"Unreadable response: {exc}", endpoint=endpoint)
    return APIError(ErrorKind.NETWORK, str(exc) or exc.__class__.__name__, status=0, endpoint=endpoint)


def is_retryable(error: BaseException) -> bool:
    """True if a request that failed with ``error`` may be attempted again."""
    return classify_exception(error).retryable


def user_message(error: BaseException) -> str:
    """Short message suitable for showing to a person."""
    if isinstance(error, APIError):
        return ERROR_MESSAGES[error.kind]
    return "An unexpected error occurred. Please try again."


def error_suggestions(error: BaseException) -> List[str]:
    """Troubleshooting hints for an error."""
    if isinstance(error, APIError) and error.kind in _SUGGESTIONS:
        return list(_SUGGESTIONS[error.kind])
    return ["Try refreshing the page", "Check your internet connection"]
