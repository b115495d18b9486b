import asyncio
import json

import aiohttp
import pytest

from noexplorer.errors import (
    ERROR_MESSAGES,
    APIError,
    ErrorKind,
    classify_exception,
    error_from_status,
    error_suggestions,
    is_retryable,
    user_message,
)


@pytest.mark.parametrize(
    "status,kind",
    [
        (0, ErrorKind.NETWORK),
        (400, ErrorKind.VALIDATION),
        (403, ErrorKind.CLIENT),
        (404, ErrorKind.NOT_FOUND),
        (408, ErrorKind.TIMEOUT),
        (429, ErrorKind.RATE_LIMITED),
        (500, ErrorKind.SERVER),
        (503, ErrorKind.SERVER),
    ],
)
def test_error_from_status_maps_kinds(status: int, kind: ErrorKind) -> None:
    error = error_from_status(status)
    assert error.kind == kind
    assert error.status == status


def test_retryable_kinds() -> None:
    assert APIError(ErrorKind.NETWORK).retryable
    assert APIError(ErrorKind.TIMEOUT).retryable
    assert APIError(ErrorKind.RATE_LIMITED).retryable
    assert APIError(ErrorKind.SERVER).retryable
    assert not APIError(ErrorKind.CIRCUIT_OPEN).retryable
    assert not APIError(ErrorKind.VALIDATION).retryable
    assert not APIError(ErrorKind.NOT_FOUND).retryable
    assert not APIError(ErrorKind.CANCELLED).retryable


def test_every_kind_has_a_message() -> None:
    for kind in ErrorKind:
        assert ERROR_MESSAGES[kind]
        assert APIError(kind).message == ERROR_MESSAGES[kind]


def test_classify_exception_passes_api_errors_through() -> None:
    original = APIError(ErrorKind.SERVER, "boom")
    assert classify_exception(original) is original


def test_classify_exception_timeout_before_os_error() -> None:
    error = classify_exception(asyncio.TimeoutError())
    assert error.kind == ErrorKind.TIMEOUT
    assert error.status == 408


def test_classify_exception_network_and_parse() -> None:
    assert classify_exception(aiohttp.ClientConnectionError("refused")).kind == ErrorKind.NETWORK
    assert classify_exception(ConnectionResetError()).kind == ErrorKind.NETWORK
    bad_json = json.JSONDecodeError("Expecting value", "x", 0)
    assert classify_exception(bad_json).kind == ErrorKind.PARSE


def test_is_retryable_on_plain_exceptions() -> None:
    assert is_retryable(ConnectionError("reset"))
    assert not is_retryable(APIError(ErrorKind.CLIENT, "forbidden"))


def test_user_message_and_suggestions() -> None:
    error = APIError(ErrorKind.RATE_LIMITED, "HTTP 429")
    assert user_message(error) == ERROR_MESSAGES[ErrorKind.RATE_LIMITED]
    assert "Wait a few seconds before searching again" in error_suggestions(error)
    assert user_message(ValueError("x")).startswith("An unexpected error")
    assert error_suggestions(ValueError("x"))


def test_to_dict_includes_optional_fields() -> None:
    error = APIError(ErrorKind.RATE_LIMITED, "slow down", status=429, retry_after=2.0)
    assert error.to_dict() == {
        "kind": "rate_limited",
        "message": "slow down",
        "status": 429,
        "retryAfter": 2.0,
    }
