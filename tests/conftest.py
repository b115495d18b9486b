import asyncio
import random
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest

from noexplorer.models import RequestOptions


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Responder = Union[Any, BaseException, Callable[[str, RequestOptions], Any]]


class Responses(list):
    """Responders consumed one per call, the last one repeating."""


class FakeFetch:
    """
    Stand-in for HttpFetcher.fetch.

    Routes are matched by URL prefix, longest first. A route holds either one
    responder (used for every call) or a Responses sequence; plain lists are
    payloads. Exceptions are raised, callables are called.
    """

    def __init__(self, routes: Optional[Dict[str, Union[Responder, Responses]]] = None) -> None:
        self.routes: Dict[str, Union[Responder, Responses]] = dict(routes or {})
        self.calls: List[Tuple[str, RequestOptions]] = []
        self._counts: Dict[str, int] = {}
        self.delay_s = 0.0

    @property
    def urls(self) -> List[str]:
        return [url for url, _ in self.calls]

    def calls_to(self, prefix: str) -> List[Tuple[str, RequestOptions]]:
        return [c for c in self.calls if c[0].startswith(prefix)]

    async def __call__(self, url: str, options: RequestOptions) -> Any:
        self.calls.append((url, options))
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        for prefix in sorted(self.routes, key=len, reverse=True):
            if url.startswith(prefix):
                return self._respond(prefix, url, options)
        raise AssertionError(f"unexpected fetch: {url}")

    def _respond(self, prefix: str, url: str, options: RequestOptions) -> Any:
        responder = self.routes[prefix]
        if isinstance(responder, Responses):
            n = self._counts.get(prefix, 0)
            self._counts[prefix] = n + 1
            responder = responder[min(n, len(responder) - 1)]
        if isinstance(responder, BaseException):
            raise responder
        if callable(responder):
            return responder(url, options)
        return responder


class RecordingSleep:
    """Async sleep replacement that records requested durations."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


def mwmbl_item(url: str, title: str = "Title", extract: str = "Extract", score: Optional[float] = None) -> Dict[str, Any]:
    item: Dict[str, Any] = {
        "url": url,
        "title": [{"value": title, "is_bold": False}],
        "extract": [{"value": extract, "is_bold": False}],
    }
    if score is not None:
        item["score"] = score
    return item
