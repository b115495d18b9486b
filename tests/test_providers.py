import random
from typing import Any, Dict, List, Optional, Tuple

import pytest

from noexplorer.errors import APIError, ErrorKind
from noexplorer.extract.html import is_placeholder, strip_html
from noexplorer.fetchers.transport import RequestConfig
from noexplorer.models import PrivacyProfile
from noexplorer.providers._provider_utils import build_result, extract_text, first_number, get_path
from noexplorer.providers.duckduckgo import DuckDuckGoProvider
from noexplorer.providers.mwmbl import MwmblProvider
from noexplorer.providers.searxng import SearxngProvider

from conftest import mwmbl_item


class FakeTransport:
    """Records requests and answers them from a URL -> payload map."""

    def __init__(self, payloads: Dict[str, Any]) -> None:
        self.payloads = payloads
        self.requests: List[Tuple[str, RequestConfig]] = []

    async def request(self, url: str, config: RequestConfig, profile: Optional[PrivacyProfile] = None) -> Any:
        self.requests.append((url, config))
        payload = self.payloads[url]
        if isinstance(payload, BaseException):
            raise payload
        return payload


# ----------------------------- extraction -----------------------------

def test_strip_html() -> None:
    assert strip_html("<b>Hello</b> <i>world</i>") == "Hello world"
    assert strip_html("Fish &amp; chips") == "Fish & chips"
    assert strip_html("plain   text") == "plain text"
    assert strip_html("<script>x()</script>kept") == "kept"
    assert strip_html("") == ""


def test_is_placeholder() -> None:
    assert is_placeholder("[object Object]")
    assert is_placeholder("undefined")
    assert is_placeholder("Hello {{name}}")
    assert not is_placeholder("null pointer exceptions explained")
    assert not is_placeholder("")


def test_extract_text_joins_highlight_segments() -> None:
    segments = [{"value": "Weather", "is_bold": True}, {"value": " in Amsterdam", "is_bold": False}]
    assert extract_text(segments) == "Weather in Amsterdam"
    assert extract_text({"value": "x"}) == "x"
    assert extract_text({"content": "<p>c</p>"}) == "c"
    assert extract_text(42) == "42"
    assert extract_text(True) == ""


def test_get_path_and_first_number() -> None:
    data = {"a": [{"b": 1}]}
    assert get_path(data, ("a", 0, "b")) == 1
    assert get_path(data, ("a", 3, "b")) is None
    assert first_number({"score": "0", "rank": "2.5"}, ("score", "rank")) == 2.5
    assert first_number({"score": True}, ("score",)) is None


def test_build_result_rejects_unusable_entries() -> None:
    rng = random.Random(1)
    assert build_result({"url": "/relative", "title": "t"}, source="s", index=0, rng=rng) is None
    assert build_result({"url": "https://a.com", "title": "[object Object]"}, source="s", index=0, rng=rng) is None
    assert build_result({"url": "https://a.com", "title": "t", "extract": "{{snippet}}"}, source="s", index=0, rng=rng) is None
    assert build_result("not a dict", source="s", index=0, rng=rng) is None


def test_build_result_normalizes_fields() -> None:
    item = {"url": "https://www.Example.com/page/?utm_source=feed&id=1", "title": "<b>Hi</b>", "score": 3}
    result = build_result(item, source="mwmbl", index=4, rng=random.Random(1))
    assert result is not None
    assert result.url == "https://www.example.com/page?id=1"
    assert result.domain == "example.com"
    assert result.title == "Hi"
    assert result.relevance == 3.0
    assert result.id == "mwmbl-https://www.example.com/page?id=1-4"
    assert result.metadata["originalIndex"] == 4
    assert result.metadata["raw"] is item


def test_missing_score_draws_relevance_from_rng() -> None:
    item = {"url": "https://a.com", "title": "t"}
    first = build_result(item, source="s", index=0, rng=random.Random(5))
    second = build_result(item, source="s", index=0, rng=random.Random(5))
    assert first is not None and second is not None
    assert 0 <= first.relevance < 1
    assert first.relevance == second.relevance
    assert first.metadata["score"] is None


def test_url_query_is_not_entity_decoded() -> None:
    item = {"url": "https://a.com/p?x=1&lang=en", "title": "t"}
    result = build_result(item, source="s", index=0, rng=random.Random(1))
    assert result is not None
    assert result.url == "https://a.com/p?x=1&lang=en"


# ----------------------------- adapters -----------------------------

def test_mwmbl_parse() -> None:
    provider = MwmblProvider(["https://api.mwmbl.org/search"], rng=random.Random(1))
    payload = [
        mwmbl_item("https://weather.com/amsterdam", "Amsterdam weather", "Forecast"),
        {"url": "[object Object]", "title": "broken"},
        mwmbl_item("https://knmi.nl/", "KNMI"),
    ]
    results = provider.parse(payload, "https://api.mwmbl.org/search")
    assert [r.url for r in results] == ["https://weather.com/amsterdam", "https://knmi.nl/"]
    assert results[0].title == "Amsterdam weather"
    assert results[0].snippet == "Forecast"
    assert all(r.source == "mwmbl" for r in results)


def test_mwmbl_request_shape() -> None:
    provider = MwmblProvider(["https://api.mwmbl.org/search"])
    assert provider.build_request("https://api.mwmbl.org/search", "rust") == (
        "https://api.mwmbl.org/search",
        {"s": "rust"},
    )
    assert provider.endpoint_keys() == ["https://api.mwmbl.org/search"]


def test_searxng_uses_engine_as_source() -> None:
    provider = SearxngProvider(["https://searx.example.org/"], rng=random.Random(1))
    url, params = provider.build_request("https://searx.example.org/", "q")
    assert url == "https://searx.example.org/search"
    assert params["format"] == "json"

    payload = {
        "results": [
            {"url": "https://a.com", "title": "A", "content": "a", "engine": "DuckDuckGo", "score": 2.0},
            {"url": "https://b.com", "title": "B", "content": "b", "thumbnail": "/img/b.png"},
        ]
    }
    results = provider.parse(payload, "https://searx.example.org/search")
    assert [r.source for r in results] == ["duckduckgo", "searxng"]
    assert results[1].thumbnail == "https://searx.example.org/img/b.png"


def test_duckduckgo_parse_abstract_and_topics() -> None:
    provider = DuckDuckGoProvider(["https://api.duckduckgo.com/"], rng=random.Random(1))
    payload = {
        "Heading": "Amsterdam",
        "AbstractURL": "https://en.wikipedia.org/wiki/Amsterdam",
        "AbstractText": "Capital of the Netherlands.",
        "Image": "/i/amsterdam.png",
        "Results": [],
        "RelatedTopics": [
            {"FirstURL": "https://duckduckgo.com/Weather", "Text": "Weather - State of the atmosphere",
             "Icon": {"URL": ""}},
            {"Name": "Group", "Topics": [
                {"FirstURL": "https://duckduckgo.com/Climate", "Text": "Climate"},
            ]},
        ],
    }
    results = provider.parse(payload, "https://api.duckduckgo.com/")
    assert [r.title for r in results] == ["Amsterdam", "Weather", "Climate"]
    assert results[0].thumbnail == "https://duckduckgo.com/i/amsterdam.png"
    assert results[1].snippet == "State of the atmosphere"
    assert results[2].snippet == "Climate"
    assert provider.parse("not json", "https://api.duckduckgo.com/") == []


async def test_collect_falls_back_to_next_endpoint() -> None:
    provider = MwmblProvider(["https://one.example/search", "https://two.example/search"], rng=random.Random(1))
    transport = FakeTransport({
        "https://one.example/search": APIError(ErrorKind.SERVER, "HTTP 500", status=500),
        "https://two.example/search": [mwmbl_item("https://a.com")],
    })
    results = await provider.collect(transport, "q")  # type: ignore[arg-type]

    assert [r.url for r in results] == ["https://a.com"]
    assert provider.stats.endpoint == "https://two.example/search"
    assert provider.stats.errors == 1
    config = transport.requests[0][1]
    assert config.params == {"s": "q"}
    assert config.rotate_identity and config.randomize_timing and config.obfuscate_traffic


async def test_collect_moves_on_from_empty_endpoint() -> None:
    provider = MwmblProvider(["https://one.example/search", "https://two.example/search"])
    transport = FakeTransport({
        "https://one.example/search": [],
        "https://two.example/search": [mwmbl_item("https://a.com")],
    })
    assert len(await provider.collect(transport, "q")) == 1  # type: ignore[arg-type]


async def test_collect_raises_when_every_endpoint_fails() -> None:
    provider = MwmblProvider(["https://one.example/search", "https://two.example/search"])
    transport = FakeTransport({
        "https://one.example/search": APIError(ErrorKind.NETWORK, "down"),
        "https://two.example/search": APIError(ErrorKind.TIMEOUT, "slow"),
    })
    with pytest.raises(APIError) as excinfo:
        await provider.collect(transport, "q")  # type: ignore[arg-type]
    assert excinfo.value.kind == ErrorKind.TIMEOUT


async def test_collect_returns_empty_when_some_endpoint_answered() -> None:
    provider = MwmblProvider(["https://one.example/search", "https://two.example/search"])
    transport = FakeTransport({
        "https://one.example/search": APIError(ErrorKind.NETWORK, "down"),
        "https://two.example/search": [],
    })
    assert await provider.collect(transport, "q") == []  # type: ignore[arg-type]
