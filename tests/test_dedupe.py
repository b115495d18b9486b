from noexplorer.dedupe import DedupeEngine
from noexplorer.models import NormalizedResult, domain_from_url


def _r(url: str, source: str = "mwmbl", relevance: float = 0.5) -> NormalizedResult:
    return NormalizedResult(
        id=f"{source}-{url}",
        title=url,
        url=url,
        snippet="",
        domain=domain_from_url(url),
        relevance=relevance,
        source=source,
    )


def test_ranking_key_order() -> None:
    engine = DedupeEngine()
    results = [
        _r("https://en.wikipedia.org/wiki/A", "duckduckgo", 0.99),
        _r("https://plain.com/low", "mwmbl", 0.1),
        _r("https://plain.com/high", "mwmbl", 0.9),
        _r("https://diverse.com/x", "duckduckgo", 0.2),
    ]
    ranked = engine.rank(results)
    assert [r.url for r in ranked] == [
        "https://diverse.com/x",
        "https://plain.com/high",
        "https://plain.com/low",
        "https://en.wikipedia.org/wiki/A",
    ]


def test_ranking_is_stable_for_ties() -> None:
    engine = DedupeEngine()
    results = [_r(f"https://s{i}.com", relevance=0.5) for i in range(5)]
    assert engine.rank(results) == results


def test_duplicates_keep_the_best_ranked_copy() -> None:
    engine = DedupeEngine()
    low = _r("https://a.com/page", "mwmbl", 0.1)
    high = _r("https://a.com/page/?utm_source=x", "duckduckgo", 0.3)
    outcome = engine.dedupe([low, high])

    assert outcome.unique_results == [high]
    assert outcome.duplicates_removed == 1


def test_domain_cap() -> None:
    engine = DedupeEngine(domain_cap=3)
    results = [_r(f"https://busy.com/{i}", relevance=1 - i / 10) for i in range(5)]
    outcome = engine.dedupe(results + [_r("https://quiet.com/")])

    kept = [r.url for r in outcome.unique_results]
    assert kept[:3] == ["https://busy.com/0", "https://busy.com/1", "https://busy.com/2"]
    assert "https://quiet.com/" in kept
    assert outcome.capped_by_domain == 2


def test_over_represented_domain_gets_tighter_cap() -> None:
    engine = DedupeEngine(domain_cap=3, over_represented_cap=2)
    results = [_r(f"https://en.wikipedia.org/wiki/{i}") for i in range(4)]
    outcome = engine.dedupe(results)
    assert len(outcome.unique_results) == 2
    assert outcome.capped_by_domain == 2


def test_no_url_appears_twice_and_caps_hold() -> None:
    engine = DedupeEngine()
    results = []
    for source in ("mwmbl", "duckduckgo", "searxng"):
        for i in range(6):
            results.append(_r(f"https://site{i % 3}.com/p{i % 4}", source, relevance=i / 10))
    outcome = engine.dedupe(results)

    urls = [r.url for r in outcome.unique_results]
    assert len(urls) == len(set(urls))
    per_domain = {}
    for r in outcome.unique_results:
        per_domain[r.domain] = per_domain.get(r.domain, 0) + 1
    assert all(count <= 3 for count in per_domain.values())
    assert len(outcome.unique_results) + outcome.duplicates_removed + outcome.capped_by_domain == len(results)
