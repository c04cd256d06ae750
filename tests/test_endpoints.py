import re

from lumecine.providers.endpoints import (
    EndpointResolver, EndpointSpec, EndpointState, ProviderUrls, SearchEngine,
    parse_provider_urls, search_result_links,
)
from lumecine.exceptions import UpstreamError

from conftest import FakeFetcher

OVERRIDES = "https://overrides.test/raw"

SUPERFLIX_ENDPOINT = EndpointSpec(
    key="superflixapi",
    candidates=("https://static-a.test", "https://static-b.test"),
    domain_pattern=re.compile(r"superflix"),
    search_query="superflix",
)


def resolver_for(fetcher):
    return EndpointResolver(fetcher, ProviderUrls(fetcher, OVERRIDES), probe_timeout=1)


def test_parse_override_document():
    text = """
    # provider overrides
    SUPERFLIXAPI=https://example.test/
    RedeCanais=http://rc.example.test
    not a valid line
    warezcdn = https://spaces.test
    """
    urls = parse_provider_urls(text)
    assert urls == {
        "superflixapi": "https://example.test",
        "redecanais": "http://rc.example.test",
    }


async def test_override_beats_static_candidates():
    fetcher = FakeFetcher(
        routes={OVERRIDES: "SUPERFLIXAPI=https://example.test/"},
        live={"https://example.test", "https://static-a.test"},
    )
    state = await resolver_for(fetcher).resolve(SUPERFLIX_ENDPOINT, EndpointState(current_url="https://dead.test"))
    assert state.current_url == "https://example.test"
    assert state.discovery_source == "override"
    assert state.last_verified_at is not None


async def test_live_current_url_short_circuits():
    fetcher = FakeFetcher(live={"https://current.test"})
    state = await resolver_for(fetcher).resolve(SUPERFLIX_ENDPOINT, EndpointState(current_url="https://current.test"))
    assert state.current_url == "https://current.test"
    assert state.discovery_source == "current"
    assert fetcher.requested("GET") == []


async def test_static_candidates_when_override_missing():
    fetcher = FakeFetcher(routes={OVERRIDES: ""}, live={"https://static-b.test"})
    state = await resolver_for(fetcher).resolve(SUPERFLIX_ENDPOINT, EndpointState(current_url=None))
    assert state.current_url == "https://static-b.test"
    assert state.discovery_source == "static"


async def test_search_engine_discovery():
    ddg = (
        '<a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fother.test%2Fx">x</a>'
        '<a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fsuperflix-new.test%2Ffilme">y</a>'
    )
    fetcher = FakeFetcher(
        routes={"https://html.duckduckgo.com/html/?q=superflix": ddg},
        live={"https://superflix-new.test", "https://other.test"},
    )
    state = await resolver_for(fetcher).resolve(SUPERFLIX_ENDPOINT, EndpointState(current_url="https://dead.test"))
    assert state.current_url == "https://superflix-new.test"
    assert state.discovery_source == "duckduckgo"


async def test_total_failure_keeps_current_url():
    fetcher = FakeFetcher()
    before = EndpointState(current_url="https://dead.test", discovery_source="default")
    after = await resolver_for(fetcher).resolve(SUPERFLIX_ENDPOINT, before)
    assert after == before


async def test_override_fetch_failure_is_tolerated():
    fetcher = FakeFetcher(routes={OVERRIDES: UpstreamError("boom")})
    urls = ProviderUrls(fetcher, OVERRIDES)
    assert await urls.fetch() == {}
    assert await urls.get("superflixapi") is None


def test_search_result_links_unwraps_redirects():
    html = (
        '<a href="https://plain.test/page">a</a>'
        '<a href="/l/?uddg=https%3A%2F%2Fwrapped.test%2F">b</a>'
        '<a href="#">c</a>'
    )
    assert search_result_links(html) == ["https://plain.test/page", "https://wrapped.test/"]


async def test_search_engine_ignores_non_matching_domains():
    html = '<li class="b_algo"><h2><a href="https://unrelated.test/">r</a></h2></li>'
    fetcher = FakeFetcher(routes={"https://bing.test/?q=superflix": html}, live={"https://unrelated.test"})
    engine = SearchEngine("bing", "https://bing.test/?q={query}", fetcher)
    assert await engine.find(SUPERFLIX_ENDPOINT, EndpointState(current_url=None)) is None
