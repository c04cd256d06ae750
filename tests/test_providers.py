import json

import pytest

from lumecine.core.models import Audio, ContentType, MovieStream, Provider, Quality, SeriesStream
from lumecine.exceptions import ExtractionError
from lumecine.providers.base import CatalogItem, ProviderContext, get_page
from lumecine.providers.endpoints import EndpointResolver, EndpointState, ProviderUrls
from lumecine.providers.sources.redecanais import RedeCanais, parse_episodes, parse_map, parse_title
from lumecine.providers.sources.superflixapi import SuperflixAPI
from lumecine.providers.sources.warezcdn import WarezCDN, parse_movie_embeds, pick_embed

from conftest import FakeFetcher, make_media

SUPERFLIX = "https://superflixapi.run"
REDECANAIS = "https://redecanais.test"


def ctx_for(fetcher, store=None, tmdb=None):
    urls = ProviderUrls(fetcher, "https://overrides.test/raw")
    return ProviderContext(
        fetcher=fetcher,
        resolver=EndpointResolver(fetcher, urls, probe_timeout=1),
        store=store,
        tmdb=tmdb,
    )


# ──────────────────────────────
#  SuperflixAPI
# ──────────────────────────────
async def test_superflix_movie_by_imdb_id(tmdb):
    fetcher = FakeFetcher(routes={
        f"{SUPERFLIX}/filme/tt0133093": '<script>player("https://cdn.test/matrix/index.m3u8")</script>',
    })
    provider = SuperflixAPI(ctx_for(fetcher, tmdb=tmdb))
    url = await provider.resolve_movie_url(make_media(603, "Matrix"), Audio.DUBBED, Quality.UNKNOWN)
    assert url == "https://cdn.test/matrix/index.m3u8"


async def test_superflix_first_episode_is_one_indexed(tmdb):
    fetcher = FakeFetcher(routes={
        f"{SUPERFLIX}/serie/1396/1/1": '"https://cdn.test/bb/s1e1.m3u8"',
    })
    provider = SuperflixAPI(ctx_for(fetcher, tmdb=tmdb))
    url = await provider.resolve_series_url(make_media(1396, "Breaking Bad"), 0, 0, Audio.DUBBED)
    assert url == "https://cdn.test/bb/s1e1.m3u8"
    assert fetcher.requested("GET") == [f"{SUPERFLIX}/serie/1396/1/1"]


async def test_superflix_serves_player_page_without_direct_media(tmdb):
    fetcher = FakeFetcher(routes={f"{SUPERFLIX}/serie/1396/2/3": "<div id='player'></div>"})
    provider = SuperflixAPI(ctx_for(fetcher, tmdb=tmdb))
    url = await provider.resolve_series_url(make_media(1396, "Breaking Bad"), 1, 2, Audio.DUBBED)
    assert url == f"{SUPERFLIX}/serie/1396/2/3"


async def test_superflix_without_imdb_id(tmdb):
    provider = SuperflixAPI(ctx_for(FakeFetcher(), tmdb=tmdb))
    assert await provider.resolve_movie_url(make_media(1, "Unknown"), Audio.DUBBED, Quality.UNKNOWN) is None


async def test_get_page_retries_on_moved_domain(tmdb):
    fetcher = FakeFetcher(
        routes={
            "https://overrides.test/raw": "SUPERFLIXAPI=https://superflix.new",
            "https://superflix.new/filme/tt0133093": '"https://cdn.test/m.mp4"',
        },
        live={"https://superflix.new"},
    )
    provider = SuperflixAPI(ctx_for(fetcher, tmdb=tmdb))
    html = await get_page(provider, "filme/tt0133093")
    assert "m.mp4" in html
    assert provider.endpoint.current_url == "https://superflix.new"
    assert provider.endpoint.discovery_source == "override"


# ──────────────────────────────
#  RedeCanais parsers
# ──────────────────────────────
def test_parse_title():
    assert parse_title("Matrix (1999) - Dublado") == ("Matrix", 1999, Audio.DUBBED)
    assert parse_title("Parasita (2019) - Legendado - 1080p") == ("Parasita", 2019, Audio.SUBTITLED)
    assert parse_title("Cidade de Deus") == ("Cidade de Deus", None, Audio.DUBBED)
    assert parse_title("Homem-Aranha (2002) - Dublado") == ("Homem-Aranha", 2002, Audio.DUBBED)


def test_parse_movie_map_keeps_movie_links_only():
    html = """
    <ul>
      <li><a href="/matrix-1999-dublado-filme_123.html">Matrix (1999) - Dublado</a></li>
      <li><a href="/contato.html">Contato</a></li>
      <li><a href="#topo">Topo</a></li>
      <li><a href="/matrix-1999-dublado-filme_123.html">Matrix (1999) - Dublado</a></li>
    </ul>
    """
    [item] = parse_map(html, ContentType.MOVIE)
    assert item == CatalogItem(
        ContentType.MOVIE, "Matrix", "matrix-1999-dublado-filme_123.html", Audio.DUBBED, 1999,
    )


EPISODES_HTML = """
<div class="pm-category-description">
<strong>Temporada 1</strong><br>
Episódio 01 - Piloto - <a href="/bb-s1e1-dub.html">Dublado</a> - <a href="/bb-s1e1-leg.html">Legendado</a><br>
Episódio 02 - <a href="/bb-s1e2-leg.html">Legendado</a><br>
<strong>Temporada 2</strong><br>
Episódio 01 - Seven Thirty-Seven - <a href="/bb-s2e1-dub.html">Dublado</a><br>
Episódio 02 - Em breve<br>
</div>
"""


def test_parse_episodes_is_zero_indexed():
    groups = parse_episodes(EPISODES_HTML)
    assert [(g.season, g.episode) for g in groups] == [(0, 0), (0, 1), (1, 0)]
    first = groups[0]
    assert [(t.url, t.audio) for t in first.tracks] == [
        ("bb-s1e1-dub.html", Audio.DUBBED),
        ("bb-s1e1-leg.html", Audio.SUBTITLED),
    ]
    assert "Piloto" in first.title


# ──────────────────────────────
#  RedeCanais catalog
# ──────────────────────────────
async def test_materialize_catalog_is_idempotent(store, tmdb):
    tmdb.search_results[(ContentType.MOVIE, "Matrix")] = [tmdb.media[(ContentType.MOVIE, 603)]]
    tmdb.search_results[(ContentType.TV, "Breaking Bad")] = [tmdb.media[(ContentType.TV, 1396)]]
    fetcher = FakeFetcher(routes={f"{REDECANAIS}/breaking-bad.html": EPISODES_HTML})
    provider = RedeCanais(ctx_for(fetcher, store=store, tmdb=tmdb))
    provider.endpoint = EndpointState(current_url=REDECANAIS)

    items = [
        CatalogItem(ContentType.MOVIE, "Matrix", "matrix-filme.html", Audio.DUBBED, 1999),
        CatalogItem(ContentType.TV, "Breaking Bad", "breaking-bad.html"),
        CatalogItem(ContentType.MOVIE, "Filme Inexistente", "nada-filme.html"),
    ]
    assert await provider.materialize_catalog(items) == 2
    assert await provider.materialize_catalog(items) == 2

    assert await store.count(MovieStream) == 1
    assert await store.count(SeriesStream) == 4
    record = await store.find_movie_stream(603, Provider.REDECANAIS, Audio.DUBBED, Quality.UNKNOWN)
    assert record.access_url == ""
    assert record.refresh_url == "matrix-filme.html"


async def test_redecanais_resolves_from_stored_record(store, tmdb):
    tmdb.search_results[(ContentType.MOVIE, "Matrix")] = [tmdb.media[(ContentType.MOVIE, 603)]]
    fetcher = FakeFetcher(routes={
        f"{REDECANAIS}/matrix-filme.html": '<iframe src="/player/3.php"></iframe>',
        f"{REDECANAIS}/player/3.php": 'file: "https://cdn.test/rc/matrix.mp4"',
    })
    provider = RedeCanais(ctx_for(fetcher, store=store, tmdb=tmdb))
    provider.endpoint = EndpointState(current_url=REDECANAIS)
    await provider.materialize_catalog([CatalogItem(ContentType.MOVIE, "Matrix", "matrix-filme.html")])

    movie = await store.get_movie(603)
    url = await provider.resolve_movie_url(movie, Audio.DUBBED, Quality.HD)
    assert url == "https://cdn.test/rc/matrix.mp4"
    assert await provider.resolve_movie_url(movie, Audio.SUBTITLED, Quality.UNKNOWN) is None


# ──────────────────────────────
#  WarezCDN
# ──────────────────────────────
MOVIE_PAGE = """
<div class="selectAudioButton" data-load-embed="111" data-load-embed-host="mixdrop" data-load-embed-audio="2"></div>
<div class="selectAudioButton" data-load-embed="222" data-load-embed-host="warezcdn" data-load-embed-audio="2"></div>
<div class="selectAudioButton" data-load-embed="333" data-load-embed-host="warezcdn" data-load-embed-audio="1"></div>
"""


def test_pick_embed_prefers_host_order():
    embeds = parse_movie_embeds(MOVIE_PAGE)
    assert pick_embed(embeds, Audio.DUBBED) == ("warezcdn", "222", Audio.DUBBED)
    assert pick_embed(embeds, Audio.SUBTITLED) == ("warezcdn", "333", Audio.SUBTITLED)
    assert pick_embed([("mixdrop", "9", Audio.DUBBED)], Audio.SUBTITLED) is None


async def test_warezcdn_series_audio_track(tmdb):
    base = "https://embed.warezcdn.link"
    fetcher = FakeFetcher(routes={
        f"{base}/serie/tt0903747/1/2": "$('[data-load-episode-content=\"4242\"]').click();",
        f"{base}/serieAjax.php": json.dumps({"list": {
            "0": {"id": "77", "audio": "1", "warezcdnStatus": "3"},
            "1": {"id": "88", "audio": "2", "mixdropStatus": "3"},
        }}),
        "https://warezcdn.com/embed/getPlay.php": 'window.location.href="https://mixdrop.test/e/88";',
    })
    provider = WarezCDN(ctx_for(fetcher, tmdb=tmdb))
    url = await provider.resolve_series_url(make_media(1396, "Breaking Bad"), 0, 1, Audio.DUBBED)
    assert url == "https://mixdrop.test/e/88"
    assert fetcher.requested("POST") == [f"{base}/serieAjax.php"]


async def test_warezcdn_audio_list_with_unexpected_shape(tmdb):
    base = "https://embed.warezcdn.link"
    fetcher = FakeFetcher(routes={
        f"{base}/serie/tt0903747/1/1": "$('[data-load-episode-content=\"4242\"]').click();",
        f"{base}/serieAjax.php": json.dumps({"list": [{"id": "77", "audio": "2", "warezcdnStatus": "3"}]}),
    })
    provider = WarezCDN(ctx_for(fetcher, tmdb=tmdb))
    with pytest.raises(ExtractionError):
        await provider.resolve_series_url(make_media(1396, "Breaking Bad"), 0, 0, Audio.DUBBED)
