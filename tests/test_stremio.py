from urllib.parse import unquote

from lumecine.core.models import Audio, Provider, Quality
from lumecine.services.streams import StreamLink
from lumecine.services.stremio import StreamRequest, describe, parse_stream_id, proxied, watch_url


def test_internal_ids():
    assert parse_stream_id("lumecine:603") == StreamRequest(tmdb_id=603)
    assert parse_stream_id("lumecine:1396.0.4.json") == StreamRequest(tmdb_id=1396, season=0, episode=4)
    assert parse_stream_id("lumecine::603") == StreamRequest(tmdb_id=603)


def test_imdb_ids_are_one_indexed():
    assert parse_stream_id("tt0133093") == StreamRequest(imdb_id="tt0133093")
    req = parse_stream_id("tt0903747:1:1")
    assert req.is_episode
    assert (req.imdb_id, req.season, req.episode) == ("tt0903747", 0, 0)
    assert parse_stream_id("tt0903747:0:1") is None


def test_foreign_ids_are_ignored():
    assert parse_stream_id("kitsu:123") is None
    assert parse_stream_id("lumecine:abc") is None
    assert parse_stream_id("") is None


def test_proxied_url():
    assert proxied(None, "https://cdn.test/a.m3u8") == "https://cdn.test/a.m3u8"
    out = proxied("https://proxy.test/", "https://cdn.test/a.m3u8?t=1&x=2")
    assert out.startswith("https://proxy.test/?url=")
    assert unquote(out.split("?url=", 1)[1]) == "https://cdn.test/a.m3u8?t=1&x=2"


def test_describe():
    link = StreamLink("abc", Provider.SUPERFLIXAPI, Audio.SUBTITLED, "https://cdn.test/a.m3u8", Quality.HD)
    desc = describe(link, "http://app.test", "Matrix")
    assert desc["url"] == watch_url("http://app.test", "abc") == "http://app.test/stream/watch/abc"
    assert desc["name"] == "LumeCine\nHD"
    assert desc["title"] == "Matrix\nSuperflixAPI | Legendado"
    assert desc["behaviorHints"]["bingeGroup"] == "lumecine-superflixapi-subtitled"
