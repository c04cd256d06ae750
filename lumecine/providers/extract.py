"""
Media URL extraction from provider player pages.

Tried in order, first hit wins:
  m3u8 link -> mp4 link -> `file:` / `sources:` script assignment -> iframe src
An iframe is followed one level deep and the chain re-run on its body.
"""
from __future__ import annotations
import logging
import re
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ..exceptions import ExtractionError, UpstreamError
from .fetcher import Fetcher

log = logging.getLogger("lumecine.providers.extract")

M3U8_RE = re.compile(r"""https?://[^\s"'<>\\]+?\.m3u8[^\s"'<>\\]*""")
MP4_RE = re.compile(r"""https?://[^\s"'<>\\]+?\.mp4[^\s"'<>\\]*""")
FILE_RE = re.compile(r"""\bfile\s*:\s*["']([^"']+)["']""")
SOURCES_RE = re.compile(r"""\bsources\s*:\s*\[\s*\{?[^\]]*?["']?(?:file|src)["']?\s*:\s*["']([^"']+)["']""")


def _clean(url: str) -> str:
    return url.replace("\\/", "/")


def find_m3u8(html: str) -> Optional[str]:
    m = M3U8_RE.search(html.replace("\\/", "/"))
    return m.group(0) if m else None


def find_mp4(html: str) -> Optional[str]:
    m = MP4_RE.search(html.replace("\\/", "/"))
    return m.group(0) if m else None


def find_script_source(html: str) -> Optional[str]:
    """`file: "..."` or `sources: [{file: "..."}]` inside inline scripts."""
    soup = BeautifulSoup(html, "html.parser")
    for script in soup.find_all("script"):
        body = script.string or script.get_text() or ""
        for pattern in (SOURCES_RE, FILE_RE):
            m = pattern.search(body)
            if not m:
                continue
            url = _clean(m.group(1))
            if url.startswith("//"):
                url = "https:" + url
            if url.startswith("http"):
                return url
    return None


def find_iframe(html: str, base_url: str | None = None) -> Optional[str]:
    soup = BeautifulSoup(html, "html.parser")
    frame = soup.find("iframe", src=True)
    if frame is None:
        return None
    src = frame["src"].strip()
    if src.startswith("//"):
        src = "https:" + src
    if base_url:
        src = urljoin(base_url, src)
    return src if src.startswith("http") else None


_DIRECT = (find_m3u8, find_mp4, find_script_source)


def extract_direct(html: str) -> Optional[str]:
    for finder in _DIRECT:
        url = finder(html)
        if url:
            return url
    return None


async def extract_media_url(
    html: str,
    fetcher: Fetcher,
    *,
    page_url: str | None = None,
    follow_iframe: bool = True,
) -> str:
    """Run the chain on `html`. Raises ExtractionError when nothing matches."""
    url = extract_direct(html)
    if url:
        return url

    if follow_iframe:
        frame = find_iframe(html, page_url)
        if frame:
            log.debug("following iframe %s", frame)
            headers = {"Referer": page_url} if page_url else None
            try:
                inner = await fetcher.get(frame, headers=headers)
            except UpstreamError as e:
                raise ExtractionError(f"iframe {frame} unreachable: {e}") from e
            url = extract_direct(inner)
            if url:
                return url

    raise ExtractionError("no media url in page")
