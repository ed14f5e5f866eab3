"""Bounded page-content extraction used as classification input."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from threading import Lock
from time import monotonic
from typing import Dict, Optional, Protocol, Sequence
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from bookmark_sorter.errors import ExtractionFailure
from bookmark_sorter.settings import S


logger = logging.getLogger(__name__)


_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ContentDigest:
    description: str = ""
    keywords: str = ""
    body_excerpt: str = ""

    @classmethod
    def empty(cls) -> "ContentDigest":
        return cls()


def collapse_whitespace(value: str | None) -> str:
    return _WHITESPACE_RE.sub(" ", value or "").strip()


def bounded_digest(description: str | None, keywords: str | None, body: str | None) -> ContentDigest:
    """Build a digest with collapsed whitespace and the body cut to the char budget."""

    limit = max(int(S.EXTRACT_BODY_CHARS), 0)
    return ContentDigest(
        description=collapse_whitespace(description),
        keywords=collapse_whitespace(keywords),
        body_excerpt=collapse_whitespace((body or "")[: limit * 4])[:limit],
    )


def is_fetchable(page_ref: str | None) -> bool:
    if not page_ref:
        return False
    parsed = urlparse(page_ref)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


class PageProbe(Protocol):
    async def probe(self, page_ref: str) -> Optional[ContentDigest]:
        """Return a digest, ``None`` when this probe has no view of the page."""


@dataclass
class _Snapshot:
    url: str
    digest: ContentDigest
    captured_at: float


class LiveViewProbe:
    """Page snapshots pushed by the browser surface that currently shows the page."""

    def __init__(self, ttl_seconds: float = 300.0) -> None:
        self._ttl = ttl_seconds
        self._snapshots: Dict[str, _Snapshot] = {}
        self._lock = Lock()

    def register(self, url: str, description: str = "", keywords: str = "", body: str = "") -> ContentDigest:
        digest = bounded_digest(description, keywords, body)
        with self._lock:
            self._snapshots[url] = _Snapshot(url=url, digest=digest, captured_at=monotonic())
        return digest

    def clear(self) -> None:
        with self._lock:
            self._snapshots.clear()

    def _matches(self, view_url: str, page_ref: str) -> bool:
        return view_url == page_ref or view_url.startswith(page_ref) or page_ref.startswith(view_url)

    def lookup(self, page_ref: str) -> Optional[ContentDigest]:
        now = monotonic()
        with self._lock:
            for key, snapshot in list(self._snapshots.items()):
                if now - snapshot.captured_at > self._ttl:
                    self._snapshots.pop(key, None)
            exact = self._snapshots.get(page_ref)
            if exact is not None:
                return exact.digest
            for snapshot in self._snapshots.values():
                if self._matches(snapshot.url, page_ref):
                    return snapshot.digest
        return None

    async def probe(self, page_ref: str) -> Optional[ContentDigest]:
        return self.lookup(page_ref)


def parse_html(html: str) -> ContentDigest:
    soup = BeautifulSoup(html, "lxml")

    def _meta(name: str) -> str:
        tag = soup.find("meta", attrs={"name": re.compile(f"^{name}$", re.I)})
        if tag is None:
            return ""
        return str(tag.get("content") or "")

    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    body = soup.body.get_text(" ") if soup.body is not None else soup.get_text(" ")
    return bounded_digest(_meta("description"), _meta("keywords"), body)


class HttpPageProbe:
    """Fetch the page over HTTP and read its meta tags and visible text."""

    async def probe(self, page_ref: str) -> Optional[ContentDigest]:
        timeout = httpx.Timeout(float(S.EXTRACT_TIMEOUT_SECONDS))
        headers = {"User-Agent": S.EXTRACT_USER_AGENT, "Accept": "text/html,application/xhtml+xml"}
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, headers=headers) as client:
            try:
                response = await client.get(page_ref)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise ExtractionFailure(f"could not fetch {page_ref}: {exc}") from exc
        content_type = response.headers.get("content-type", "")
        if content_type and "html" not in content_type.lower():
            return None
        return parse_html(response.text)


class ContentExtractor:
    def __init__(self, probes: Sequence[PageProbe], timeout_seconds: Optional[float] = None) -> None:
        self._probes = list(probes)
        self._timeout = timeout_seconds

    async def _run_probes(self, page_ref: str) -> ContentDigest:
        for probe in self._probes:
            digest = await probe.probe(page_ref)
            if digest is not None:
                return digest
        return ContentDigest.empty()

    async def extract(self, page_ref: str | None) -> ContentDigest:
        """Return the digest for ``page_ref``; every failure yields the empty digest."""

        if not is_fetchable(page_ref):
            return ContentDigest.empty()
        deadline = float(self._timeout if self._timeout is not None else S.EXTRACT_TIMEOUT_SECONDS)
        try:
            return await asyncio.wait_for(self._run_probes(page_ref), timeout=deadline)
        except asyncio.TimeoutError:
            logger.warning("Content extraction for %s exceeded %.1fs", page_ref, deadline)
        except Exception as exc:
            logger.warning("Content extraction for %s failed: %s", page_ref, exc)
        return ContentDigest.empty()
