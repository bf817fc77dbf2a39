"""Async source adapters for upstream news feeds.

This module handles concurrent fetching and parsing of the upstream
sources and converts their payloads into RawItem objects.

Sources:
    arXiv        - Atom API query (cs.AI / cs.LG / cs.CL), newest first
    Hacker News  - top-story id list + per-item JSON, keyword filtered
    TechCrunch   - AI category RSS feed
    GitHub       - repository search JSON, sorted by stars

Error Handling Strategy:
    - Individual source failures don't affect other sources
    - SSL errors trigger a retry without verification
    - A failing source contributes zero items and is logged
    - Hacker News candidates that fail to resolve are skipped one by one
"""

import asyncio
import html
import json
import logging
import re
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Iterable, Sequence

import aiohttp
import certifi
import feedparser

from config import Config
from models.item import RawItem

logger = logging.getLogger(__name__)

ARXIV_URL = (
    "http://export.arxiv.org/api/query?search_query=cat:cs.AI+OR+cat:cs.LG+OR+cat:cs.CL"
    "&start=0&max_results=20&sortBy=submittedDate&sortOrder=descending"
)
HN_TOP_STORIES_URL = "https://hacker-news.firebaseio.com/v0/topstories.json"
HN_ITEM_URL = "https://hacker-news.firebaseio.com/v0/item/{id}.json"
HN_DISCUSSION_URL = "https://news.ycombinator.com/item?id={id}"
TECHCRUNCH_URL = "https://techcrunch.com/category/artificial-intelligence/feed/"
GITHUB_SEARCH_URL = (
    "https://api.github.com/search/repositories"
    "?q=machine+learning+OR+artificial+intelligence+OR+LLM&sort=stars&order=desc&per_page=20"
)

# Titles must contain one of these (case-insensitive substring) to be kept
AI_KEYWORDS = (
    "AI",
    "artificial intelligence",
    "machine learning",
    "LLM",
    "GPT",
    "OpenAI",
    "Anthropic",
    "neural",
    "deep learning",
)

_TAG_PATTERN = re.compile(r"<[^>]+>")
_WS_PATTERN = re.compile(r"\s+")

# GitHub rejects API requests without a User-Agent
USER_AGENT = "intelwatch/1.0 (+https://github.com/intelwatch)"


@lru_cache(maxsize=2)
def ssl_context(verify: bool = True) -> ssl.SSLContext:
    """certifi-backed SSL context, or an unverified one for the retry path."""
    if verify:
        return ssl.create_default_context(cafile=certifi.where())
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _clean_text(value: str | None) -> str:
    """Strip markup and collapse whitespace from feed text."""
    if not value:
        return ""
    text = _TAG_PATTERN.sub(" ", value)
    text = html.unescape(text)
    return _WS_PATTERN.sub(" ", text).strip()


def _parse_date(entry: dict) -> datetime | None:
    """Extract publication date from a feedparser entry.

    Tries published, then updated, then created time tuples.

    Returns:
        Datetime in UTC, or None if no valid date found
    """
    for field in ("published_parsed", "updated_parsed", "created_parsed"):
        time_tuple = entry.get(field)
        if time_tuple:
            try:
                return datetime(*time_tuple[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                continue
    return None


def _parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def matches_keywords(title: str, keywords: Iterable[str] = AI_KEYWORDS) -> bool:
    """Case-insensitive substring match against any keyword."""
    lowered = title.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


async def fetch_text(
    session: aiohttp.ClientSession,
    url: str,
    timeout: float,
    verify_ssl: bool = True,
) -> str:
    """Fetch a URL as text with SSL fallback.

    On SSL certificate errors, retries once without verification.

    Raises:
        aiohttp.ClientResponseError: On non-2xx responses
        asyncio.TimeoutError: When the bounded wait is exceeded
    """
    try:
        async with session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=timeout),
            headers={"User-Agent": USER_AGENT},
            ssl=ssl_context(verify_ssl),
        ) as resp:
            resp.raise_for_status()
            return await resp.text()
    except aiohttp.ClientSSLError:
        if verify_ssl:
            logger.debug("Source %s: SSL error, retrying without verification", url)
            return await fetch_text(session, url, timeout, verify_ssl=False)
        raise


async def fetch_json(session: aiohttp.ClientSession, url: str, timeout: float) -> Any:
    """Fetch a URL and decode the body as JSON."""
    return json.loads(await fetch_text(session, url, timeout))


@dataclass
class SourceBatch:
    """Items from one source plus the error that emptied it, if any."""

    source: str
    items: list[RawItem]
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SourceAdapter:
    """Base class for one upstream feed.

    Subclasses implement `_fetch`, which may raise freely; `collect` and
    `fetch` turn any failure into an empty result plus a log line so one
    bad source never aborts the gather.

    Attributes:
        name: Display name stored in RawItem.source
        url: Endpoint to fetch
        limit: Maximum items this source contributes
        timeout: Bounded wait per HTTP request (seconds)
    """

    name = "source"
    default_url = ""
    default_limit = 20

    def __init__(self, timeout: float = 10.0, url: str | None = None, limit: int | None = None):
        self.timeout = timeout
        self.url = url or self.default_url
        self.limit = limit if limit is not None else self.default_limit

    async def _fetch(self, session: aiohttp.ClientSession) -> list[RawItem]:
        raise NotImplementedError

    async def _get_text(self, session: aiohttp.ClientSession, url: str) -> str:
        return await fetch_text(session, url, self.timeout)

    async def _get_json(self, session: aiohttp.ClientSession, url: str) -> Any:
        return await fetch_json(session, url, self.timeout)

    async def collect(self, session: aiohttp.ClientSession) -> SourceBatch:
        """Fetch and parse, capturing any failure in the batch."""
        try:
            items = await self._fetch(session)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning("Source %s: request timed out after %.0fs", self.name, self.timeout)
            return SourceBatch(self.name, [], error="timeout")
        except Exception as e:
            logger.warning("Source %s: %s: %s", self.name, type(e).__name__, e)
            return SourceBatch(self.name, [], error=f"{type(e).__name__}: {e}")
        return SourceBatch(self.name, items[: self.limit])

    async def fetch(self, session: aiohttp.ClientSession) -> list[RawItem]:
        """Return this source's items, or [] if it failed."""
        return (await self.collect(session)).items

    def __repr__(self) -> str:
        return f"{type(self).__name__}(limit={self.limit}, timeout={self.timeout})"


class ArxivSource(SourceAdapter):
    """Newest AI/ML/NLP papers from the arXiv Atom API."""

    name = "arXiv"
    default_url = ARXIV_URL
    default_limit = 20

    async def _fetch(self, session: aiohttp.ClientSession) -> list[RawItem]:
        return parse_arxiv(await self._get_text(session, self.url))


def parse_arxiv(content: str, source: str = ArxivSource.name) -> list[RawItem]:
    """Parse an arXiv Atom response into RawItems."""
    feed = feedparser.parse(content)
    items = []
    for entry in feed.entries:
        title = _clean_text(entry.get("title"))
        if not title:
            continue
        items.append(RawItem(
            title=title,
            summary=_clean_text(entry.get("summary")) or None,
            url=entry.get("id") or entry.get("link", ""),
            source=source,
            published=_parse_date(entry) or datetime.now(timezone.utc),
            authors=[a.get("name", "") for a in entry.get("authors", []) if a.get("name")],
        ))
    return items


class TechCrunchSource(SourceAdapter):
    """TechCrunch artificial-intelligence category feed."""

    name = "TechCrunch"
    default_url = TECHCRUNCH_URL
    default_limit = 15

    async def _fetch(self, session: aiohttp.ClientSession) -> list[RawItem]:
        return parse_rss(await self._get_text(session, self.url), self.name)


def parse_rss(content: str, source: str) -> list[RawItem]:
    """Parse a generic RSS/Atom feed into RawItems."""
    feed = feedparser.parse(content)
    items = []
    for entry in feed.entries:
        title = _clean_text(entry.get("title"))
        if not title:
            continue
        pub_date = _parse_date(entry)
        if not pub_date:
            pub_date = datetime.now(timezone.utc)
            logger.debug("Feed entry missing date, using current time: %s", title[:50])
        items.append(RawItem(
            title=title,
            summary=_clean_text(entry.get("summary") or entry.get("description")) or None,
            url=entry.get("link", ""),
            source=source,
            published=pub_date,
        ))
    return items


class GitHubSource(SourceAdapter):
    """Most-starred ML/AI/LLM repositories from the GitHub search API."""

    name = "GitHub"
    default_url = GITHUB_SEARCH_URL
    default_limit = 10

    async def _fetch(self, session: aiohttp.ClientSession) -> list[RawItem]:
        return parse_github(await self._get_json(session, self.url))


def parse_github(payload: dict[str, Any], source: str = GitHubSource.name) -> list[RawItem]:
    """Parse a GitHub repository search response into RawItems."""
    items = []
    for repo in payload.get("items", []):
        name = repo.get("name")
        if not name:
            continue
        items.append(RawItem(
            title=f"{name} - {repo.get('description') or 'No description'}",
            url=repo.get("html_url", ""),
            source=source,
            published=_parse_iso(repo.get("created_at")) or datetime.now(timezone.utc),
            popularity=repo.get("stargazers_count"),
            language=repo.get("language"),
        ))
    return items


class HackerNewsSource(SourceAdapter):
    """Hacker News top stories whose titles mention AI topics.

    Fetches the top-story id list, then resolves up to `max_candidates`
    ids one at a time, keeping only keyword matches. Resolution stops as
    soon as `limit` items are retained or the candidates run out.
    """

    name = "Hacker News"
    default_url = HN_TOP_STORIES_URL
    default_limit = 10
    max_candidates = 50

    def __init__(
        self,
        timeout: float = 10.0,
        url: str | None = None,
        limit: int | None = None,
        keywords: Sequence[str] = AI_KEYWORDS,
        max_candidates: int | None = None,
    ):
        super().__init__(timeout=timeout, url=url, limit=limit)
        self.keywords = tuple(keywords)
        if max_candidates is not None:
            self.max_candidates = max_candidates

    async def _fetch(self, session: aiohttp.ClientSession) -> list[RawItem]:
        candidate_ids = await self._get_json(session, self.url)
        items: list[RawItem] = []
        resolved = 0

        for item_id in candidate_ids[: self.max_candidates]:
            if len(items) >= self.limit:
                break
            resolved += 1
            try:
                data = await self._get_json(session, HN_ITEM_URL.format(id=item_id))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug("Source %s: item %s failed: %s", self.name, item_id, e)
                continue
            item = self._to_item(data)
            if item is not None:
                items.append(item)

        logger.debug("Source %s: resolved=%d kept=%d", self.name, resolved, len(items))
        return items

    def _to_item(self, data: dict[str, Any] | None) -> RawItem | None:
        if not data or not data.get("title"):
            return None
        if not matches_keywords(data["title"], self.keywords):
            return None
        item_id = data.get("id")
        published = (
            datetime.fromtimestamp(data["time"], tz=timezone.utc)
            if data.get("time") else datetime.now(timezone.utc)
        )
        return RawItem(
            title=data["title"],
            url=data.get("url") or HN_DISCUSSION_URL.format(id=item_id),
            source=self.name,
            published=published,
            popularity=data.get("score"),
        )


def default_sources(config: Config) -> list[SourceAdapter]:
    """Build the standard set of adapters."""
    return [
        ArxivSource(timeout=config.fetch_timeout),
        HackerNewsSource(timeout=config.fetch_timeout),
        TechCrunchSource(timeout=config.fetch_timeout),
        GitHubSource(timeout=config.fetch_timeout),
    ]


async def gather_sources(
    sources: Sequence[SourceAdapter],
    max_concurrent: int = 10,
) -> list[SourceBatch]:
    """Fetch all sources concurrently.

    Uses one pooled session for every adapter. Results are returned in
    the same order as `sources`.

    Returns:
        One SourceBatch per source (failed sources carry an error and no items)
    """
    connector = aiohttp.TCPConnector(limit=max_concurrent)

    async with aiohttp.ClientSession(connector=connector) as session:
        results = await asyncio.gather(
            *(source.collect(session) for source in sources),
            return_exceptions=True,
        )

    batches = []
    for source, result in zip(sources, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, Exception):
            logger.warning("Source error %s: %s (%s)", source.name, result, type(result).__name__)
            batches.append(SourceBatch(source.name, [], error=str(result)))
        else:
            batches.append(result)
            logger.debug("Source %s: %d items", source.name, len(result.items))

    total = sum(len(b.items) for b in batches)
    errors = sum(1 for b in batches if not b.ok)
    logger.info("Sources fetched | items=%d sources=%d errors=%d", total, len(sources), errors)
    return batches


def normalize(batches: Iterable[Sequence[RawItem]]) -> list[RawItem]:
    """Flatten per-source item sequences into one list, in source order.

    No cross-source deduplication is performed.
    """
    return [item for batch in batches for item in batch]
