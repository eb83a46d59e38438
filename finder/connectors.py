# finder/connectors.py
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from httpx import AsyncClient

from utils.log import get_logger
from .aggregator import dedupe_by_link
from .models import SearchResult
from .throttle import RateLimiter

logger = get_logger("connectors")

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
FORUM_USER_AGENT = "BookTracker/1.0 (by /u/booktracker)"

NO_PRICE = "Price not listed"
SEE_POST_PRICE = "See post for price"
BOOK_WORDS = ("book", "novel", "textbook")
SALE_WORDS = ("for sale", "selling", "sale", "$")
PRICE_RE = re.compile(r"\$(\d+(?:\.\d{2})?)")


class Connector:
    """
    Base class for a marketplace source.

    Subclasses implement ``_search``; ``search`` wraps it so that any failure
    is logged and turned into an empty result list. Each connector owns its
    HTTP client and rate limiter and must be closed when no longer needed.
    """

    name = "source"

    def __init__(self, client, limiter):
        self.client = client
        self.limiter = limiter

    async def close(self):
        await self.client.aclose()

    async def get(self, url, **kwargs):
        """
        Issue one rate-limited GET request against the source.

        Waits for a token from this source's limiter before sending. There
        is no retry; a failed request is left to the next scheduled run.

        Args:
            url (str): Absolute URL to fetch
            **kwargs: Passed through to ``httpx.AsyncClient.get`` (e.g. params)

        Returns:
            httpx.Response: The successful response

        Raises:
            httpx.HTTPStatusError: Non-2xx response
            httpx.HTTPError: Network failure, timeout or too many redirects
        """
        await self.limiter.acquire()
        resp = await self.client.get(url, **kwargs)
        resp.raise_for_status()
        return resp

    async def search(self, query):
        """
        Search the source for listings matching ``query``.

        Args:
            query (str): Free-text query, usually "title author"

        Returns:
            list[SearchResult]: Normalized listings, possibly empty

        Note:
            Never raises. Any failure is logged as a warning and reported as
            an empty list.
        """
        try:
            return await self._search(query)
        except Exception as e:
            logger.warning(f"{self.name} search failed for {query!r}: {e}")
            return []

    async def _search(self, query):
        raise NotImplementedError


class CraigslistConnector(Connector):
    """HTML search-page connector for Craigslist listings."""

    name = "craigslist"
    max_rows = 8

    def __init__(self, base_url="https://craigslist.org", limiter=None, transport=None):
        self.base_url = base_url.rstrip("/")
        client = AsyncClient(
            headers={"User-Agent": BROWSER_USER_AGENT},
            timeout=15.0,
            follow_redirects=True,
            max_redirects=3,
            transport=transport,
        )
        super().__init__(client, limiter or RateLimiter(requests_per_second=0.5, burst_size=1))

    async def _search(self, query):
        resp = await self.get(f"{self.base_url}/search/sss", params={"query": query})
        return self.parse_results(resp.text, query)

    def parse_results(self, html, query):
        """
        Parse the first rows of a Craigslist search page into results.

        Only the first ``max_rows`` rows are looked at. A row is kept when
        its title mentions a book word or any token of the query; rows that
        are missing a title or link, or fail to parse, are dropped.
        """
        soup = BeautifulSoup(html, "lxml")
        tokens = [t.lower() for t in query.split()]
        results = []
        for row in soup.select(".result-row")[: self.max_rows]:
            try:
                result = self.parse_row(row, tokens)
            except (AttributeError, TypeError, ValueError) as e:
                logger.debug(f"Skipping unparseable craigslist row: {e}")
                continue
            if result is not None:
                results.append(result)
        return results

    def parse_row(self, row, tokens):
        """
        Turn one ``.result-row`` element into a result.

        Args:
            row (bs4.element.Tag): The result row
            tokens (list[str]): Lower-cased query tokens

        Returns:
            SearchResult | None: The listing, or None when the row has no
                title or link, or its title matches neither a book word nor
                a query token

        Note:
            Missing price defaults to "Price not listed", condition is always
            "Used", and the neighborhood (when present) is appended to the
            source name. Relative links are resolved against the base URL.
        """
        title_el = row.select_one(".result-title")
        if title_el is None:
            return None
        title = title_el.get_text(strip=True)
        href = title_el.get("href")
        if not title or not href:
            return None

        title_lower = title.lower()
        relevant = any(w in title_lower for w in BOOK_WORDS) or any(
            t in title_lower for t in tokens
        )
        if not relevant:
            return None

        price_el = row.select_one(".result-price")
        price = price_el.get_text(strip=True) if price_el else ""
        hood_el = row.select_one(".result-hood")
        hood = hood_el.get_text(strip=True) if hood_el else ""

        link = href if href.startswith("http") else urljoin(self.base_url, href)
        return SearchResult(
            title=title,
            price=price or NO_PRICE,
            source=f"Craigslist {hood}" if hood else "Craigslist",
            link=link,
            condition="Used",
        )


class RedditConnector(Connector):
    """Forum search connector using Reddit's public JSON search API."""

    name = "reddit"
    max_results = 5

    def __init__(self, base_url="https://www.reddit.com", limiter=None, transport=None):
        self.base_url = base_url.rstrip("/")
        client = AsyncClient(
            headers={"User-Agent": FORUM_USER_AGENT},
            timeout=10.0,
            transport=transport,
        )
        super().__init__(client, limiter or RateLimiter(requests_per_second=2.0, burst_size=1))

    @staticmethod
    def query_variants(query):
        return [f"{query} for sale", f"selling {query}", f"{query} book sale"]

    async def _search(self, query):
        """
        Run every query variant in order and merge the hits.

        Results are deduplicated by link and capped at ``max_results``. A
        failure on any variant aborts the whole search.
        """
        results = []
        for term in self.query_variants(query):
            resp = await self.get(
                f"{self.base_url}/search.json",
                params={"q": term, "sort": "new", "limit": 15, "t": "month"},
            )
            results.extend(self.parse_listing(resp.json()))
        return dedupe_by_link(results)[: self.max_results]

    def parse_listing(self, payload):
        """Turn one search.json payload into results, skipping posts that don't qualify."""
        try:
            children = payload["data"]["children"]
        except (KeyError, TypeError):
            return []
        if not isinstance(children, list):
            return []

        results = []
        for child in children:
            try:
                result = self.parse_post(child["data"])
            except (KeyError, TypeError, AttributeError, ValueError) as e:
                logger.debug(f"Skipping unparseable reddit post: {e}")
                continue
            if result is not None:
                results.append(result)
        return results

    def parse_post(self, post):
        """
        Turn one post's ``data`` object into a result.

        Args:
            post (dict): The ``data`` field of a search.json child

        Returns:
            SearchResult | None: The listing, or None for adult-flagged or
                non-public posts and posts with no sale wording in their
                title or body

        Raises:
            KeyError: A required field (title, subreddit, permalink, author)
                is missing; the caller skips the post
        """
        if post.get("over_18") or post.get("subreddit_type") != "public":
            return None
        title = post["title"]
        if not isinstance(title, str) or not title:
            return None
        text = post.get("selftext") or ""
        combined = f"{title} {text}"
        if not any(w in combined.lower() for w in SALE_WORDS):
            return None

        m = PRICE_RE.search(combined)
        return SearchResult(
            title=title,
            price=f"${m.group(1)}" if m else SEE_POST_PRICE,
            source=f"Reddit r/{post['subreddit']}",
            link=f"https://reddit.com{post['permalink']}",
            seller=f"/u/{post['author']}",
        )


def build_connectors(settings):
    """Instantiate the connectors enabled in settings, in configured order."""
    connectors = []
    for name in settings.enabled_sources:
        if name == "craigslist":
            connectors.append(
                CraigslistConnector(
                    base_url=settings.craigslist_base_url,
                    limiter=RateLimiter(requests_per_second=settings.craigslist_rps, burst_size=1),
                )
            )
        elif name == "reddit":
            connectors.append(
                RedditConnector(
                    base_url=settings.reddit_base_url,
                    limiter=RateLimiter(requests_per_second=settings.reddit_rps, burst_size=1),
                )
            )
        else:
            logger.warning(f"Unknown source {name!r} in ENABLED_SOURCES, ignoring")
    return connectors
