"""Plan scraper: crawls pages outward from a seed and yields the plans it finds.

Contract (any adapter): `scrape(visited, seed)` returns a lazy, finite iterator of
(url, Plan) pairs. It never yields a URL contained in `visited` nor the same URL
twice, and an empty iterator is a valid result. Callers do not retry or resume.

HtmlPlanScraper is the bundled adapter:
- extract_links: find and normalize links from a page
- fetch: HTTP GET with basic headers and timeout
- extract_plan: first HTML <table> on a page -> Plan
- scrape: breadth-first crawl capped at SCRAPE_MAX_PAGES fetches
"""
import logging
from collections import deque
from typing import Container, Iterator, List, Optional, Protocol, Set, Tuple
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

from planrag.config import settings
from planrag.errors import UpstreamError
from planrag.schemas import Plan, Row
from planrag.utils import normalize_url, parse_cell, same_host

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "PlanRAG-Scraper/1.0 (+https://example.com; contact=dev@example.com)"
}

SUM_LABELS = {"sum", "total", "σ", "summe"}

ScrapedPlan = Tuple[str, Plan]


class ScraperAdapter(Protocol):
    def scrape(self, visited: Container[str], seed: str) -> Iterator[ScrapedPlan]: ...


def extract_links(base_url: str, html: str) -> List[str]:
    """Extract absolute, normalized http(s) links from an HTML page.

    Args:
        base_url: The URL used to resolve relative hrefs.
        html: The page HTML to parse.

    Returns:
        List[str]: Deduplicated links in document order.
    """
    soup = BeautifulSoup(html, "lxml")
    seen: Set[str] = set()
    out: List[str] = []
    for a in soup.find_all("a", href=True):
        abs_url = normalize_url(urljoin(base_url, a["href"]))
        if urlparse(abs_url).scheme not in ("http", "https"):
            continue
        if abs_url not in seen:
            seen.add(abs_url)
            out.append(abs_url)
    return out


def _cell_texts(tr: Tag) -> List[str]:
    return [c.get_text(" ", strip=True) for c in tr.find_all(["td", "th"])]


def extract_plan(html: str) -> Optional[Plan]:
    """Build a Plan from the first table on a page.

    The title comes from the first <h1> (falling back to <title>), the description
    from the first non-empty paragraph. A header row (all <th>) is dropped; if its
    last label names a sum column, that column is dropped from every row. A final
    row labelled as a total is dropped as well. Sums are left at zero.

    Returns:
        Optional[Plan]: None when the page has no table with data rows.
    """
    soup = BeautifulSoup(html, "lxml")
    table = soup.find("table")
    if table is None:
        return None

    title = ""
    h1 = soup.find("h1")
    if h1 is not None:
        title = h1.get_text(" ", strip=True)
    elif soup.title and soup.title.string:
        title = soup.title.string.strip()

    description = ""
    for p in soup.find_all("p"):
        txt = p.get_text(" ", strip=True)
        if txt:
            description = txt
            break

    trs = table.find_all("tr")
    drop_last_col = False
    if trs and all(c.name == "th" for c in trs[0].find_all(["td", "th"])):
        header = _cell_texts(trs[0])
        drop_last_col = bool(header) and header[-1].strip().lower() in SUM_LABELS
        trs = trs[1:]

    rows: List[Row] = []
    for tr in trs:
        texts = _cell_texts(tr)
        if drop_last_col and texts:
            texts = texts[:-1]
        if not any(t for t in texts):
            continue
        rows.append(Row(cells=[parse_cell(t) for t in texts]))
    if rows and isinstance(rows[-1].cells[0], str) and rows[-1].cells[0].lower() in SUM_LABELS:
        rows = rows[:-1]
    if not rows:
        return None
    return Plan(title=title[:500], description=description, table=rows)


class HtmlPlanScraper:
    """Breadth-first HTML crawler yielding pages that contain a plan table."""

    def __init__(
        self,
        max_pages: Optional[int] = None,
        timeout: Optional[int] = None,
        same_host_only: Optional[bool] = None,
        http: Optional[requests.Session] = None,
    ):
        self.max_pages = max_pages if max_pages is not None else settings.SCRAPE_MAX_PAGES
        self.timeout = timeout if timeout is not None else settings.SCRAPE_TIMEOUT_SECONDS
        self.same_host_only = settings.SCRAPE_SAME_HOST_ONLY if same_host_only is None else same_host_only
        self._owns_http = http is None
        self.http = http or requests.Session()

    def fetch(self, url: str) -> Tuple[int, str]:
        """Fetch a URL with a simple GET request.

        Returns:
            Tuple[int, str]: (HTTP status code, response text if ok else empty string).
        """
        resp = self.http.get(url, headers=HEADERS, timeout=self.timeout)
        return resp.status_code, resp.text if resp.ok else ""

    def scrape(self, visited: Container[str], seed: str) -> Iterator[ScrapedPlan]:
        """Crawl from `seed`, yielding (url, plan) for unvisited pages with a table.

        The seed is always fetched so its links can be followed, but it is only
        yielded when not already visited. Other candidates are checked against
        `visited` before they are fetched. An HTTP session created by this scraper
        is closed when the crawl ends.

        Raises:
            UpstreamError: If the seed itself cannot be fetched.
        """
        try:
            yield from self._crawl(visited, normalize_url(seed))
        finally:
            if self._owns_http:
                self.http.close()

    def _crawl(self, visited: Container[str], seed: str) -> Iterator[ScrapedPlan]:
        queue = deque([seed])
        queued: Set[str] = {seed}
        fetched = 0

        while queue and fetched < self.max_pages:
            url = queue.popleft()
            is_seed = url == seed
            already = url in visited
            if already and not is_seed:
                logger.debug("Skipping visited %s", url)
                continue

            try:
                status, html = self.fetch(url)
            except requests.RequestException as e:
                if is_seed:
                    raise UpstreamError("scraper", f"could not fetch seed {url}", e) from e
                logger.warning("Fetch failed for %s: %s", url, e)
                continue
            fetched += 1
            if status != 200 or not html:
                if is_seed:
                    raise UpstreamError("scraper", f"seed {url} returned HTTP {status}")
                logger.info("Skipping %s (HTTP %d)", url, status)
                continue

            if not already:
                plan = extract_plan(html)
                if plan is not None:
                    logger.info("Scraped plan %r from %s (%d rows)", plan.title, url, len(plan.table))
                    yield url, plan

            for nxt in extract_links(url, html):
                if nxt in queued:
                    continue
                if self.same_host_only and not same_host(nxt, seed):
                    continue
                queued.add(nxt)
                queue.append(nxt)

        logger.info("Crawl from %s finished after %d fetches", seed, fetched)
