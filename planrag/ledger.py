"""URL ledger: the durable set of page URLs already crawled and ingested.

The ledger is consulted before a page is fetched and appended once the page's
documents are stored. Those two steps are not guarded by a lock, and the append
is a separate commit from the document upsert; see planrag.ingestion.pipeline.
"""
import logging
from typing import Callable, Iterable, List

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from planrag.db import SessionLocal, session_scope
from planrag.errors import UpstreamError
from planrag.models import VisitedURL

logger = logging.getLogger(__name__)

# INSERT ... ON CONFLICT (url) DO NOTHING, per supported dialect
_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


class URLLedger:
    """Membership set of visited URLs, stored in the `urls` table.

    Supports `url in ledger` so it can be handed to a scraper as its visited set.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def contains(self, url: str) -> bool:
        try:
            with session_scope(self.session_factory) as db:
                found = db.execute(select(VisitedURL.id).where(VisitedURL.url == url).limit(1)).first()
        except SQLAlchemyError as e:
            raise UpstreamError("ledger", f"membership check failed for {url}", e) from e
        return found is not None

    __contains__ = contains

    def append_batch(self, urls: Iterable[str]) -> int:
        """Record a batch of URLs in a single transaction.

        URLs already present, including ones committed by a concurrent crawl while
        this batch is written, are skipped by the insert itself. Any other database
        error rolls back the whole batch, so either every new URL is recorded or
        none is.

        Returns:
            int: Number of URLs newly inserted.

        Raises:
            UpstreamError: If the transaction fails.
        """
        batch: List[str] = list(dict.fromkeys(urls))
        if not batch:
            return 0
        try:
            with session_scope(self.session_factory) as db:
                insert = _INSERTS[db.get_bind().dialect.name]
                stmt = (
                    insert(VisitedURL)
                    .values([{"url": u} for u in batch])
                    .on_conflict_do_nothing(index_elements=[VisitedURL.url])
                )
                inserted = max(db.execute(stmt).rowcount, 0)
        except SQLAlchemyError as e:
            raise UpstreamError("ledger", f"failed to record batch of {len(batch)} URLs", e) from e
        logger.info("Ledger recorded %d new URLs (%d already present)", inserted, len(batch) - inserted)
        return inserted
