"""Crawl-then-ingest pipeline.

For a seed URL:
1. the scraper crawls outward, skipping URLs the ledger already holds
2. each scraped plan gets its row sums recomputed and best-effort metadata from
   the synthesizer
3. all plans are upserted into the Document Store as one batch
4. the URLs of those plans are appended to the ledger as one batch

Consistency:
- Steps 1-4 run without any cross-request lock. Two crawls with overlapping
  frontiers can both pass the ledger check for the same URL before either appends
  it, so a page may be ingested more than once (at-least-once, never lost).
- Steps 3 and 4 are separate commits. If the upsert succeeds and the ledger append
  fails, PartialIngestionFailure is raised and the stored documents stay; a later
  crawl may ingest those pages again.

Usage:
  python -m planrag.ingestion.pipeline --url https://example.com/plans
"""
from __future__ import annotations

import argparse
import logging
from typing import List

from planrag.answer import recompute_sums
from planrag.errors import PartialIngestionFailure, UpstreamError
from planrag.ledger import URLLedger
from planrag.metadata import MetadataSynthesizer
from planrag.obs import Trace, span
from planrag.schemas import Document, Row
from planrag.scraper import ScraperAdapter
from planrag.store import DocumentStore

logger = logging.getLogger(__name__)


class IngestionPipeline:
    def __init__(
        self,
        scraper: ScraperAdapter,
        ledger: URLLedger,
        synthesizer: MetadataSynthesizer,
        store: DocumentStore,
    ):
        self.scraper = scraper
        self.ledger = ledger
        self.synthesizer = synthesizer
        self.store = store

    def ingest_seed(self, seed: str) -> List[str]:
        """Crawl `seed` and ingest every new plan found.

        Returns:
            List[str]: Ids of the stored documents; empty when nothing new was found,
            in which case neither the store nor the ledger is written.

        Raises:
            UpstreamError: Crawl, embedding or store failure.
            PartialIngestionFailure: Documents stored but the ledger append failed.
        """
        trace = Trace("scrape", input={"seed": seed})
        try:
            ids = self._ingest(seed, trace)
        except PartialIngestionFailure as e:
            trace.end(output={"ids": e.ids, "error": e.message})
            raise
        except Exception as e:
            trace.end(output={"error": str(e)})
            raise
        trace.end(output={"ids": ids})
        return ids

    def _ingest(self, seed: str, trace: Trace) -> List[str]:
        documents: List[Document] = []
        urls: List[str] = []

        with span("ingest.crawl", {"seed": seed}):
            for url, plan in self.scraper.scrape(self.ledger, seed):
                # scraped sums are never trusted
                plan = plan.model_copy(update={"table": [Row(cells=list(r.cells)) for r in plan.table]})
                recompute_sums(plan.table)
                base = plan.metadata()
                base["source_url"] = url
                meta = self.synthesizer.enrich(plan, base)
                enriched = plan.model_copy(
                    update={"title": str(meta["title"]), "description": str(meta["description"])}
                )
                documents.append(Document(text=enriched.text(), metadata=meta))
                urls.append(url)
        trace.event("crawl_result", {"plans": len(documents)})
        logger.info("Crawl of %s produced %d new plans", seed, len(documents))

        if not documents:
            return []

        ids = self.store.upsert(documents)
        try:
            self.ledger.append_batch(urls)
        except UpstreamError as e:
            logger.error("Stored %d documents but could not record their URLs: %s", len(ids), e)
            raise PartialIngestionFailure(ids, e) from e
        return ids


def main():
    parser = argparse.ArgumentParser(description="Crawl a seed URL and ingest the plans it links to.")
    parser.add_argument("--url", required=True, help="Seed URL to crawl")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (default: INFO)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logger.info("Starting ingestion for %s", args.url)

    from planrag.db import init_db
    from planrag.deps import get_pipeline

    init_db()
    try:
        ids = get_pipeline().ingest_seed(args.url)
        logger.info("Completed ingestion: documents=%d, url=%s", len(ids), args.url)
        print(f"[INGEST] {args.url} -> {len(ids)} documents")
    except Exception:
        logger.exception("Ingestion failed for %s", args.url)
        raise


if __name__ == "__main__":
    main()
