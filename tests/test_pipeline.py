"""Tests for the crawl-then-ingest pipeline, including the end-to-end query path."""
import json
from unittest.mock import patch

import pytest

from planrag.errors import PartialIngestionFailure, UpstreamError
from planrag.ingestion.pipeline import IngestionPipeline
from planrag.router import QueryRouter
from planrag.scraper import extract_plan

from tests.conftest import FakeScraper
from tests.test_scraper import PLAN_PAGE

METADATA = {
    "category": "endurance",
    "difficulty": "beginner",
    "focus": "aerobic base",
    "equipment": "",
    "keywords": "easy",
}


@pytest.fixture
def pages(beginner_plan, sprint_plan):
    return [
        ("https://example.test/plan1", beginner_plan),
        ("https://example.test/plan2", sprint_plan),
    ]


def _pipeline(pages, ledger, synthesizer, store):
    return IngestionPipeline(FakeScraper(pages), ledger, synthesizer, store)


def test_ingest_then_query_end_to_end(client, ledger, synthesizer, store, index, pages, beginner_plan):
    client.replies = [json.dumps(METADATA), json.dumps({**METADATA, "difficulty": "advanced"})]
    ids = _pipeline(pages, ledger, synthesizer, store).ingest_seed("https://example.test/plan1")

    assert len(ids) == 2
    assert len(index) == 2
    for url, _ in pages:
        assert ledger.contains(url)

    client.replies = [
        json.dumps(
            {
                "title": beginner_plan.title,
                "description": beginner_plan.description,
                "table": [{"cells": r.cells, "sum": 0} for r in beginner_plan.table],
            }
        )
    ]
    answer = QueryRouter(store, client).query("beginner plan", {}, "choose")
    expected = [sum(c for c in r.cells if not isinstance(c, str)) for r in beginner_plan.table]
    assert [r.sum for r in answer.table] == expected
    assert answer.total == sum(expected)


def test_stored_metadata_is_filterable(client, ledger, synthesizer, store, pages):
    client.replies = [json.dumps(METADATA), json.dumps({**METADATA, "difficulty": "advanced"})]
    _pipeline(pages, ledger, synthesizer, store).ingest_seed("https://example.test/plan1")

    docs = store.similarity_search("plan", 10, {"difficulty": "advanced"})
    assert len(docs) == 1
    assert docs[0].metadata["source_url"] == "https://example.test/plan2"
    assert docs[0].metadata["category"] == "endurance"


def test_fully_visited_site_writes_nothing(client, ledger, synthesizer, store, index, pages):
    ledger.append_batch([url for url, _ in pages])
    with patch.object(ledger, "append_batch") as append, patch.object(store, "upsert") as upsert:
        ids = _pipeline(pages, ledger, synthesizer, store).ingest_seed("https://example.test/plan1")
    assert ids == []
    append.assert_not_called()
    upsert.assert_not_called()
    assert client.prompts == []


def test_only_new_urls_are_ingested(client, ledger, synthesizer, store, index, pages):
    ledger.append_batch(["https://example.test/plan1"])
    client.replies = [json.dumps(METADATA)]
    ids = _pipeline(pages, ledger, synthesizer, store).ingest_seed("https://example.test/plan1")
    assert len(ids) == 1
    assert len(index) == 1


def test_bad_metadata_does_not_block_ingestion(client, ledger, synthesizer, store, pages, beginner_plan):
    client.replies = ["this is not json", "{}"]
    ids = _pipeline(pages, ledger, synthesizer, store).ingest_seed("https://example.test/plan1")
    assert len(ids) == 2
    docs = store.similarity_search("beginner freestyle", 10, {"source_url": "https://example.test/plan1"})
    assert set(docs[0].metadata) == {"title", "description", "table", "source_url"}
    assert docs[0].metadata["title"] == beginner_plan.title


def test_ledger_failure_after_upsert_is_partial_failure(client, ledger, synthesizer, store, index, pages):
    client.replies = [json.dumps(METADATA), json.dumps(METADATA)]
    with patch.object(ledger, "append_batch", side_effect=UpstreamError("ledger", "down")):
        with pytest.raises(PartialIngestionFailure) as exc_info:
            _pipeline(pages, ledger, synthesizer, store).ingest_seed("https://example.test/plan1")

    assert len(exc_info.value.ids) == 2
    # no compensating rollback: documents stay, URLs are not recorded
    assert len(index) == 2
    assert not ledger.contains("https://example.test/plan1")


def test_store_failure_skips_ledger(client, ledger, synthesizer, store, pages):
    client.replies = [json.dumps(METADATA), json.dumps(METADATA)]
    with patch.object(store, "upsert", side_effect=UpstreamError("vector store", "down")):
        with pytest.raises(UpstreamError):
            _pipeline(pages, ledger, synthesizer, store).ingest_seed("https://example.test/plan1")
    assert not ledger.contains("https://example.test/plan1")


class InterleavedScraper(FakeScraper):
    """Checks the ledger, then lets another crawl commit before yielding."""

    def __init__(self, pages, during):
        super().__init__(pages)
        self.during = during

    def scrape(self, visited, seed):
        found = list(super().scrape(visited, seed))
        self.during()
        yield from found


def test_overlapping_crawls_ingest_at_least_once(client, ledger, synthesizer, store, index, pages):
    client.replies = [json.dumps(METADATA)] * 4
    other = _pipeline(pages, ledger, synthesizer, store)
    pipeline = IngestionPipeline(
        InterleavedScraper(pages, lambda: other.ingest_seed("https://example.test/plan1")),
        ledger,
        synthesizer,
        store,
    )
    ids = pipeline.ingest_seed("https://example.test/plan1")

    assert len(ids) == 2
    assert len(index) == 4  # each page stored twice, none lost
    assert all(ledger.contains(url) for url, _ in pages)


def test_scraped_sums_are_recomputed_before_storing(client, ledger, synthesizer, store, index):
    plan = extract_plan(PLAN_PAGE)
    pages = [("https://example.test/plan1", plan)]
    client.replies = [json.dumps(METADATA)]
    _pipeline(pages, ledger, synthesizer, store).ingest_seed("https://example.test/plan1")

    doc = store.similarity_search("freestyle", 1)[0]
    assert [r["sum"] for r in json.loads(doc.metadata["table"])] == [54.0, 3.5]
    assert "4 | 50 | freestyle easy | 54" in doc.text
    assert "2 | 1.5 | pull | 3.5" in doc.text
    assert "4 | 50 | freestyle easy | 54" in client.prompts[0]
    assert all(r.sum == 0 for r in plan.table)


def test_trace_is_ended_when_ingestion_fails(client, ledger, synthesizer, store, pages):
    client.replies = [json.dumps(METADATA), json.dumps(METADATA)]
    with patch("planrag.ingestion.pipeline.Trace") as trace_cls, patch.object(
        ledger, "append_batch", side_effect=UpstreamError("ledger", "down")
    ):
        with pytest.raises(PartialIngestionFailure):
            _pipeline(pages, ledger, synthesizer, store).ingest_seed("https://example.test/plan1")

    output = trace_cls.return_value.end.call_args.kwargs["output"]
    assert len(output["ids"]) == 2
    assert "down" in output["error"]
