"""Tests for the Document Store over the in-memory vector index."""
import pytest
from sqlalchemy.exc import OperationalError

from planrag.errors import UpstreamError
from planrag.schemas import Document


@pytest.fixture
def corpus(store):
    docs = [
        Document(text="beginner freestyle endurance", metadata={"difficulty": "beginner", "pool": 25}),
        Document(text="advanced sprint race pace", metadata={"difficulty": "advanced", "pool": 50}),
        Document(text="beginner kick technique drills", metadata={"difficulty": "beginner", "pool": 50}),
        Document(text="intermediate pull endurance", metadata={"difficulty": "intermediate"}),
    ]
    store.upsert(docs)
    return docs


def test_upsert_returns_one_new_id_per_document(store, index):
    ids = store.upsert([Document(text="a"), Document(text="b")])
    assert len(ids) == 2 and len(set(ids)) == 2
    assert len(index) == 2


def test_upsert_is_not_idempotent_on_content(store, index):
    first = store.upsert([Document(text="same plan")])
    second = store.upsert([Document(text="same plan")])
    assert first != second
    assert len(index) == 2


def test_upsert_empty_batch(store, client):
    assert store.upsert([]) == []
    assert client.embedded == []


def test_empty_filter_does_not_exclude(store, corpus):
    results = store.similarity_search("endurance", k=10, filter={})
    assert len(results) == len(corpus)
    assert store.similarity_search("endurance", k=10) == results


def test_filter_is_equality_on_every_key(store, corpus):
    results = store.similarity_search("plan", k=10, filter={"difficulty": "beginner"})
    assert {d.text for d in results} == {corpus[0].text, corpus[2].text}

    results = store.similarity_search("plan", k=10, filter={"difficulty": "beginner", "pool": 50})
    assert [d.text for d in results] == [corpus[2].text]


def test_filter_on_missing_key_or_other_type(store, corpus):
    assert store.similarity_search("plan", k=10, filter={"pool": "50"}) == []
    assert store.similarity_search("plan", k=10, filter={"coach": "x"}) == []


def test_results_are_ranked_and_limited(store, corpus):
    results = store.similarity_search("advanced sprint race", k=2, filter={})
    assert len(results) == 2
    assert results[0].text == corpus[1].text


def test_search_on_empty_store(store):
    assert store.similarity_search("anything", k=10, filter={}) == []


def test_index_failure_is_upstream_error(store, index, monkeypatch):
    def boom(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection reset"))

    monkeypatch.setattr(index, "search", boom)
    with pytest.raises(UpstreamError, match="connection reset"):
        store.similarity_search("x", k=3, filter={})
