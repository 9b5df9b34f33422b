"""Tests for donated plans."""
import json
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from planrag.donation import DonationService
from planrag.errors import InvalidArgument, UpstreamError
from planrag.models import DonatedPlanRecord
from planrag.schemas import DonatePlanRequest, Row

DESCRIPTION = {
    "title": "Model title",
    "description": "Model description.",
    "category": "technique",
    "difficulty": "intermediate",
    "focus": "kick",
}


@pytest.fixture
def service(synthesizer, store, session_factory):
    return DonationService(synthesizer, store, session_factory)


def _request(**kwargs):
    data = {"userId": "u-7", "table": [Row(cells=[4, 50, "kick"], sum=999)]}
    data.update(kwargs)
    return DonatePlanRequest(**data)


def test_supplied_title_wins_over_generated(service, client, store, session_factory):
    client.replies = [json.dumps(DESCRIPTION)]
    resp = service.donate(_request(title="Mine"))

    assert "write a short, specific title" in client.prompts[0]
    doc = store.similarity_search("kick", 1, {"plan_id": resp.plan_id})[0]
    assert doc.metadata["title"] == "Mine"
    assert doc.metadata["description"] == "Model description."
    assert doc.metadata["difficulty"] == "intermediate"
    assert doc.text.startswith("Mine\nModel description.\n")

    with session_factory() as db:
        record = db.get(DonatedPlanRecord, resp.plan_id)
    assert record.user_id == "u-7"
    assert record.rows == [{"cells": [4, 50, "kick"], "sum": 54.0}]


def test_empty_table_is_invalid(service, client):
    with pytest.raises(InvalidArgument):
        service.donate(_request(table=[]))
    assert client.prompts == []


def test_bad_description_reply_is_upstream_error(service, client, index, session_factory):
    client.replies = ["nope"]
    with pytest.raises(UpstreamError):
        service.donate(_request())
    assert len(index) == 0
    with session_factory() as db:
        assert db.query(DonatedPlanRecord).count() == 0


def test_index_failure_rolls_back_record(service, client, store, session_factory, monkeypatch):
    client.replies = [json.dumps(DESCRIPTION)]

    def fail(documents):
        raise UpstreamError("vector store", "down")

    monkeypatch.setattr(store, "upsert", fail)
    with pytest.raises(UpstreamError):
        service.donate(_request())
    with session_factory() as db:
        assert db.query(DonatedPlanRecord).count() == 0


def test_record_commit_failure_leaves_indexed_document(service, client, index, session_factory):
    client.replies = [json.dumps(DESCRIPTION)]
    with patch.object(Session, "commit", side_effect=OperationalError("COMMIT", {}, Exception("disk full"))):
        with pytest.raises(UpstreamError) as exc_info:
            service.donate(_request())
    assert exc_info.value.service == "database"
    assert len(index) == 1
    with session_factory() as db:
        assert db.query(DonatedPlanRecord).count() == 0


def test_trace_is_ended_when_description_fails(service, client):
    client.replies = ["nope"]
    with patch("planrag.donation.Trace") as trace_cls:
        with pytest.raises(UpstreamError):
            service.donate(_request())
    trace_cls.return_value.end.assert_called_once()
    assert "generation" in trace_cls.return_value.end.call_args.kwargs["output"]["error"]
