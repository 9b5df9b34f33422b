"""Shared fixtures: a scripted model client, SQLite-backed ledger and an in-memory store."""
import os
import re
import zlib

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("VECTOR_BACKEND", "memory")
os.environ.setdefault("OPENAI_API_KEY", "test")
os.environ.setdefault("RUNNING_IN_DOCKER", "1")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from planrag.db import init_db
from planrag.ledger import URLLedger
from planrag.metadata import MetadataSynthesizer
from planrag.schemas import Plan, Row
from planrag.store import DocumentStore
from planrag.vectorstore import InMemoryVectorIndex

DIM = 64


def bag_of_words(text):
    vec = [0.0] * DIM
    for tok in re.findall(r"[a-z0-9]+", text.lower()):
        vec[zlib.crc32(tok.encode()) % DIM] += 1.0
    return vec


class FakeModelClient:
    """Deterministic embeddings; `generate` returns scripted replies in order."""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.prompts = []
        self.embedded = []

    def embed_texts(self, texts):
        self.embedded.extend(texts)
        return [bag_of_words(t) for t in texts]

    def embed_query(self, text):
        self.embedded.append(text)
        return bag_of_words(text)

    def generate(self, prompt, json_response=False):
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if self.replies else "{}"
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeScraper:
    """Honours the scraper contract over a fixed site map."""

    def __init__(self, pages):
        self.pages = list(pages)
        self.checked = []

    def scrape(self, visited, seed):
        emitted = set()
        for url, plan in self.pages:
            self.checked.append(url)
            if url in visited or url in emitted:
                continue
            emitted.add(url)
            yield url, plan


def make_plan(title, description, rows):
    return Plan(title=title, description=description, table=[Row(cells=cells) for cells in rows])


@pytest.fixture
def client():
    return FakeModelClient()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield sessionmaker(bind=engine, autoflush=False, future=True)
    engine.dispose()


@pytest.fixture
def ledger(session_factory):
    return URLLedger(session_factory)


@pytest.fixture
def index():
    return InMemoryVectorIndex()


@pytest.fixture
def store(client, index):
    return DocumentStore(client, index)


@pytest.fixture
def synthesizer(client):
    return MetadataSynthesizer(client)


@pytest.fixture
def beginner_plan():
    return make_plan(
        "Beginner freestyle",
        "Easy endurance session for new swimmers",
        [
            [4, 50, "freestyle easy"],
            [8, 25, "kick with board"],
            [2, 100, "pull buoy"],
        ],
    )


@pytest.fixture
def sprint_plan():
    return make_plan(
        "Advanced sprint set",
        "High intensity sprint repeats",
        [
            [10, 50, "sprint all out"],
            [6, 100, "race pace"],
        ],
    )
