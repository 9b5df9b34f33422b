"""Vector index adapters.

A VectorIndex stores (id, document, embedding) triples and answers nearest-neighbour
queries restricted by metadata equality filters. Two adapters are provided:
- PgVectorIndex: Postgres + pgvector, cosine distance, JSONB containment for filters.
- InMemoryVectorIndex: numpy cosine similarity over a process-local list; used for
  local runs (VECTOR_BACKEND=memory) and tests.
"""
import json
import threading
from typing import Callable, List, Mapping, Protocol, Sequence, Tuple

import numpy as np
from sqlalchemy import text
from sqlalchemy.orm import Session

from planrag.db import SessionLocal, session_scope
from planrag.models import PlanDocument
from planrag.schemas import Document, MetadataValue

IndexedDocument = Tuple[str, Document, List[float]]


class VectorIndex(Protocol):
    def add(self, items: Sequence[IndexedDocument]) -> None: ...

    def search(self, vector: List[float], k: int, filter: Mapping[str, MetadataValue]) -> List[Document]: ...


def _vector_literal(vec: List[float]) -> str:
    return "[" + ",".join(f"{x:.6f}" for x in vec) + "]"


class PgVectorIndex:
    """pgvector-backed index over the plan_documents table."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def add(self, items: Sequence[IndexedDocument]) -> None:
        with session_scope(self.session_factory) as db:
            for doc_id, doc, emb in items:
                db.add(
                    PlanDocument(
                        id=doc_id,
                        document=doc.text,
                        cmetadata=dict(doc.metadata),
                        embedding=emb,
                    )
                )

    def search(self, vector: List[float], k: int, filter: Mapping[str, MetadataValue]) -> List[Document]:
        # jsonb containment of a flat object is a conjunction of key = value
        # predicates; '{}' is contained in every object.
        sql = text(
            """
            SELECT id, document, cmetadata
            FROM plan_documents
            WHERE cmetadata @> CAST(:filter AS jsonb)
            ORDER BY embedding <=> CAST(:qvec AS vector)
            LIMIT :k
            """
        )
        params = {"filter": json.dumps(dict(filter)), "qvec": _vector_literal(vector), "k": k}
        with session_scope(self.session_factory) as db:
            rows = db.execute(sql, params).mappings().all()
        return [Document(text=r["document"], metadata=r["cmetadata"] or {}) for r in rows]


def _matches(metadata: Mapping[str, MetadataValue], filter: Mapping[str, MetadataValue]) -> bool:
    for key, want in filter.items():
        if key not in metadata:
            return False
        have = metadata[key]
        if isinstance(have, bool) != isinstance(want, bool) or have != want:
            return False
    return True


class InMemoryVectorIndex:
    """Process-local index; safe for concurrent use from request threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._docs: List[Document] = []
        self._vectors: List[np.ndarray] = []
        self._ids: List[str] = []

    def __len__(self) -> int:
        return len(self._docs)

    def add(self, items: Sequence[IndexedDocument]) -> None:
        with self._lock:
            for doc_id, doc, emb in items:
                vec = np.asarray(emb, dtype=np.float32)
                norm = float(np.linalg.norm(vec))
                self._ids.append(doc_id)
                self._docs.append(doc)
                self._vectors.append(vec / norm if norm else vec)

    def search(self, vector: List[float], k: int, filter: Mapping[str, MetadataValue]) -> List[Document]:
        with self._lock:
            candidates = [
                (doc, vec) for doc, vec in zip(self._docs, self._vectors) if _matches(doc.metadata, filter)
            ]
        if not candidates or k <= 0:
            return []
        q = np.asarray(vector, dtype=np.float32)
        qn = float(np.linalg.norm(q))
        if qn:
            q = q / qn
        sims = np.array([float(np.dot(q, vec)) for _, vec in candidates])
        # stable sort keeps insertion order among equal similarities
        order = np.argsort(-sims, kind="stable")[:k]
        return [candidates[i][0] for i in order]


def build_index(backend: str) -> VectorIndex:
    """Create the vector index adapter named by VECTOR_BACKEND."""
    if backend == "memory":
        return InMemoryVectorIndex()
    if backend == "pgvector":
        return PgVectorIndex()
    raise ValueError(f"unknown vector backend: {backend!r}")

