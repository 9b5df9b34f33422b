"""Database ORM models.

Defines the persistent entities of the plan corpus:
- PlanDocument: a plan's canonical text with its flat metadata mapping (JSONB) and a
  pgvector embedding used for vector similarity search.
- VisitedURL: the URL ledger; one row per page already crawled and ingested.
- DonatedPlanRecord: an immutable plan donated by a user.
"""
from datetime import datetime
from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from pgvector.sqlalchemy import Vector

from planrag.db import Base
from planrag.config import settings


class PlanDocument(Base):
    """Vector-embedded plan document used for retrieval.

    Each row holds:
    - document: the canonical plan text that was embedded
    - cmetadata: flat key/scalar metadata, filterable with JSONB containment
    - an embedding vector (pgvector) for ANN search

    Notes:
        The embedding dimension is derived from settings.EMBEDDING_DIM and should
        match the embedding model configured in planrag.config.Settings.
    """
    __tablename__ = "plan_documents"

    id = Column(String(36), primary_key=True)  # uuid4
    document = Column(Text, nullable=False)
    cmetadata = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)

    # Embedding vector
    embedding = Column(Vector(dim=settings.EMBEDDING_DIM), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_plan_documents_cmetadata", "cmetadata", postgresql_using="gin"),
    )


class VisitedURL(Base):
    """A URL whose content has been ingested. Rows are never updated or deleted."""
    __tablename__ = "urls"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(Text, nullable=False, unique=True)


class DonatedPlanRecord(Base):
    """A user-donated plan, persisted once and never modified."""
    __tablename__ = "donated_plans"

    plan_id = Column(String(36), primary_key=True)
    user_id = Column(String(128), nullable=False)
    created_at = Column(DateTime, nullable=False)
    title = Column(String(512), nullable=False)
    description = Column(Text, nullable=False)
    rows = Column("plan_table", JSON, nullable=False)  # list of {"cells": [...], "sum": float}

    __table_args__ = (
        Index("idx_donated_plans_user", "user_id"),
    )
