"""Database setup and session utilities for SQLAlchemy.

This module centralizes engine/session initialization, metadata base, and helpers:
- init_db: Ensures the pgvector extension exists and creates required tables (plan
  documents, the URL ledger, donated plans) and the IVFFLAT index over the
  plan_documents.embedding column for vector similarity search.
- session_scope: Context-managed transactional scope for imperative workflows.

Configuration is read from planrag.config.settings.DATABASE_URL.
"""
from contextlib import contextmanager
from typing import Callable, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from planrag.config import settings

# SQLAlchemy setup
engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def init_db(bind: Optional[Engine] = None) -> None:
    """Initialize database extensions, tables, and vector indexes.

    On PostgreSQL, ensures the pgvector extension is available, creates all tables
    and the IVFFLAT index over plan_documents.embedding if missing. Other dialects
    (SQLite for local runs with the in-memory vector backend) only get the
    relational tables.

    This function is idempotent and safe to run multiple times.
    """
    bind = bind or engine
    # Import models after Base is defined
    from planrag import models

    if bind.dialect.name != "postgresql":
        Base.metadata.create_all(
            bind=bind,
            tables=[models.VisitedURL.__table__, models.DonatedPlanRecord.__table__],
        )
        return

    with bind.connect() as conn:
        # Enable pgvector extension
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        conn.commit()

    Base.metadata.create_all(bind=bind)

    # Note: Requires pgvector >= 0.4.0; table/index names must match models.
    with bind.connect() as conn:
        conn.execute(
            text(
                """
                DO $$
                BEGIN
                    IF NOT EXISTS (
                        SELECT 1 FROM pg_indexes WHERE indexname = 'idx_plan_documents_embedding_ivfflat'
                    ) THEN
                        CREATE INDEX idx_plan_documents_embedding_ivfflat
                        ON plan_documents USING ivfflat (embedding vector_cosine_ops)
                        WITH (lists = 100);
                    END IF;
                END$$;
                """
            )
        )
        conn.commit()


@contextmanager
def session_scope(factory: Callable[[], Session] = SessionLocal):
    """Provide a transactional scope around a series of operations.

    Args:
        factory: Session factory; defaults to the application SessionLocal.

    Yields:
        Session: A SQLAlchemy session bound to the configured engine.

    Notes:
        - Commits on successful exit.
        - Rolls back and re-raises on exception.
        - Always closes the session at the end.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
