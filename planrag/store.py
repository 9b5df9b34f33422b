"""Document Store: embedding + vector index behind upsert and similarity search.

Upserts are not idempotent on content; resubmitting the same text creates a new
entry. Duplicate suppression for crawled pages is the URL ledger's job.
"""
import logging
import uuid
from typing import List, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from planrag.errors import UpstreamError
from planrag.obs import span
from planrag.providers import ModelClient
from planrag.schemas import Document, MetadataValue
from planrag.vectorstore import VectorIndex

logger = logging.getLogger(__name__)


class DocumentStore:
    def __init__(self, client: ModelClient, index: VectorIndex):
        self.client = client
        self.index = index

    def upsert(self, documents: Sequence[Document]) -> List[str]:
        """Embed and store documents.

        Args:
            documents: Documents to write; each gets a fresh uuid4 identifier.

        Returns:
            List[str]: Generated ids, aligned with the input order.

        Raises:
            UpstreamError: If embedding or the index write fails.
        """
        if not documents:
            return []
        with span("store.upsert", {"documents": len(documents)}):
            vectors = self.client.embed_texts([d.text for d in documents])
            if len(vectors) != len(documents):
                raise UpstreamError(
                    "embedding", f"expected {len(documents)} vectors, got {len(vectors)}"
                )
            ids = [str(uuid.uuid4()) for _ in documents]
            try:
                self.index.add(list(zip(ids, documents, vectors)))
            except SQLAlchemyError as e:
                raise UpstreamError("vector store", "upsert failed", e) from e
        logger.info("Upserted %d documents", len(ids))
        return ids

    def similarity_search(
        self,
        query: str,
        k: int,
        filter: Optional[Mapping[str, MetadataValue]] = None,
    ) -> List[Document]:
        """Return up to k documents nearest to the query, best match first.

        Args:
            query: Query text; embedded with the same model as the documents.
            k: Maximum number of results.
            filter: Metadata equality predicates, all of which must hold. Empty or
                None means unrestricted.

        Returns:
            List[Document]: Possibly empty; never an error when nothing matches.
        """
        with span("store.search", {"k": k, "filters": len(filter or {})}):
            qvec = self.client.embed_query(query)
            try:
                docs = self.index.search(qvec, k, dict(filter or {}))
            except SQLAlchemyError as e:
                raise UpstreamError("vector store", "similarity search failed", e) from e
        logger.info("Similarity search returned %d documents (k=%d, filter=%s)", len(docs), k, dict(filter or {}))
        return docs
