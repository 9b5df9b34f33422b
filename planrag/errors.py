"""Error taxonomy for the ingestion and query pipelines.

- InvalidArgument: malformed request fields or an unsupported query method (HTTP 400).
- UpstreamError: an embedding, generation, store or ledger call failed (HTTP 500).
  The original cause is wrapped into the message.
- PartialIngestionFailure: documents were upserted but the ledger append failed.
- SchemaMismatch: metadata synthesis output could not be parsed or validated. Only
  raised and caught inside the synthesizer.
"""
from typing import List, Optional


class PlanRAGError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidArgument(PlanRAGError):
    """Exception for request validation errors."""


class SchemaMismatch(PlanRAGError):
    """Model output did not parse or did not conform to the metadata schema."""


class UpstreamError(PlanRAGError):
    """A collaborator (model, vector store, ledger) failed."""

    def __init__(self, service: str, message: str, cause: Optional[BaseException] = None):
        self.service = service
        self.cause = cause
        text = f"{service}: {message}"
        if cause is not None:
            text += f": {cause}"
        super().__init__(text, {"service": service})


class PartialIngestionFailure(UpstreamError):
    """Documents were stored but their URLs could not be recorded in the ledger.

    No compensating delete is attempted; the ids are reported so the caller can see
    what was written.
    """

    def __init__(self, ids: List[str], cause: BaseException):
        self.ids = list(ids)
        super().__init__(
            "ledger",
            f"{len(self.ids)} documents stored but URL batch was not recorded",
            cause,
        )
