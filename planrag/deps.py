"""Process-wide service wiring.

Each getter builds its component once from planrag.config.settings and returns the
same instance afterwards, so concurrent requests share the model client and the
vector index. FastAPI routes take these as dependencies; tests override them.
"""
from functools import lru_cache

from planrag.config import settings
from planrag.donation import DonationService
from planrag.ingestion.pipeline import IngestionPipeline
from planrag.ledger import URLLedger
from planrag.metadata import MetadataSynthesizer
from planrag.pdf import LocalUploader, MarkdownPdfRenderer, PDFExporter
from planrag.providers import ModelClient, OpenAIModelClient
from planrag.router import QueryRouter
from planrag.scraper import HtmlPlanScraper
from planrag.store import DocumentStore
from planrag.vectorstore import build_index


@lru_cache
def get_model_client() -> ModelClient:
    return OpenAIModelClient()


@lru_cache
def get_store() -> DocumentStore:
    return DocumentStore(get_model_client(), build_index(settings.VECTOR_BACKEND))


@lru_cache
def get_synthesizer() -> MetadataSynthesizer:
    return MetadataSynthesizer(get_model_client())


@lru_cache
def get_ledger() -> URLLedger:
    return URLLedger()


def get_pipeline() -> IngestionPipeline:
    # a fresh scraper per crawl; it owns an HTTP session
    return IngestionPipeline(
        scraper=HtmlPlanScraper(),
        ledger=get_ledger(),
        synthesizer=get_synthesizer(),
        store=get_store(),
    )


@lru_cache
def get_query_router() -> QueryRouter:
    return QueryRouter(get_store(), get_model_client())


@lru_cache
def get_donation_service() -> DonationService:
    return DonationService(get_synthesizer(), get_store())


@lru_cache
def get_pdf_exporter() -> PDFExporter:
    return PDFExporter(MarkdownPdfRenderer(), LocalUploader())
