"""FastAPI application entrypoint and routes.

Exposes health, scrape, query, add-documents, donate-plan and plan-to-pdf
endpoints, configures CORS and logging, maps the error taxonomy onto HTTP status
codes, and initializes the database schema at startup.
"""
import logging
import os
import time
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from planrag.config import settings
from planrag.db import init_db
from planrag.deps import (
    get_donation_service,
    get_pdf_exporter,
    get_pipeline,
    get_query_router,
    get_store,
)
from planrag.donation import DonationService
from planrag.errors import InvalidArgument, PartialIngestionFailure, UpstreamError
from planrag.ingestion.pipeline import IngestionPipeline
from planrag.pdf import PDFExporter
from planrag.router import QueryRouter
from planrag.schemas import (
    AddDocumentsRequest,
    Answer,
    DonatePlanRequest,
    DonatePlanResponse,
    IdsResponse,
    Plan,
    PlanToPDFRequest,
    PlanToPDFResponse,
    QueryRequest,
)
from planrag.store import DocumentStore

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Plan RAG API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # keep simple for demo; tighten for prod
    allow_methods=["*"],
    allow_credentials=True,
    allow_headers=["*"],
)

app.mount("/files", StaticFiles(directory=settings.PDF_EXPORT_DIR, check_dir=False), name="files")


@app.on_event("startup")
def on_startup() -> None:
    """Initialize database schema and the PDF export directory at application startup."""
    init_db()
    os.makedirs(settings.PDF_EXPORT_DIR, exist_ok=True)


@app.exception_handler(InvalidArgument)
async def invalid_argument_handler(request: Request, exc: InvalidArgument) -> JSONResponse:
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Malformed body for %s %s", request.method, request.url.path)
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    content = {"detail": exc.message, "service": exc.service}
    if isinstance(exc, PartialIngestionFailure):
        content["ids"] = exc.ids
    return JSONResponse(status_code=500, content=content)


@app.get("/health")
def health():
    """Liveness probe endpoint.

    Returns:
        dict: {"status": "ok"} when the service is running.
    """
    return {"status": "ok"}


@app.post("/scrape", response_model=IdsResponse)
def scrape(
    url: Optional[str] = Query(default=None, description="Seed URL to crawl"),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IdsResponse:
    """Crawl a seed URL, skipping pages already in the URL ledger, and ingest new plans."""
    if not url or not url.strip():
        raise InvalidArgument("missing url parameter")
    t0 = time.time()
    ids = pipeline.ingest_seed(url.strip())
    logger.info("Scrape of %s stored %d documents in %dms", url, len(ids), int((time.time() - t0) * 1000))
    return IdsResponse(ids=ids)


@app.post("/query", response_model=Answer)
def query(req: QueryRequest, router: QueryRouter = Depends(get_query_router)) -> Answer:
    """Choose a stored plan or generate a new one for the query.

    Workflow:
    - Validate the method ('choose' | 'generate')
    - Similarity search with the request's metadata filter
    - One model call on the augmented prompt
    - Post-validate the table and recompute every sum
    """
    return router.query(req.content, req.filter, req.method)


@app.post("/add-documents", response_model=IdsResponse)
def add_documents(req: AddDocumentsRequest, store: DocumentStore = Depends(get_store)) -> IdsResponse:
    """Embed and store documents as given."""
    return IdsResponse(ids=store.upsert(req.documents))


@app.post("/donate-plan", response_model=DonatePlanResponse)
def donate_plan(
    req: DonatePlanRequest,
    service: DonationService = Depends(get_donation_service),
) -> DonatePlanResponse:
    """Store a user's plan, describing it with the model when title or description is missing."""
    return service.donate(req)


@app.post("/plan-to-pdf", response_model=PlanToPDFResponse)
def plan_to_pdf(req: PlanToPDFRequest, exporter: PDFExporter = Depends(get_pdf_exporter)) -> PlanToPDFResponse:
    """Render a plan to PDF and return where it was uploaded."""
    plan = Plan(title=req.title, description=req.description, table=req.table)
    return PlanToPDFResponse(uri=exporter.export(plan))
