"""Retrieval-augmented question answering over a corpus of tabular plans.

Submodules overview:
- main: FastAPI application bootstrap, routes and error mapping.
- deps: Shared service instances used as route dependencies.
- config: Application settings and environment variable loading.
- db: Database engine/session management helpers.
- models: ORM models (plan documents, URL ledger, donated plans).
- schemas: Pydantic domain types and request/response contracts.
- errors: Error taxonomy shared by the pipelines and the API.
- embedding / generation: OpenAI helpers; providers: the pluggable model client.
- vectorstore: pgvector and in-memory vector index adapters.
- store: Document Store (embed + upsert, filtered similarity search).
- ledger: URL ledger of already ingested pages.
- scraper: Plan crawler producing (url, plan) pairs.
- metadata: LLM metadata synthesis for plans.
- router: Query routing ('choose' / 'generate') and output validation.
- answer: Authoritative row sums and totals.
- ingestion: Crawl-then-ingest pipeline and CLI.
- donation: Donated plan flow.
- pdf: Plan export to PDF.
- obs: Observability utilities (tracing/spans).
- utils: General-purpose helper functions.
"""
