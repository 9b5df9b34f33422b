"""Ingestion package: ledger-aware crawl, enrichment and storage of plans.

See pipeline.py for the orchestration and its command line entry point.
"""
