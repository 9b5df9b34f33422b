"""Donated plans: user-submitted tables persisted and added to the corpus.

A donation without a title or description is described by the model first;
explicitly supplied values always win over generated ones. A donation with both
only gets its metadata fields generated. Unlike crawl enrichment, synthesis
failures here are reported to the caller.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from planrag.answer import recompute_sums
from planrag.db import SessionLocal, session_scope
from planrag.errors import InvalidArgument, SchemaMismatch, UpstreamError
from planrag.metadata import MetadataSynthesizer, merge_metadata
from planrag.models import DonatedPlanRecord
from planrag.obs import Trace, span
from planrag.schemas import (
    DonatedPlan,
    DonatePlanRequest,
    DonatePlanResponse,
    Document,
    MetadataValue,
    Plan,
    Row,
)
from planrag.store import DocumentStore

logger = logging.getLogger(__name__)


class DonationService:
    def __init__(
        self,
        synthesizer: MetadataSynthesizer,
        store: DocumentStore,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self.synthesizer = synthesizer
        self.store = store
        self.session_factory = session_factory

    def _describe(self, plan: Plan) -> Tuple[Plan, Dict[str, MetadataValue]]:
        try:
            if plan.title and plan.description:
                return plan, self.synthesizer.generate_metadata(plan).model_dump()
            desc = self.synthesizer.describe_table(plan)
        except SchemaMismatch as e:
            raise UpstreamError("generation", "plan description rejected", e) from e
        described = plan.model_copy(
            update={
                "title": plan.title or desc.title,
                "description": plan.description or desc.description,
            }
        )
        return described, desc.metadata_fields()

    def donate(self, req: DonatePlanRequest) -> DonatePlanResponse:
        """Describe, persist and index a donated plan.

        Raises:
            InvalidArgument: The table is empty.
            UpstreamError: Model, store or database failure.
        """
        if not req.table:
            raise InvalidArgument("table is empty")

        trace = Trace("donate-plan", input={"user_id": req.user_id, "rows": len(req.table)})
        try:
            resp = self._donate(req, trace)
        except Exception as e:
            trace.end(output={"error": str(e)})
            raise
        trace.end(output={"plan_id": resp.plan_id, "ids": resp.ids})
        return resp

    def _donate(self, req: DonatePlanRequest, trace: Trace) -> DonatePlanResponse:
        rows = [Row(cells=list(r.cells)) for r in req.table]
        recompute_sums(rows)
        plan = Plan(title=(req.title or "").strip(), description=(req.description or "").strip(), table=rows)
        with span("donate.describe", {"rows": len(rows)}):
            plan, fields = self._describe(plan)
        trace.event("described", {"title": plan.title})

        donated = DonatedPlan(
            user_id=req.user_id,
            plan_id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
            title=plan.title,
            description=plan.description,
            table=plan.table,
        )
        base = plan.metadata()
        base.update(
            user_id=donated.user_id,
            plan_id=donated.plan_id,
            created_at=donated.created_at.isoformat(),
        )
        metadata = merge_metadata(base, fields, protected=set(base))
        document = Document(text=plan.text(), metadata=metadata)

        try:
            # the record rolls back if indexing fails. PgVectorIndex commits the
            # document in its own session first, so a failed record commit leaves
            # an indexed document with no donation record.
            with session_scope(self.session_factory) as db:
                db.add(
                    DonatedPlanRecord(
                        plan_id=donated.plan_id,
                        user_id=donated.user_id,
                        created_at=donated.created_at,
                        title=donated.title,
                        description=donated.description,
                        rows=[r.model_dump() for r in donated.table],
                    )
                )
                ids = self.store.upsert([document])
        except SQLAlchemyError as e:
            raise UpstreamError("database", "could not store donated plan", e) from e

        logger.info("Stored donated plan %s for user %s", donated.plan_id, donated.user_id)
        return DonatePlanResponse(plan_id=donated.plan_id, ids=ids)
