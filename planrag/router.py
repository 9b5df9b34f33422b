"""Query routing between choosing a stored plan and generating a new one.

Defines:
- Method: Literal type alias of the accepted query methods.
- validate_method: rejects anything but 'choose' / 'generate' before any I/O.
- build_prompt: the single augmented prompt sent to the model.
- parse_reply: model JSON -> Plan, raising UpstreamError when malformed.
- QueryRouter: search, one model call, post-validation, answer assembly.

In 'choose' mode the returned table must be one of the retrieved tables; the
stored table is what gets returned. In 'generate' mode every row must have the
same number of cells, matching the retrieved plans' width when they agree on one.
"""
import json
import logging
from typing import List, Literal, Mapping, Optional, cast

from pydantic import ValidationError

from planrag.answer import assemble_answer
from planrag.config import settings
from planrag.errors import InvalidArgument, UpstreamError
from planrag.obs import Trace, span
from planrag.providers import ModelClient
from planrag.schemas import Answer, Document, Plan, Row
from planrag.store import DocumentStore
from planrag.utils import strip_code_fence

logger = logging.getLogger(__name__)

Method = Literal["choose", "generate"]
METHODS = ("choose", "generate")

REPLY_FORMAT = (
    'Answer with a single JSON object of the form {"title": str, "description": str, '
    '"table": [{"cells": [...]}, ...]} and nothing else. Row sums are computed by the system; '
    "do not include them."
)

CHOOSE_INSTRUCTIONS = (
    "From the numbered plans below, choose the one that best fits the request. "
    "Return it exactly as stored: same title, same description and the same table rows "
    "with identical cells in the same order. Do not add, remove or change any row."
)

GENERATE_INSTRUCTIONS = (
    "Write a new plan that fits the request, using the numbered plans below as inspiration. "
    "Keep the table shape of those plans: every row must have the same columns in the "
    "same order, with numbers as JSON numbers."
)

PROMPT_TEMPLATE = """Request:
{query}

{instructions}
{reply_format}

Plans (best match first):
{context}
"""


def validate_method(method: str) -> Method:
    if method not in METHODS:
        raise InvalidArgument(f"unsupported method: {method!r}; use 'choose' or 'generate'")
    return cast(Method, method)


def build_prompt(query: str, method: Method, documents: List[Document]) -> str:
    """Compose the augmented prompt: request, mode instructions, then plans in rank order."""
    context = "\n\n".join(f"[{i}]\n{d.text}" for i, d in enumerate(documents, start=1))
    instructions = CHOOSE_INSTRUCTIONS if method == "choose" else GENERATE_INSTRUCTIONS
    return PROMPT_TEMPLATE.format(
        query=query,
        instructions=instructions,
        reply_format=REPLY_FORMAT,
        context=context or "(no stored plans matched)",
    )


def _normalize_rows(raw_rows: object) -> object:
    # accept bare cell lists; drop any model-provided sums
    if not isinstance(raw_rows, list):
        return raw_rows
    rows = []
    for r in raw_rows:
        if isinstance(r, list):
            rows.append({"cells": r})
        elif isinstance(r, dict):
            rows.append({k: v for k, v in r.items() if k != "sum"})
        else:
            rows.append(r)
    return rows


def parse_reply(raw: str) -> Plan:
    """Parse the model reply into a Plan.

    Raises:
        UpstreamError: The reply is not a JSON object of the expected shape.
    """
    try:
        data = json.loads(strip_code_fence(raw))
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        data["table"] = _normalize_rows(data.get("table"))
        return Plan.model_validate(data)
    except (ValueError, ValidationError) as e:
        raise UpstreamError("generation", "malformed model output", e) from e


def stored_plan(doc: Document) -> Optional[Plan]:
    """Rebuild the Plan held in a document's metadata, if it carries one."""
    table = doc.metadata.get("table")
    if not isinstance(table, str):
        return None
    try:
        rows = [Row.model_validate(r) for r in json.loads(table)]
    except (ValueError, ValidationError, TypeError):
        logger.warning("Document has an unreadable stored table; ignoring it")
        return None
    return Plan(
        title=str(doc.metadata.get("title", "")),
        description=str(doc.metadata.get("description", "")),
        table=rows,
    )


def _cells(table: List[Row]) -> List[list]:
    return [list(r.cells) for r in table]


class QueryRouter:
    def __init__(self, store: DocumentStore, client: ModelClient, top_k: Optional[int] = None):
        self.store = store
        self.client = client
        self.top_k = top_k or settings.QUERY_TOP_K

    def query(self, content: str, filter: Optional[Mapping[str, str]], method: str) -> Answer:
        """Answer a query by choosing or generating a plan.

        Raises:
            InvalidArgument: Unsupported method (raised before any store/model call).
            UpstreamError: Search or model failure, malformed or non-conforming output.
        """
        mode = validate_method(method)
        trace = Trace("query", input={"content": content, "filter": dict(filter or {}), "method": mode})
        try:
            answer = self._answer(content, filter or {}, mode, trace)
        except Exception as e:
            trace.end(output={"error": str(e)})
            raise
        trace.end(output={"rows": len(answer.table), "total": answer.total})
        logger.info("Answered %s query with %d rows (total=%g)", mode, len(answer.table), answer.total)
        return answer

    def _answer(self, content: str, filter: Mapping[str, str], mode: Method, trace: Trace) -> Answer:
        documents = self.store.similarity_search(content, self.top_k, filter)
        trace.event("retrieval_result", {"documents": len(documents)})
        if mode == "choose" and not documents:
            raise UpstreamError("vector store", "no stored plans match the query and filter")

        prompt = build_prompt(content, mode, documents)
        with span("query.generate", {"method": mode, "documents": len(documents)}):
            raw = self.client.generate(prompt, json_response=True)
        trace.generation("answer", prompt=prompt, output=raw, metadata={"method": mode})

        reply = parse_reply(raw)
        if mode == "choose":
            plan = self._match_retrieved(reply, documents)
        else:
            self._check_shape(reply, documents)
            plan = reply
        return assemble_answer(plan.title, plan.description, plan.table)

    def _match_retrieved(self, reply: Plan, documents: List[Document]) -> Plan:
        wanted = _cells(reply.table)
        for doc in documents:
            plan = stored_plan(doc)
            if plan is not None and _cells(plan.table) == wanted:
                return plan
        raise UpstreamError("generation", "chosen table does not match any retrieved plan")

    def _check_shape(self, reply: Plan, documents: List[Document]) -> None:
        if not reply.table:
            raise UpstreamError("generation", "generated plan has an empty table")
        widths = {len(r.cells) for r in reply.table}
        if len(widths) != 1:
            raise UpstreamError("generation", f"generated rows have differing widths {sorted(widths)}")
        stored_widths = set()
        for doc in documents:
            plan = stored_plan(doc)
            if plan is not None:
                stored_widths.update(len(r.cells) for r in plan.table)
        if len(stored_widths) == 1:
            (expected,) = stored_widths
            (got,) = widths
            if got != expected:
                raise UpstreamError("generation", f"generated rows have {got} cells, expected {expected}")
