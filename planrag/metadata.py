"""Metadata synthesis for plans using the generative model.

Two prompt forms are used:
- describe: the plan has no usable description; the model writes a title and a
  description and fills the metadata schema.
- metadata-only: title and description are given; the model only fills the
  metadata schema.

Crawl enrichment (`enrich`) is best-effort: any parse, schema or model failure
leaves the document metadata exactly as it was. Donations call `describe_table` /
`generate_metadata` directly and see their errors.
"""
import json
import logging
from typing import Collection, Dict, Mapping

from pydantic import TypeAdapter, ValidationError

from planrag.errors import SchemaMismatch, UpstreamError
from planrag.providers import ModelClient
from planrag.schemas import Metadata, MetadataValue, Plan
from planrag.utils import strip_code_fence

logger = logging.getLogger(__name__)

_metadata_map = TypeAdapter(Dict[str, MetadataValue])


class PlanDescription(Metadata):
    """Model output for the describe form: metadata plus title and description."""
    title: str
    description: str

    def metadata_fields(self) -> Dict[str, MetadataValue]:
        return self.model_dump(exclude={"title", "description"})


DESCRIBE_TEMPLATE = """You are an experienced coach cataloguing training plans.
Read the plan below and write a short, specific title and a description of two to four
sentences covering its goal, structure and intended athlete. Then fill in the metadata.

Title: {title}
Description: {description}
Table (one row per line, cells separated by ' | ', last value is the row sum):
{table}

Answer with a single JSON object containing the keys "title" and "description" and the
fields of this JSON schema, and nothing else:
{schema}
"""

METADATA_TEMPLATE = """You are an experienced coach cataloguing training plans.
Classify the plan below. Do not rewrite its title or description.

Title: {title}
Description: {description}
Table (one row per line, cells separated by ' | ', last value is the row sum):
{table}

Answer with a single JSON object that conforms to this JSON schema, and nothing else:
{schema}
"""


def merge_metadata(
    base: Mapping[str, MetadataValue],
    fields: Mapping[str, object],
    protected: Collection[str] = (),
) -> Dict[str, MetadataValue]:
    """Return a new mapping with `fields` laid over `base`.

    Keys in `protected` keep their value from `base`. Every merged value must be a
    scalar; otherwise SchemaMismatch is raised and nothing is merged.
    """
    try:
        incoming = _metadata_map.validate_python(dict(fields))
    except ValidationError as e:
        raise SchemaMismatch(f"non-scalar metadata values: {e.error_count()} errors") from e
    merged = dict(base)
    for key, value in incoming.items():
        if key in protected and key in base:
            continue
        merged[key] = value
    return merged


class MetadataSynthesizer:
    def __init__(self, client: ModelClient):
        self.client = client
        self.schema = json.dumps(Metadata.model_json_schema(), indent=2)

    def _prompt(self, template: str, plan: Plan) -> str:
        return template.format(
            title=plan.title or "(none)",
            description=plan.description or "(none)",
            table=plan.table_text(),
            schema=self.schema,
        )

    def generate_metadata(self, plan: Plan) -> Metadata:
        """Ask the model for the metadata fields only.

        Raises:
            SchemaMismatch: The reply is not JSON or does not fit the schema.
            UpstreamError: The model call failed.
        """
        answer = self.client.generate(self._prompt(METADATA_TEMPLATE, plan), json_response=True)
        try:
            return Metadata.model_validate_json(strip_code_fence(answer))
        except ValidationError as e:
            raise SchemaMismatch(f"metadata reply rejected: {e.error_count()} errors") from e

    def describe_table(self, plan: Plan) -> PlanDescription:
        """Ask the model for a title, a description and the metadata fields.

        Raises:
            SchemaMismatch: The reply is not JSON or does not fit the schema.
            UpstreamError: The model call failed.
        """
        answer = self.client.generate(self._prompt(DESCRIBE_TEMPLATE, plan), json_response=True)
        try:
            return PlanDescription.model_validate_json(strip_code_fence(answer))
        except ValidationError as e:
            raise SchemaMismatch(f"description reply rejected: {e.error_count()} errors") from e

    def enrich(self, plan: Plan, base: Mapping[str, MetadataValue]) -> Dict[str, MetadataValue]:
        """Best-effort enrichment of a crawled plan's metadata mapping.

        A plan without a description gets the describe form; its title is kept when
        non-empty. Otherwise only metadata fields are requested and title and
        description are left untouched.
        """
        protected = {"title"} if plan.title else set()
        try:
            if not plan.description:
                desc = self.describe_table(plan)
                fields: Dict[str, object] = desc.metadata_fields()
                fields["description"] = desc.description
                if not plan.title:
                    fields["title"] = desc.title
            else:
                protected = {"title", "description"}
                fields = self.generate_metadata(plan).model_dump()
            return merge_metadata(base, fields, protected)
        except SchemaMismatch as e:
            logger.warning("Skipping metadata for %r: %s", plan.title, e.message)
        except UpstreamError as e:
            logger.warning("Skipping metadata for %r, model call failed: %s", plan.title, e.message)
        return dict(base)
