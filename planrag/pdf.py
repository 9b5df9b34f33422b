"""Plan export to PDF.

- plan_to_markdown: title, description and the table with recomputed sums
- MarkdownPdfRenderer: Markdown -> PDF bytes with markdown-pdf
- LocalUploader: writes the file under PDF_EXPORT_DIR and returns its public URI
- PDFExporter: render + upload behind one call, as used by /plan-to-pdf
"""
import logging
import os
import tempfile
import uuid
from typing import List, Optional, Protocol

from markdown_pdf import MarkdownPdf, Section

from planrag.answer import assemble_answer
from planrag.config import settings
from planrag.errors import UpstreamError
from planrag.schemas import Plan

logger = logging.getLogger(__name__)


class PlanRenderer(Protocol):
    def render(self, plan: Plan) -> bytes: ...


class Uploader(Protocol):
    def upload(self, data: bytes, filename: str) -> str: ...


def generate_filename() -> str:
    return f"plan-{uuid.uuid4()}.pdf"


def _md_cell(value: object) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def plan_to_markdown(plan: Plan) -> str:
    answer = assemble_answer(plan.title, plan.description, plan.table)
    width = max((len(r.cells) for r in answer.table), default=0)
    lines: List[str] = [f"# {plan.title or 'Training plan'}", ""]
    if plan.description:
        lines += [plan.description, ""]
    if width:
        header = [f"#{i}" for i in range(1, width + 1)] + ["Sum"]
        lines.append("| " + " | ".join(header) + " |")
        lines.append("|" + "---|" * len(header))
        for row in answer.table:
            cells = [_md_cell(c) for c in row.cells] + [""] * (width - len(row.cells))
            lines.append("| " + " | ".join(cells + [f"{row.sum:g}"]) + " |")
        lines.append("| " + " | ".join(["**Total**"] + [""] * (width - 1) + [f"**{answer.total:g}**"]) + " |")
    return "\n".join(lines) + "\n"


class MarkdownPdfRenderer:
    def render(self, plan: Plan) -> bytes:
        pdf = MarkdownPdf(toc_level=0)
        pdf.add_section(Section(plan_to_markdown(plan), toc=False))
        pdf.meta["title"] = plan.title
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "plan.pdf")
            pdf.save(path)
            with open(path, "rb") as f:
                return f.read()


class LocalUploader:
    """Stores exported files on local disk, served by the API under /files."""

    def __init__(self, directory: Optional[str] = None, base_url: Optional[str] = None):
        self.directory = directory or settings.PDF_EXPORT_DIR
        self.base_url = (base_url or settings.PDF_BASE_URL).rstrip("/")

    def upload(self, data: bytes, filename: str) -> str:
        os.makedirs(self.directory, exist_ok=True)
        with open(os.path.join(self.directory, filename), "wb") as f:
            f.write(data)
        return f"{self.base_url}/{filename}"


class PDFExporter:
    def __init__(self, renderer: PlanRenderer, uploader: Uploader):
        self.renderer = renderer
        self.uploader = uploader

    def export(self, plan: Plan) -> str:
        """Render the plan and upload it.

        Returns:
            str: URI of the uploaded PDF.

        Raises:
            UpstreamError: Rendering or upload failed.
        """
        try:
            data = self.renderer.render(plan)
        except (RuntimeError, ValueError, OSError) as e:
            raise UpstreamError("pdf renderer", "rendering failed", e) from e
        filename = generate_filename()
        try:
            uri = self.uploader.upload(data, filename)
        except OSError as e:
            raise UpstreamError("uploader", f"could not upload {filename}", e) from e
        logger.info("Exported plan %r to %s (%d bytes)", plan.title, uri, len(data))
        return uri
