"""Tests for plan export to PDF."""
from unittest.mock import MagicMock

import pytest

from planrag.errors import UpstreamError
from planrag.pdf import LocalUploader, PDFExporter, plan_to_markdown


def test_markdown_has_recomputed_sums_and_total(beginner_plan):
    md = plan_to_markdown(beginner_plan)
    assert md.startswith("# Beginner freestyle\n")
    assert "| 4 | 50 | freestyle easy | 54 |" in md
    assert "**189**" in md


def test_markdown_escapes_pipes():
    from tests.conftest import make_plan

    md = plan_to_markdown(make_plan("t", "", [[1, "a|b"]]))
    assert "a\\|b" in md


def test_local_uploader_writes_file(tmp_path):
    uploader = LocalUploader(str(tmp_path / "out"), "http://files.test/")
    uri = uploader.upload(b"%PDF-1.4", "plan-x.pdf")
    assert uri == "http://files.test/plan-x.pdf"
    assert (tmp_path / "out" / "plan-x.pdf").read_bytes() == b"%PDF-1.4"


def test_exporter_renders_then_uploads(beginner_plan):
    renderer, uploader = MagicMock(), MagicMock()
    renderer.render.return_value = b"pdf"
    uploader.upload.return_value = "http://files.test/plan.pdf"
    assert PDFExporter(renderer, uploader).export(beginner_plan) == "http://files.test/plan.pdf"
    data, filename = uploader.upload.call_args.args
    assert data == b"pdf"
    assert filename.startswith("plan-") and filename.endswith(".pdf")


def test_exporter_wraps_upload_failure(beginner_plan):
    renderer, uploader = MagicMock(), MagicMock()
    renderer.render.return_value = b"pdf"
    uploader.upload.side_effect = PermissionError("read-only")
    with pytest.raises(UpstreamError) as exc_info:
        PDFExporter(renderer, uploader).export(beginner_plan)
    assert exc_info.value.service == "uploader"


def test_exporter_wraps_render_failure(beginner_plan):
    renderer = MagicMock()
    renderer.render.side_effect = RuntimeError("font missing")
    uploader = MagicMock()
    with pytest.raises(UpstreamError, match="font missing"):
        PDFExporter(renderer, uploader).export(beginner_plan)
    uploader.upload.assert_not_called()
