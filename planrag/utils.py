"""Utility helpers for URL normalization, table cell parsing and model output cleanup.

This module provides:
- normalize_url: normalization to make URLs consistent for deduplication
- same_host: origin check used to keep a crawl on its seed's site
- parse_cell: numeric coercion for scraped table cells
- strip_code_fence: remove a Markdown code fence around a JSON reply
"""
import re
from typing import Union
from urllib.parse import urlparse


def normalize_url(u: str) -> str:
    """Normalize URLs by removing fragments and trailing slashes.

    Args:
        u: Raw URL.

    Returns:
        str: Normalized URL suitable for deduplication and the URL ledger.
    """
    u = re.sub(r"#.*$", "", u.strip())
    if len(u) > 1 and u.endswith("/"):
        u = u[:-1]
    return u


def same_host(a: str, b: str) -> bool:
    return urlparse(a).netloc.lower() == urlparse(b).netloc.lower()


_INT = re.compile(r"^[+-]?\d+$")
_FLOAT = re.compile(r"^[+-]?(\d+[.,]\d*|[.,]\d+)$")


def parse_cell(raw: str) -> Union[int, float, str]:
    """Turn a scraped cell into an int or float when it is purely numeric.

    Decimal commas are accepted ("1,5" -> 1.5). Anything else is returned as the
    whitespace-collapsed text.
    """
    s = re.sub(r"\s+", " ", raw).strip()
    if _INT.match(s):
        return int(s)
    if _FLOAT.match(s):
        return float(s.replace(",", "."))
    return s


_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.S)


def strip_code_fence(text: str) -> str:
    """Return the body of a ```-fenced block, or the stripped text unchanged."""
    t = text.strip()
    m = _FENCE.match(t)
    return m.group(1).strip() if m else t
