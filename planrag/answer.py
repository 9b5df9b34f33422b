"""Answer assembly: authoritative sums for result tables.

Row sums and the total coming from a model (or from a stored table) are never
trusted. `recompute_sums` replaces every row's sum with the sum of its own numeric
cells and returns the total over those row sums.
"""
from typing import List

from planrag.schemas import Answer, Row


def recompute_sums(table: List[Row]) -> float:
    """Overwrite each row's sum in place and return the aggregate."""
    total = 0.0
    for row in table:
        row.sum = float(sum(row.numeric_cells()))
        total += row.sum
    return total


def assemble_answer(title: str, description: str, table: List[Row]) -> Answer:
    """Build an Answer from a raw table, discarding any sums it carried."""
    rows = [Row(cells=list(r.cells)) for r in table]
    total = recompute_sums(rows)
    return Answer(title=title, description=description, table=rows, total=total)
