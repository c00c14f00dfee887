"""
Context window assembly for search hits.
All windows of a request are merged and read with a single query.
"""
from typing import Dict, Iterable, List, Tuple

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.models import DecisionLine


def window_bounds(line_no: int, before: int, after: int) -> Tuple[int, int]:
    """Inclusive line range of a window, never starting below line 1."""
    return max(1, line_no - before), line_no + after


def merge_ranges(ranges: Iterable[Tuple[int, int]]) -> List[Tuple[int, int]]:
    """Merge overlapping or adjacent inclusive ranges."""
    merged: List[Tuple[int, int]] = []
    for start, end in sorted(ranges):
        if merged and start <= merged[-1][1] + 1:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def fetch_context(
    db: Session,
    decision_id: int,
    windows: Iterable[Tuple[int, int, int]]
) -> Dict[int, str]:
    """
    Read every line covered by the given windows in one round trip.

    Args:
        db: Database session
        decision_id: Decision the lines belong to
        windows: (line_no, before, after) per hit

    Returns:
        Dict[int, str]: line_no -> content; lines outside the document are absent
    """
    ranges = merge_ranges(window_bounds(*window) for window in windows)
    if not ranges:
        return {}

    rows = db.execute(
        select(DecisionLine.line_no, DecisionLine.content).where(
            DecisionLine.decision_id == decision_id,
            or_(*[DecisionLine.line_no.between(start, end) for start, end in ranges]),
        )
    )
    return {line_no: content for line_no, content in rows}


def build_context(line_map: Dict[int, str], line_no: int, before: int, after: int) -> List[Dict]:
    """Lines of one window in ascending order, skipping lines that do not exist."""
    start, end = window_bounds(line_no, before, after)
    return [
        {"line": ln, "text": line_map[ln]}
        for ln in range(start, end + 1)
        if ln in line_map
    ]
