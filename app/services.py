"""
Query engine over the concordance: text retrieval, word index listing,
statistics, word search and phrase search.
Word counts for the index listing are served from Redis when it is reachable,
with the database aggregate as fallback.
"""
import logging
from typing import Dict, Iterator, List, Optional

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from app.context import build_context, fetch_context
from app.exceptions import InvalidQuery, NotFound, translate_storage_errors
from app.models import Decision, DecisionLine, Occurrence, Word
from app.redis_client import get_redis_client
from app.tokenizer import normalize_word

logger = logging.getLogger(__name__)

# Lines streamed per fetch while scanning for a phrase
PHRASE_SCAN_BATCH = 500


def require_decision(db: Session, decision_id: int) -> Decision:
    """Load a decision or raise NotFound."""
    decision = db.get(Decision, decision_id)
    if decision is None:
        raise NotFound(f"Decision {decision_id} not found")
    return decision


def attach_context(
    db: Session,
    decision_id: int,
    hits: List[Dict],
    before: int,
    after: int
) -> List[Dict]:
    """Add a context window to each hit, reading all windows in one query."""
    line_map = fetch_context(db, decision_id, [(h["line_no"], before, after) for h in hits])
    for hit in hits:
        hit["context"] = build_context(line_map, hit["line_no"], before, after)
    return hits


@translate_storage_errors
def get_text(
    db: Session,
    decision_id: int,
    from_line: Optional[int] = None,
    to_line: Optional[int] = None
) -> str:
    """
    Get a decision's text, optionally restricted to an inclusive line range.

    Args:
        db: Database session
        decision_id: Decision to read
        from_line: First line (1-based), defaults to the first line
        to_line: Last line, defaults to the last line

    Returns:
        str: The lines joined with "\\n"
    """
    require_decision(db, decision_id)
    query = select(DecisionLine.content).where(DecisionLine.decision_id == decision_id)
    if from_line is not None:
        query = query.where(DecisionLine.line_no >= from_line)
    if to_line is not None:
        query = query.where(DecisionLine.line_no <= to_line)
    rows = db.execute(query.order_by(DecisionLine.line_no))
    return "\n".join(content for (content,) in rows)


def _word_counts_query(decision_id: int):
    count = func.count(Occurrence.id).label("count")
    return (
        select(Word.word_text, count)
        .join(Occurrence, Occurrence.word_id == Word.id)
        .where(Occurrence.decision_id == decision_id)
        .group_by(Word.id, Word.word_text)
    ), count


def _word_sort_key(db: Session):
    """Word ordering that matches Python's code point sort on every backend."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return Word.word_text.collate("C")
    if dialect in ("mysql", "mariadb"):
        return Word.word_text.collate("utf8mb4_bin")
    return Word.word_text


def _sort_word_counts(counts: Dict[str, int], order: str, limit: int) -> List[Dict]:
    if order == "freq":
        ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    else:
        ordered = sorted(counts.items())
    return [{"word": word, "count": count} for word, count in ordered[:limit]]


@translate_storage_errors
def list_words(db: Session, decision_id: int, order: str = "alpha", limit: int = 1000) -> List[Dict]:
    """
    Word index of a decision with occurrence counts.
    Own optimization: reads the Redis hash of counts when available; on a
    miss the full aggregate is computed once and cached under the decision's
    current generation, read in the same snapshot as the aggregate.

    Args:
        db: Database session
        decision_id: Decision to list
        order: 'alpha' (word ascending) or 'freq' (count descending, then word)
        limit: Maximum number of entries

    Returns:
        List[Dict]: Entries with word and count
    """
    generation = require_decision(db, decision_id).generation
    redis_client = get_redis_client()

    # Fast path: cached counts
    if redis_client.is_available():
        counts = redis_client.get_word_counts(decision_id, generation)
        if counts is None:
            query, _ = _word_counts_query(decision_id)
            counts = {word: count for word, count in db.execute(query)}
            if counts:
                redis_client.cache_word_counts(decision_id, generation, counts)
        return _sort_word_counts(counts, order, limit)

    # Fallback: ordered, limited aggregate in the database
    query, count = _word_counts_query(decision_id)
    word_key = _word_sort_key(db)
    if order == "freq":
        query = query.order_by(count.desc(), word_key.asc())
    else:
        query = query.order_by(word_key.asc())
    rows = db.execute(query.limit(limit))
    return [{"word": word, "count": cnt} for word, cnt in rows]


@translate_storage_errors
def get_stats(db: Session, decision_id: int) -> Dict[str, int]:
    """Line, token and unique word counts of a decision, derived from the index."""
    require_decision(db, decision_id)
    lines = db.scalar(
        select(func.count()).select_from(DecisionLine).where(DecisionLine.decision_id == decision_id)
    )
    tokens, unique_words = db.execute(
        select(func.count(Occurrence.id), func.count(distinct(Occurrence.word_id)))
        .where(Occurrence.decision_id == decision_id)
    ).one()
    return {"lines": lines, "tokens": tokens, "unique_words": unique_words}


@translate_storage_errors
def search_word(
    db: Session,
    decision_id: int,
    raw_query: str,
    before: int = 2,
    after: int = 2,
    max_results: int = 100
) -> Dict:
    """
    Find the occurrences of a word in a decision.

    Args:
        db: Database session
        decision_id: Decision to search
        raw_query: Word as typed; normalized like indexed tokens
        before: Context lines above each hit
        after: Context lines below each hit
        max_results: Maximum number of occurrences

    Returns:
        Dict: The normalized word and its occurrences ordered by line, then column

    Raises:
        InvalidQuery: If the query normalizes to an empty word
        NotFound: If the decision does not exist
    """
    word = normalize_word(raw_query)
    if not word:
        raise InvalidQuery("Search word is empty")
    require_decision(db, decision_id)

    word_id = db.scalar(select(Word.id).where(Word.word_text == word))
    if word_id is None:
        return {"word": word, "occurrences": []}

    rows = db.execute(
        select(Occurrence.line_no, Occurrence.char_start, Occurrence.char_end)
        .where(Occurrence.decision_id == decision_id, Occurrence.word_id == word_id)
        .order_by(Occurrence.line_no, Occurrence.char_start)
        .limit(max_results)
    )
    hits = [
        {"line_no": line_no, "char_start": start, "char_end": end}
        for line_no, start, end in rows
    ]
    return {"word": word, "occurrences": attach_context(db, decision_id, hits, before, after)}


def scan_phrase(
    db: Session,
    decision_id: int,
    phrase: str,
    limit: Optional[int] = None
) -> Iterator[Dict]:
    """
    Yield the first literal match of phrase on each line, top to bottom.

    Only the first match per line is reported. Lines are streamed so the scan
    stops reading as soon as limit matches have been produced.
    """
    if limit is not None and limit <= 0:
        return
    result = db.execute(
        select(DecisionLine.line_no, DecisionLine.content)
        .where(DecisionLine.decision_id == decision_id)
        .order_by(DecisionLine.line_no)
        .execution_options(yield_per=PHRASE_SCAN_BATCH)
    )
    found = 0
    try:
        for line_no, content in result:
            idx = content.find(phrase)
            if idx == -1:
                continue
            yield {"line_no": line_no, "char_start": idx, "char_end": idx + len(phrase)}
            found += 1
            if limit is not None and found >= limit:
                break
    finally:
        result.close()


@translate_storage_errors
def search_phrase(
    db: Session,
    decision_id: int,
    phrase_text: str,
    before: int = 2,
    after: int = 2,
    max_results: int = 100
) -> Dict:
    """
    Find a literal phrase in a decision (case and whitespace sensitive).

    Raises:
        InvalidQuery: If the phrase is empty after trimming
        NotFound: If the decision does not exist
    """
    phrase = (phrase_text or "").strip()
    if not phrase:
        raise InvalidQuery("Search phrase is empty")
    require_decision(db, decision_id)

    hits = list(scan_phrase(db, decision_id, phrase, limit=max_results))
    return {"phrase": phrase, "occurrences": attach_context(db, decision_id, hits, before, after)}
