"""
Occurrence store: writes a decision's lines and word occurrences.

A re-index is a generation replace. The old lines and occurrences are deleted
and the new ones inserted inside one transaction, so readers observe either
the previous index or the new one, never a mix.
"""
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List

import requests
from sqlalchemy import delete, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import IndexingFailure, NotFound, SourceFetchError, translate_storage_errors
from app.models import Decision, DecisionLine, Occurrence, PhraseOccurrence, Word
from app.redis_client import get_redis_client
from app.tokenizer import tokenize

logger = logging.getLogger(__name__)


def chunked(items: List, size: int) -> Iterable[List]:
    """Yield successive slices of at most size items."""
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _insert_ignore(db: Session, model, key: str):
    """Build an INSERT for model that skips rows whose key column already exists."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model).on_conflict_do_nothing(index_elements=[key])
    if dialect == "sqlite":
        return sqlite_insert(model).on_conflict_do_nothing(index_elements=[key])
    if dialect in ("mysql", "mariadb"):
        return insert(model).prefix_with("IGNORE")
    raise NotImplementedError(f"No insert-if-absent support for dialect {dialect!r}")


def ensure_words(db: Session, words: Iterable[str]) -> Dict[str, int]:
    """
    Insert missing words and resolve every word to its id.
    Runs inside the caller's transaction; does not commit.

    Args:
        db: Database session
        words: Normalized words, duplicates allowed

    Returns:
        Dict[str, int]: Mapping of word text to word id
    """
    unique = list(dict.fromkeys(words))
    if not unique:
        return {}

    stmt = _insert_ignore(db, Word, "word_text")
    for chunk in chunked(unique, settings.word_batch_size):
        db.execute(stmt, [{"word_text": w} for w in chunk])

    word_ids = {}
    for chunk in chunked(unique, settings.lookup_batch_size):
        rows = db.execute(
            select(Word.id, Word.word_text).where(Word.word_text.in_(chunk))
        )
        for word_id, word_text in rows:
            word_ids[word_text] = word_id
    return word_ids


def begin_write(db: Session) -> None:
    """
    Start a write transaction at the write isolation level.

    Under snapshot isolation a writer that waited on a row lock fails with a
    serialization error; at READ COMMITTED it proceeds once the lock is free.
    Only PostgreSQL is switched, and only when no transaction is open yet.
    """
    if db.get_bind().dialect.name == "postgresql" and not db.in_transaction():
        db.connection(execution_options={"isolation_level": settings.write_isolation_level})


def _decision_for_update(decision_id: int):
    return (
        select(Decision)
        .where(Decision.id == decision_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def lock_decision(db: Session, decision_id: int) -> Decision:
    """
    Lock an existing decision row until the current transaction ends.
    Writers of one decision hold this lock, so they run one after another.

    Raises:
        NotFound: If the decision does not exist
    """
    decision = db.scalars(_decision_for_update(decision_id)).one_or_none()
    if decision is None:
        raise NotFound(f"Decision {decision_id} not found")
    return decision


def _lock_or_create_decision(db: Session, decision_id: int) -> Decision:
    """Lock the decision row for this transaction, creating it on first ingest."""
    # A concurrent first ingest blocks on the uncommitted row instead of failing
    db.execute(_insert_ignore(db, Decision, "id").values(id=decision_id))
    return db.scalars(_decision_for_update(decision_id)).one()


def reindex_decision(db: Session, decision_id: int, text: str) -> Dict:
    """
    Replace the indexed content of a decision with the given text.

    Args:
        db: Database session
        decision_id: Decision to (re)index; created when absent
        text: Raw decision text

    Returns:
        Dict: decision_id plus counts of lines, unique words and tokens

    Raises:
        IndexingFailure: If any storage step fails; nothing is committed
    """
    lines, tokens = tokenize(text)
    word_counts = Counter(token.word for token in tokens)

    try:
        begin_write(db)
        decision = _lock_or_create_decision(db, decision_id)

        db.execute(delete(Occurrence).where(Occurrence.decision_id == decision_id))
        db.execute(delete(PhraseOccurrence).where(PhraseOccurrence.decision_id == decision_id))
        db.execute(delete(DecisionLine).where(DecisionLine.decision_id == decision_id))

        line_rows = [
            {"decision_id": decision_id, "line_no": line_no, "content": content}
            for line_no, content in enumerate(lines, start=1)
        ]
        for chunk in chunked(line_rows, settings.line_batch_size):
            db.execute(insert(DecisionLine), chunk)

        word_ids = ensure_words(db, word_counts)

        occurrence_rows = [
            {
                "decision_id": decision_id,
                "word_id": word_ids[token.word],
                "line_no": token.line_no,
                "char_start": token.char_start,
                "char_end": token.char_end,
                "idx_in_line": token.idx_in_line,
            }
            for token in tokens
        ]
        for chunk in chunked(occurrence_rows, settings.occurrence_batch_size):
            db.execute(insert(Occurrence), chunk)

        decision.indexed_at = datetime.now(timezone.utc)
        decision.generation = (decision.generation or 0) + 1
        generation = decision.generation
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Re-index of decision %s rolled back", decision_id)
        raise IndexingFailure(f"Failed to index decision {decision_id}") from e

    get_redis_client().cache_word_counts(decision_id, generation, dict(word_counts))

    logger.info(
        "Indexed decision %s: %d lines, %d unique words, %d tokens",
        decision_id, len(lines), len(word_counts), len(tokens)
    )
    return {
        "decision_id": decision_id,
        "lines": len(lines),
        "unique_words": len(word_counts),
        "tokens": len(tokens),
    }


def fetch_text_from_url(url: str) -> str:
    """
    Download a plain-text decision.

    Args:
        url: Location of the text file

    Returns:
        str: The downloaded text

    Raises:
        SourceFetchError: If the request fails or returns an error status
    """
    try:
        response = requests.get(url, timeout=settings.fetch_timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise SourceFetchError(f"Failed to fetch decision text from {url}: {e}") from e
    # Servers often omit the charset for text/plain; decisions are UTF-8
    if response.encoding is None or response.encoding.lower() == "iso-8859-1":
        response.encoding = "utf-8"
    return response.text


def ingest_from_url(db: Session, decision_id: int, url: str) -> Dict:
    """Download a decision text and re-index the decision with it."""
    text = fetch_text_from_url(url)
    return reindex_decision(db, decision_id, text)


@translate_storage_errors
def delete_decision(db: Session, decision_id: int) -> None:
    """
    Delete a decision; its lines and occurrences go with it, its words stay.

    Raises:
        NotFound: If the decision does not exist
    """
    decision = db.get(Decision, decision_id)
    if decision is None:
        raise NotFound(f"Decision {decision_id} not found")
    db.execute(delete(Decision).where(Decision.id == decision_id))
    db.commit()
    get_redis_client().invalidate_decision(decision_id)
    logger.info("Deleted decision %s", decision_id)
