"""
Saved phrases and their stored occurrences in decisions.
"""
import logging
from typing import Dict, Optional

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import IndexingFailure, InvalidQuery, NotFound, translate_storage_errors
from app.indexing import begin_write, chunked, lock_decision
from app.models import Phrase, PhraseOccurrence
from app.services import require_decision, scan_phrase

logger = logging.getLogger(__name__)


def serialize_phrase(phrase: Phrase) -> Dict:
    return {
        "id": phrase.id,
        "name": phrase.name,
        "expression_text": phrase.expression_text,
        "language_code": phrase.language_code,
    }


def require_phrase(db: Session, phrase_id: int) -> Phrase:
    phrase = db.get(Phrase, phrase_id)
    if phrase is None:
        raise NotFound(f"Phrase {phrase_id} not found")
    return phrase


@translate_storage_errors
def create_phrase(
    db: Session,
    expression_text: str,
    name: Optional[str] = None,
    language_code: str = "he"
) -> Dict:
    """
    Save a phrase for later indexing.

    Raises:
        InvalidQuery: If the expression is empty after trimming
    """
    expression = (expression_text or "").strip()
    if not expression:
        raise InvalidQuery("Phrase expression is empty")
    phrase = Phrase(name=name, expression_text=expression, language_code=language_code)
    db.add(phrase)
    db.commit()
    db.refresh(phrase)
    return serialize_phrase(phrase)


@translate_storage_errors
def get_phrase(db: Session, phrase_id: int) -> Dict:
    return serialize_phrase(require_phrase(db, phrase_id))


def _occurrences_response(decision_id: int, phrase_id: int, occurrences) -> Dict:
    return {
        "decision_id": decision_id,
        "phrase_id": phrase_id,
        "count": len(occurrences),
        "occurrences": occurrences,
    }


def index_phrase(db: Session, decision_id: int, phrase_id: int) -> Dict:
    """
    Scan a decision for a saved phrase and store every match.

    Replaces the previously stored occurrences of this phrase in this decision.
    Like phrase search, only the first match on each line is recorded. The
    decision row stays locked while scanning, so stored matches always belong
    to the current index generation.

    Raises:
        NotFound: If the decision or phrase does not exist
        IndexingFailure: If storing the matches fails
    """
    try:
        begin_write(db)
        lock_decision(db, decision_id)
        phrase = require_phrase(db, phrase_id)

        hits = list(scan_phrase(db, decision_id, phrase.expression_text))

        db.execute(
            delete(PhraseOccurrence).where(
                PhraseOccurrence.decision_id == decision_id,
                PhraseOccurrence.phrase_id == phrase_id,
            )
        )
        rows = [dict(hit, decision_id=decision_id, phrase_id=phrase_id) for hit in hits]
        for chunk in chunked(rows, settings.occurrence_batch_size):
            db.execute(insert(PhraseOccurrence), chunk)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Phrase %s index of decision %s rolled back", phrase_id, decision_id)
        raise IndexingFailure(
            f"Failed to index phrase {phrase_id} in decision {decision_id}"
        ) from e

    logger.info("Indexed phrase %s in decision %s: %d matches", phrase_id, decision_id, len(hits))
    return _occurrences_response(decision_id, phrase_id, hits)


@translate_storage_errors
def list_phrase_occurrences(db: Session, decision_id: int, phrase_id: int) -> Dict:
    """Stored occurrences of a saved phrase in a decision, top to bottom."""
    require_decision(db, decision_id)
    require_phrase(db, phrase_id)
    rows = db.execute(
        select(PhraseOccurrence.line_no, PhraseOccurrence.char_start, PhraseOccurrence.char_end)
        .where(
            PhraseOccurrence.decision_id == decision_id,
            PhraseOccurrence.phrase_id == phrase_id,
        )
        .order_by(PhraseOccurrence.line_no, PhraseOccurrence.char_start)
    )
    occurrences = [
        {"line_no": line_no, "char_start": start, "char_end": end}
        for line_no, start, end in rows
    ]
    return _occurrences_response(decision_id, phrase_id, occurrences)
