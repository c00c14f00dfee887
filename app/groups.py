"""
Word groups: named sets of words indexed together across a decision.
Membership keeps the order in which words were added.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.context import build_context, fetch_context
from app.exceptions import IndexingFailure, InvalidQuery, NotFound, translate_storage_errors
from app.indexing import begin_write, ensure_words
from app.models import Occurrence, Word, WordGroup, WordGroupMember
from app.services import require_decision
from app.tokenizer import normalize_word

logger = logging.getLogger(__name__)

# Each group index sample shows one line above and one below
SAMPLE_CONTEXT_LINES = 1


def serialize_group(db: Session, group: WordGroup) -> Dict:
    """Group fields plus member words in membership order."""
    words = db.scalars(
        select(Word.word_text)
        .join(WordGroupMember, WordGroupMember.word_id == Word.id)
        .where(WordGroupMember.group_id == group.id)
        .order_by(WordGroupMember.position)
    ).all()
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "words": list(words),
    }


def require_group(db: Session, group_id: int) -> WordGroup:
    group = db.get(WordGroup, group_id)
    if group is None:
        raise NotFound(f"Word group {group_id} not found")
    return group


@translate_storage_errors
def create_group(db: Session, name: str, description: Optional[str] = None) -> Dict:
    """Create an empty word group."""
    group = WordGroup(name=name, description=description)
    db.add(group)
    db.commit()
    db.refresh(group)
    return serialize_group(db, group)


@translate_storage_errors
def get_group(db: Session, group_id: int) -> Dict:
    return serialize_group(db, require_group(db, group_id))


@translate_storage_errors
def add_group_words(db: Session, group_id: int, words: List[str]) -> Dict[str, int]:
    """
    Add words to a group, creating missing words.

    Words are normalized like indexed tokens; empty and duplicate words are
    dropped and existing members are skipped. New members are appended after
    the current ones in the given order.

    Returns:
        Dict: Number of members added

    Raises:
        InvalidQuery: If no word survives normalization
        NotFound: If the group does not exist
        StorageUnavailable: If the database cannot be reached
    """
    normalized = [w for w in dict.fromkeys(normalize_word(str(w)) for w in words) if w]
    if not normalized:
        raise InvalidQuery("No valid words to add")

    try:
        begin_write(db)
        group = (
            db.query(WordGroup)
            .filter(WordGroup.id == group_id)
            .with_for_update()
            .one_or_none()
        )
        if group is None:
            raise NotFound(f"Word group {group_id} not found")

        word_ids = ensure_words(db, normalized)
        existing = set(db.scalars(
            select(WordGroupMember.word_id).where(WordGroupMember.group_id == group_id)
        ))
        next_position = db.scalar(
            select(func.coalesce(func.max(WordGroupMember.position) + 1, 0))
            .where(WordGroupMember.group_id == group_id)
        )

        added = 0
        for word in normalized:
            word_id = word_ids[word]
            if word_id in existing:
                continue
            db.add(WordGroupMember(group_id=group_id, word_id=word_id, position=next_position))
            existing.add(word_id)
            next_position += 1
            added += 1
        db.commit()
    except (OperationalError, InterfaceError):
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Adding words to group %s rolled back", group_id)
        raise IndexingFailure(f"Failed to add words to group {group_id}") from e

    return {"added": added}


@translate_storage_errors
def group_index(db: Session, group_id: int, decision_id: int, limit_per_word: int = 5) -> Dict:
    """
    Sample occurrences of every group word in a decision.

    Each member contributes at most limit_per_word occurrences, ordered by
    line then column, each with a one-line context window. Samples for all
    words come from one query and their context from one more.

    Returns:
        Dict: group_id, decision_id and per-word samples in membership order

    Raises:
        NotFound: If the group or the decision does not exist
    """
    require_group(db, group_id)
    require_decision(db, decision_id)

    members = db.execute(
        select(Word.id, Word.word_text)
        .join(WordGroupMember, WordGroupMember.word_id == Word.id)
        .where(WordGroupMember.group_id == group_id)
        .order_by(WordGroupMember.position)
    ).all()
    if not members:
        return {"group_id": group_id, "decision_id": decision_id, "words": []}

    sample_rank = func.row_number().over(
        partition_by=Occurrence.word_id,
        order_by=(Occurrence.line_no, Occurrence.char_start),
    ).label("sample_rank")
    ranked = (
        select(
            Occurrence.word_id,
            Occurrence.line_no,
            Occurrence.char_start,
            Occurrence.char_end,
            sample_rank,
        )
        .where(
            Occurrence.decision_id == decision_id,
            Occurrence.word_id.in_([word_id for word_id, _ in members]),
        )
        .subquery()
    )
    rows = db.execute(
        select(ranked.c.word_id, ranked.c.line_no, ranked.c.char_start, ranked.c.char_end)
        .where(ranked.c.sample_rank <= limit_per_word)
        .order_by(ranked.c.word_id, ranked.c.line_no, ranked.c.char_start)
    )

    samples_by_word: Dict[int, List[Dict]] = {}
    for word_id, line_no, start, end in rows:
        samples_by_word.setdefault(word_id, []).append(
            {"line_no": line_no, "char_start": start, "char_end": end}
        )

    line_map = fetch_context(
        db,
        decision_id,
        [
            (sample["line_no"], SAMPLE_CONTEXT_LINES, SAMPLE_CONTEXT_LINES)
            for samples in samples_by_word.values()
            for sample in samples
        ],
    )

    items = []
    for word_id, word_text in members:
        samples = samples_by_word.get(word_id, [])
        for sample in samples:
            sample["context"] = build_context(
                line_map, sample["line_no"], SAMPLE_CONTEXT_LINES, SAMPLE_CONTEXT_LINES
            )
        items.append({"word": word_text, "samples": samples})

    return {"group_id": group_id, "decision_id": decision_id, "words": items}
