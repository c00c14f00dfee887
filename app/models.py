"""
Database models for decisions, their lines and the word/phrase concordance.
Ownership is enforced with ON DELETE CASCADE foreign keys: a decision owns its
lines and occurrences, while words are shared and outlive any decision.
"""
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from app.database import Base


class Decision(Base):
    """
    A court decision whose text is indexed.

    Attributes:
        id: Primary key, supplied by the caller on first ingest
        title: Optional display title
        language_code: Language of the text (informational only)
        created_at: Timestamp when the decision was first stored
        indexed_at: Timestamp of the latest re-index
        generation: Number of re-indexes so far; keys cached word counts
    """
    __tablename__ = "decisions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=False)
    title = Column(String(500), nullable=True)
    language_code = Column(String(10), nullable=False, default="he")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    indexed_at = Column(DateTime(timezone=True), nullable=True)
    generation = Column(Integer, nullable=False, default=0, server_default="0")


class DecisionLine(Base):
    """One line of a decision's text, stored verbatim."""
    __tablename__ = "decision_lines"

    decision_id = Column(
        Integer, ForeignKey("decisions.id", ondelete="CASCADE"), primary_key=True
    )
    line_no = Column(Integer, primary_key=True)
    content = Column(Text, nullable=False)


class Word(Base):
    """A normalized token, deduplicated across all decisions."""
    __tablename__ = "words"

    id = Column(Integer, primary_key=True, index=True)
    # MySQL unique keys need a bounded length; on PostgreSQL only the btree entry size (about 2.7 kB) limits a word
    word_text = Column(String(255).with_variant(Text(), "postgresql"), nullable=False)

    __table_args__ = (
        UniqueConstraint("word_text", name="uq_word_text"),
    )


class Occurrence(Base):
    """
    One appearance of a word in a decision.

    char_start/char_end are code point offsets into the line content,
    idx_in_line is the 0-based position of the token within its line.
    """
    __tablename__ = "occurrences"

    id = Column(Integer, primary_key=True)
    decision_id = Column(
        Integer, ForeignKey("decisions.id", ondelete="CASCADE"), nullable=False
    )
    word_id = Column(Integer, ForeignKey("words.id", ondelete="CASCADE"), nullable=False)
    line_no = Column(Integer, nullable=False)
    char_start = Column(Integer, nullable=False)
    char_end = Column(Integer, nullable=False)
    idx_in_line = Column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_occ_decision_word", "decision_id", "word_id", "line_no", "char_start"),
        Index("idx_occ_word", "word_id"),
    )


class WordGroup(Base):
    """A user-curated set of words indexed together."""
    __tablename__ = "word_groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(String(500), nullable=True)


class WordGroupMember(Base):
    """Membership of a word in a group; position keeps insertion order."""
    __tablename__ = "word_group_members"

    group_id = Column(
        Integer, ForeignKey("word_groups.id", ondelete="CASCADE"), primary_key=True
    )
    word_id = Column(
        Integer, ForeignKey("words.id", ondelete="CASCADE"), primary_key=True
    )
    position = Column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_wgm_word", "word_id"),
    )


class Phrase(Base):
    """A saved multi-word expression, matched as a literal substring."""
    __tablename__ = "phrases"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=True)
    expression_text = Column(String(500), nullable=False)
    language_code = Column(String(10), nullable=False, default="he")


class PhraseOccurrence(Base):
    """A stored literal match of a saved phrase in a decision line."""
    __tablename__ = "phrase_occurrences"

    id = Column(Integer, primary_key=True)
    decision_id = Column(
        Integer, ForeignKey("decisions.id", ondelete="CASCADE"), nullable=False
    )
    phrase_id = Column(
        Integer, ForeignKey("phrases.id", ondelete="CASCADE"), nullable=False
    )
    line_no = Column(Integer, nullable=False)
    char_start = Column(Integer, nullable=False)
    char_end = Column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_po_decision_phrase", "decision_id", "phrase_id"),
    )
