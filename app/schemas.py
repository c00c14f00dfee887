"""
Pydantic schemas for request/response validation.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class IngestRequest(BaseModel):
    """Request schema for submitting a decision text directly."""
    text: str = Field(..., min_length=1, description="Raw decision text")


class IngestFromUrlRequest(BaseModel):
    """Request schema for ingesting a decision text from a URL."""
    url: str = Field(..., min_length=1, description="URL of a plain-text decision")


class IngestResponse(BaseModel):
    """Counts produced by a re-index."""
    decision_id: int
    lines: int
    unique_words: int
    tokens: int


class WordCount(BaseModel):
    """Entry of a decision's word index."""
    word: str
    count: int


class StatsResponse(BaseModel):
    """Statistics derived from a decision's index."""
    lines: int
    tokens: int
    unique_words: int


class ContextLine(BaseModel):
    """A line shown around a hit."""
    line: int
    text: str


class OccurrenceHit(BaseModel):
    """One match with its surrounding lines."""
    line_no: int
    char_start: int
    char_end: int
    context: List[ContextLine] = []


class WordSearchResponse(BaseModel):
    """Response schema for word search."""
    word: str
    occurrences: List[OccurrenceHit]


class PhraseSearchResponse(BaseModel):
    """Response schema for phrase search."""
    phrase: str
    occurrences: List[OccurrenceHit]


class GroupCreate(BaseModel):
    """Request schema for creating a word group."""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=500)


class GroupResponse(BaseModel):
    """A word group and its words in membership order."""
    id: int
    name: str
    description: Optional[str] = None
    words: List[str]


class GroupWordsRequest(BaseModel):
    """Request schema for adding words to a group."""
    words: List[str] = Field(..., min_length=1, description="Words to add")


class GroupWordsResponse(BaseModel):
    added: int


class GroupWordSamples(BaseModel):
    """Sampled occurrences of one group word."""
    word: str
    samples: List[OccurrenceHit]


class GroupIndexResponse(BaseModel):
    """Response schema for a group index over a decision."""
    group_id: int
    decision_id: int
    words: List[GroupWordSamples]


class PhraseCreate(BaseModel):
    """Request schema for saving a phrase."""
    expression_text: str = Field(..., min_length=1, max_length=500)
    name: Optional[str] = Field(None, max_length=200)
    language_code: str = Field("he", max_length=10)


class PhraseResponse(BaseModel):
    id: int
    name: Optional[str] = None
    expression_text: str
    language_code: str


class PhraseOccurrencesResponse(BaseModel):
    """Stored occurrences of a saved phrase in a decision."""
    decision_id: int
    phrase_id: int
    count: int
    occurrences: List[OccurrenceHit]
