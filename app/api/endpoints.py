"""
API endpoint definitions.
Core errors are translated to HTTP errors here; every ConcordanceError
carries its own status code.
"""
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import ConcordanceError
from app.groups import add_group_words, create_group, get_group, group_index
from app.indexing import delete_decision, ingest_from_url, reindex_decision
from app.phrases import create_phrase, get_phrase, index_phrase, list_phrase_occurrences
from app.schemas import (
    GroupCreate,
    GroupIndexResponse,
    GroupResponse,
    GroupWordsRequest,
    GroupWordsResponse,
    IngestFromUrlRequest,
    IngestRequest,
    IngestResponse,
    PhraseCreate,
    PhraseOccurrencesResponse,
    PhraseResponse,
    PhraseSearchResponse,
    StatsResponse,
    WordCount,
    WordSearchResponse,
)
from app.services import get_stats, get_text, list_words, search_phrase, search_word

router = APIRouter()


def _http_error(error: ConcordanceError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=str(error))


# ========== DECISION TEXT ==========

@router.put("/decisions/{decision_id}/text", response_model=IngestResponse, tags=["decisions"])
def ingest_endpoint(
    request: IngestRequest,
    decision_id: int = Path(..., ge=1),
    db: Session = Depends(get_db)
):
    """
    Store and index a decision text, replacing any previous text.

    The decision is created if it does not exist yet. Returns the number of
    lines, distinct words and tokens written.
    """
    try:
        return reindex_decision(db, decision_id, request.text)
    except ConcordanceError as e:
        raise _http_error(e)


@router.post("/decisions/{decision_id}/text/fetch", response_model=IngestResponse, tags=["decisions"])
def ingest_from_url_endpoint(
    request: IngestFromUrlRequest,
    decision_id: int = Path(..., ge=1),
    db: Session = Depends(get_db)
):
    """Download a plain-text decision from a URL and index it."""
    try:
        return ingest_from_url(db, decision_id, request.url)
    except ConcordanceError as e:
        raise _http_error(e)


@router.get("/decisions/{decision_id}/text", response_class=PlainTextResponse, tags=["decisions"])
def text_endpoint(
    decision_id: int = Path(..., ge=1),
    from_line: Optional[int] = Query(None, alias="from", ge=1),
    to_line: Optional[int] = Query(None, alias="to", ge=1),
    db: Session = Depends(get_db)
):
    """Full text of a decision, or the inclusive line range [from, to]."""
    try:
        return PlainTextResponse(get_text(db, decision_id, from_line, to_line))
    except ConcordanceError as e:
        raise _http_error(e)


@router.delete("/decisions/{decision_id}", tags=["decisions"])
def delete_endpoint(decision_id: int = Path(..., ge=1), db: Session = Depends(get_db)):
    """Delete a decision together with its lines and occurrences."""
    try:
        delete_decision(db, decision_id)
    except ConcordanceError as e:
        raise _http_error(e)
    return {"ok": True}


# ========== INDEX QUERIES ==========

@router.get("/decisions/{decision_id}/words", response_model=List[WordCount], tags=["search"])
def words_endpoint(
    decision_id: int = Path(..., ge=1),
    order: Literal["alpha", "freq"] = Query("alpha", description="alpha or freq"),
    limit: int = Query(1000, ge=1),
    db: Session = Depends(get_db)
):
    """
    Word index of a decision.

    - 'alpha': alphabetical
    - 'freq': most frequent first, ties alphabetical
    """
    try:
        return list_words(db, decision_id, order, limit)
    except ConcordanceError as e:
        raise _http_error(e)


@router.get("/decisions/{decision_id}/search/word", response_model=WordSearchResponse, tags=["search"])
def search_word_endpoint(
    decision_id: int = Path(..., ge=1),
    q: str = Query(..., description="Word to find"),
    before: int = Query(2, ge=0),
    after: int = Query(2, ge=0),
    max_results: int = Query(100, alias="max", ge=1),
    db: Session = Depends(get_db)
):
    """Occurrences of a word with a window of surrounding lines."""
    try:
        return search_word(db, decision_id, q, before, after, max_results)
    except ConcordanceError as e:
        raise _http_error(e)


@router.get("/decisions/{decision_id}/search/phrase", response_model=PhraseSearchResponse, tags=["search"])
def search_phrase_endpoint(
    decision_id: int = Path(..., ge=1),
    q: str = Query(..., description="Literal phrase to find"),
    before: int = Query(2, ge=0),
    after: int = Query(2, ge=0),
    max_results: int = Query(100, alias="max", ge=1),
    db: Session = Depends(get_db)
):
    """
    Lines containing a literal phrase.

    Matching is case and whitespace sensitive, and only the first match on
    each line is returned.
    """
    try:
        return search_phrase(db, decision_id, q, before, after, max_results)
    except ConcordanceError as e:
        raise _http_error(e)


@router.get("/decisions/{decision_id}/stats", response_model=StatsResponse, tags=["search"])
def stats_endpoint(decision_id: int = Path(..., ge=1), db: Session = Depends(get_db)):
    """Line, token and unique word counts of a decision."""
    try:
        return get_stats(db, decision_id)
    except ConcordanceError as e:
        raise _http_error(e)


# ========== WORD GROUPS ==========

@router.post("/groups", response_model=GroupResponse, status_code=201, tags=["groups"])
def create_group_endpoint(request: GroupCreate, db: Session = Depends(get_db)):
    try:
        return create_group(db, request.name, request.description)
    except ConcordanceError as e:
        raise _http_error(e)


@router.get("/groups/{group_id}", response_model=GroupResponse, tags=["groups"])
def get_group_endpoint(group_id: int, db: Session = Depends(get_db)):
    try:
        return get_group(db, group_id)
    except ConcordanceError as e:
        raise _http_error(e)


@router.post("/groups/{group_id}/words", response_model=GroupWordsResponse, tags=["groups"])
def add_group_words_endpoint(
    group_id: int,
    request: GroupWordsRequest,
    db: Session = Depends(get_db)
):
    """Add words to a group; missing words are created."""
    try:
        return add_group_words(db, group_id, request.words)
    except ConcordanceError as e:
        raise _http_error(e)


@router.get("/groups/{group_id}/index", response_model=GroupIndexResponse, tags=["groups"])
def group_index_endpoint(
    group_id: int,
    decision_id: int = Query(..., ge=1),
    limit_per_word: int = Query(5, ge=1),
    db: Session = Depends(get_db)
):
    """Sample locations of every group word within a decision."""
    try:
        return group_index(db, group_id, decision_id, limit_per_word)
    except ConcordanceError as e:
        raise _http_error(e)


# ========== SAVED PHRASES ==========

@router.post("/phrases", response_model=PhraseResponse, status_code=201, tags=["phrases"])
def create_phrase_endpoint(request: PhraseCreate, db: Session = Depends(get_db)):
    try:
        return create_phrase(db, request.expression_text, request.name, request.language_code)
    except ConcordanceError as e:
        raise _http_error(e)


@router.get("/phrases/{phrase_id}", response_model=PhraseResponse, tags=["phrases"])
def get_phrase_endpoint(phrase_id: int, db: Session = Depends(get_db)):
    try:
        return get_phrase(db, phrase_id)
    except ConcordanceError as e:
        raise _http_error(e)


@router.post(
    "/decisions/{decision_id}/phrases/{phrase_id}/index",
    response_model=PhraseOccurrencesResponse,
    tags=["phrases"],
)
def index_phrase_endpoint(
    phrase_id: int,
    decision_id: int = Path(..., ge=1),
    db: Session = Depends(get_db)
):
    """Find a saved phrase in a decision and store the matches."""
    try:
        return index_phrase(db, decision_id, phrase_id)
    except ConcordanceError as e:
        raise _http_error(e)


@router.get(
    "/decisions/{decision_id}/phrases/{phrase_id}",
    response_model=PhraseOccurrencesResponse,
    tags=["phrases"],
)
def phrase_occurrences_endpoint(
    phrase_id: int,
    decision_id: int = Path(..., ge=1),
    db: Session = Depends(get_db)
):
    try:
        return list_phrase_occurrences(db, decision_id, phrase_id)
    except ConcordanceError as e:
        raise _http_error(e)
