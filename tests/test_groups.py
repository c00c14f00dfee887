"""
Tests for word groups and saved phrases.
"""
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from app.exceptions import IndexingFailure, InvalidQuery, NotFound, StorageUnavailable
from app.groups import add_group_words, create_group, get_group, group_index
from app.indexing import lock_decision
from app.models import PhraseOccurrence
from app.phrases import create_phrase, get_phrase, index_phrase, list_phrase_occurrences
from app.services import scan_phrase

DECISION = "\n".join([
    "The appellant filed an appeal.",
    "The respondent objected.",
    "The court dismissed the appeal.",
    "Costs were awarded to the respondent.",
    "The appeal court also noted the delay.",
])


class TestWordGroups:
    """Tests for group management and the group index."""

    def test_create_and_get(self, db_session):
        group = create_group(db_session, "Parties", "Litigant roles")
        assert group["words"] == []
        assert get_group(db_session, group["id"]) == group

    def test_get_missing_group(self, db_session):
        with pytest.raises(NotFound):
            get_group(db_session, 404)

    def test_add_words_keeps_insertion_order(self, db_session):
        group = create_group(db_session, "Parties")
        assert add_group_words(db_session, group["id"], ["Respondent", "appellant"]) == {"added": 2}
        assert add_group_words(db_session, group["id"], ["appellant", "Court!", "court", ""]) == {"added": 1}
        assert get_group(db_session, group["id"])["words"] == ["respondent", "appellant", "court"]

    def test_add_words_rejects_empty(self, db_session):
        group = create_group(db_session, "Empty")
        with pytest.raises(InvalidQuery):
            add_group_words(db_session, group["id"], ["...", "  "])

    def test_add_words_missing_group(self, db_session):
        with pytest.raises(NotFound):
            add_group_words(db_session, 12, ["court"])

    def test_add_words_database_unreachable(self, db_session):
        group = create_group(db_session, "Any")
        with patch("app.groups.ensure_words", side_effect=OperationalError("INSERT", {}, Exception("down"))):
            with pytest.raises(StorageUnavailable):
                add_group_words(db_session, group["id"], ["court"])
        assert get_group(db_session, group["id"])["words"] == []

    def test_add_words_storage_error(self, db_session):
        group = create_group(db_session, "Any")
        with patch("app.groups.ensure_words", side_effect=IntegrityError("INSERT", {}, Exception("dup"))):
            with pytest.raises(IndexingFailure):
                add_group_words(db_session, group["id"], ["court"])

    def test_empty_group_index(self, db_session, index_text):
        index_text(DECISION)
        group = create_group(db_session, "Nothing")
        assert group_index(db_session, group["id"], 1) == {
            "group_id": group["id"],
            "decision_id": 1,
            "words": [],
        }

    def test_group_index_membership_order(self, db_session, index_text):
        index_text(DECISION)
        group = create_group(db_session, "Mixed")
        add_group_words(db_session, group["id"], ["respondent", "appeal", "judge"])

        result = group_index(db_session, group["id"], 1)
        assert [item["word"] for item in result["words"]] == ["respondent", "appeal", "judge"]
        assert result["words"][2]["samples"] == []

        respondent = result["words"][0]["samples"]
        assert [(s["line_no"], s["char_start"]) for s in respondent] == [(2, 4), (4, 26)]

    def test_group_index_limit_and_context(self, db_session, index_text):
        index_text(DECISION)
        group = create_group(db_session, "Appeal")
        add_group_words(db_session, group["id"], ["appeal"])

        samples = group_index(db_session, group["id"], 1, limit_per_word=2)["words"][0]["samples"]
        assert [s["line_no"] for s in samples] == [1, 3]
        assert [c["line"] for c in samples[0]["context"]] == [1, 2]
        assert [c["line"] for c in samples[1]["context"]] == [2, 3, 4]

    def test_group_index_query_count_independent_of_size(self, db_session, index_text, statement_counter):
        index_text(DECISION)
        small = create_group(db_session, "Small")
        add_group_words(db_session, small["id"], ["appeal"])
        large = create_group(db_session, "Large")
        add_group_words(db_session, large["id"], ["appeal", "the", "respondent", "court", "costs"])

        db_session.expire_all()
        statement_counter.clear()
        group_index(db_session, small["id"], 1)
        small_count = len(statement_counter)

        db_session.expire_all()
        statement_counter.clear()
        group_index(db_session, large["id"], 1)
        assert len(statement_counter) == small_count

    def test_group_index_unknown_decision(self, db_session):
        group = create_group(db_session, "Any")
        with pytest.raises(NotFound):
            group_index(db_session, group["id"], 99)


class TestSavedPhrases:
    """Tests for saved phrases and stored phrase occurrences."""

    def test_create_and_get(self, db_session):
        phrase = create_phrase(db_session, "  the appeal ", name="Appeal")
        assert phrase["expression_text"] == "the appeal"
        assert phrase["language_code"] == "he"
        assert get_phrase(db_session, phrase["id"]) == phrase

    def test_create_empty(self, db_session):
        with pytest.raises(InvalidQuery):
            create_phrase(db_session, "   ")

    def test_get_missing(self, db_session):
        with pytest.raises(NotFound):
            get_phrase(db_session, 3)

    def test_index_phrase(self, db_session, index_text):
        index_text(DECISION)
        phrase = create_phrase(db_session, "the appeal")
        result = index_phrase(db_session, 1, phrase["id"])
        # Case sensitive: "The appeal" on line 5 does not match
        assert result["count"] == 1
        assert [(o["line_no"], o["char_start"], o["char_end"]) for o in result["occurrences"]] == [(3, 20, 30)]
        stored = list_phrase_occurrences(db_session, 1, phrase["id"])
        assert stored["occurrences"] == result["occurrences"]

    def test_index_phrase_replaces_previous(self, db_session, index_text):
        index_text(DECISION)
        phrase = create_phrase(db_session, "respondent")
        index_phrase(db_session, 1, phrase["id"])
        index_phrase(db_session, 1, phrase["id"])
        assert db_session.scalar(select(func.count()).select_from(PhraseOccurrence)) == 2

    def test_index_phrase_missing_phrase(self, db_session, index_text):
        index_text(DECISION)
        with pytest.raises(NotFound):
            index_phrase(db_session, 1, 77)

    def test_index_phrase_missing_decision(self, db_session):
        phrase = create_phrase(db_session, "court")
        with pytest.raises(NotFound):
            index_phrase(db_session, 9, phrase["id"])

    def test_index_phrase_locks_decision_before_scanning(self, db_session, index_text):
        index_text(DECISION)
        phrase = create_phrase(db_session, "respondent")
        calls = MagicMock()
        with patch("app.phrases.lock_decision", wraps=lock_decision) as lock, \
                patch("app.phrases.scan_phrase", wraps=scan_phrase) as scan:
            calls.attach_mock(lock, "lock_decision")
            calls.attach_mock(scan, "scan_phrase")
            index_phrase(db_session, 1, phrase["id"])
        assert [name for name, _, _ in calls.mock_calls] == ["lock_decision", "scan_phrase"]

    def test_list_phrase_occurrences_missing_decision(self, db_session):
        phrase = create_phrase(db_session, "court")
        with pytest.raises(NotFound):
            list_phrase_occurrences(db_session, 5, phrase["id"])
