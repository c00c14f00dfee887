"""
Unit tests for line splitting, token scanning and normalization.
"""
from app.tokenizer import Token, normalize_word, split_lines, tokenize, tokenize_line


class TestSplitLines:
    """Tests for line splitting."""

    def test_mixed_line_endings(self):
        assert split_lines("a\r\nb\rc\nd") == ["a", "b", "c", "d"]

    def test_trailing_newline_keeps_empty_last_line(self):
        assert split_lines("first\nsecond\n") == ["first", "second", ""]

    def test_empty_text_is_one_empty_line(self):
        assert split_lines("") == [""]

    def test_blank_lines_preserved(self):
        assert split_lines("a\n\n\nb") == ["a", "", "", "b"]


class TestNormalizeWord:
    """Tests for word normalization."""

    def test_lowercases(self):
        assert normalize_word("Contract") == "contract"

    def test_strips_edge_punctuation(self):
        assert normalize_word("«No.»") == "no"
        assert normalize_word("__id__") == "id"

    def test_punctuation_only_is_empty(self):
        assert normalize_word("--!?") == ""
        assert normalize_word("   ") == ""
        assert normalize_word(None) == ""

    def test_idempotent(self):
        assert normalize_word(normalize_word("Signed,")) == "signed"

    def test_hebrew_unchanged(self):
        assert normalize_word("שלום") == "שלום"


class TestTokenizeLine:
    """Tests for per-line token scanning."""

    def test_positions_and_indexes(self):
        tokens = tokenize_line("contract No. 123-A signed", 7)
        assert [t.word for t in tokens] == ["contract", "no", "123", "a", "signed"]
        assert tokens[1] == Token(7, "no", 9, 11, 1)
        assert tokens[2] == Token(7, "123", 13, 16, 2)
        assert tokens[3] == Token(7, "a", 17, 18, 3)
        assert [t.idx_in_line for t in tokens] == [0, 1, 2, 3, 4]

    def test_offsets_point_at_raw_text(self):
        line = "  The COURT, held:"
        for token in tokenize_line(line, 1):
            assert line[token.char_start:token.char_end].lower() == token.word
            assert token.char_start < token.char_end <= len(line)

    def test_underscore_separates(self):
        assert [t.word for t in tokenize_line("foo_bar", 1)] == ["foo", "bar"]

    def test_no_tokens_on_punctuation_line(self):
        assert tokenize_line("--- * ---", 1) == []


class TestTokenize:
    """Tests for whole-document tokenization."""

    def test_hebrew_two_lines(self):
        lines, tokens = tokenize("שלום עולם\nשלום שוב")
        assert lines == ["שלום עולם", "שלום שוב"]
        assert len(tokens) == 4
        assert {t.word for t in tokens} == {"שלום", "עולם", "שוב"}
        assert [(t.line_no, t.idx_in_line) for t in tokens] == [(1, 0), (1, 1), (2, 0), (2, 1)]

    def test_index_restarts_per_line(self):
        _, tokens = tokenize("one two\nthree")
        assert tokens[-1] == Token(2, "three", 0, 5, 0)

    def test_deterministic(self):
        text = "Section 12(b): The Appellant's claim, dismissed.\r\nCosts: 5,000 NIS"
        assert tokenize(text) == tokenize(text)
