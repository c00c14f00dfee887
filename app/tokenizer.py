"""
Tokenization of decision texts into lines and positioned word tokens.

A token is a maximal run of Unicode letters or digits. Punctuation, symbols,
whitespace and the underscore all separate tokens, so "123-A" yields "123"
and "a". Offsets are code point indices into the original line.
"""
import re
from typing import List, NamedTuple, Tuple

# Letters or digits only: \w minus the underscore
WORD_PATTERN = re.compile(r"[^\W_]+")

# Non letter/digit characters at either end of a token
EDGE_PATTERN = re.compile(r"^[\W_]+|[\W_]+$")


class Token(NamedTuple):
    """A normalized word and where it sits in the text."""
    line_no: int
    word: str
    char_start: int
    char_end: int
    idx_in_line: int


def normalize_word(raw: str) -> str:
    """
    Normalize a raw token or query term.

    Lowercases, then strips leading/trailing characters that are neither
    letter nor digit.

    Args:
        raw: Raw token text

    Returns:
        str: The normalized word, possibly empty
    """
    return EDGE_PATTERN.sub("", (raw or "").lower())


def split_lines(text: str) -> List[str]:
    """
    Split text into lines, treating CRLF, CR and LF alike.

    A trailing line break still produces a final empty line so the line count
    matches the source.
    """
    return (text or "").replace("\r\n", "\n").replace("\r", "\n").split("\n")


def tokenize_line(line: str, line_no: int) -> List[Token]:
    """
    Extract the tokens of a single line.

    Args:
        line: Line content
        line_no: 1-based number of the line

    Returns:
        List[Token]: Tokens in left-to-right order
    """
    tokens = []
    idx = 0
    for match in WORD_PATTERN.finditer(line):
        word = normalize_word(match.group())
        if not word:
            continue
        tokens.append(Token(line_no, word, match.start(), match.end(), idx))
        idx += 1
    return tokens


def tokenize(text: str) -> Tuple[List[str], List[Token]]:
    """
    Split a document into lines and tokens.

    Args:
        text: Raw document text

    Returns:
        Tuple of (lines, tokens); tokens are ordered by line then position
    """
    lines = split_lines(text)
    tokens = []
    for line_no, line in enumerate(lines, start=1):
        tokens.extend(tokenize_line(line, line_no))
    return lines, tokens
