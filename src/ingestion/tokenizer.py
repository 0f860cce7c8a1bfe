"""
Tokenizer - Build Comparison Inputs from Plain Text.

The upstream pipeline normally supplies tokens. This regex tokenizer
produces the same shape for fixtures, examples and ad hoc comparisons.
"""

import re
from collections.abc import Iterable

from src.ingestion.schemas import Annotation, AnnotationType, Section, Token, TokenTag

# Order matters: the first matching group decides the tag
_TOKEN_RE = re.compile(
    r"(?P<space>\s+)"
    r"|(?P<number>\d+(?:[.,]\d+)*)"
    r"|(?P<word>[^\W\d_][\w'’]*)"
    r"|(?P<punctuation>[.,;:!?\"'()\[\]{}\-–—])"
    r"|(?P<symbol>\S)"
)

_GROUP_TAGS = {
    "space": TokenTag.SPACE,
    "number": TokenTag.NUMBER,
    "word": TokenTag.WORD,
    "punctuation": TokenTag.PUNCTUATION,
    "symbol": TokenTag.SYMBOL,
}


def tokenize(text: str, offset: int = 0) -> list[Token]:
    """
    Split text into tagged tokens.

    Args:
        text: Text to tokenize
        offset: Document offset of the first character

    Returns:
        Tokens covering the whole text, in order
    """
    tokens: list[Token] = []
    for match in _TOKEN_RE.finditer(text):
        tag = _GROUP_TAGS[match.lastgroup or "symbol"]
        tokens.append(
            Token(
                text=match.group(),
                tag=tag,
                start=offset + match.start(),
                end=offset + match.end(),
            )
        )
    return tokens


def find_span(text: str, phrase: str, offset: int = 0, occurrence: int = 0) -> tuple[int, int]:
    """
    Locate a phrase and return its document-absolute span.

    Raises:
        ValueError: If the phrase does not occur often enough
    """
    position = -1
    for _ in range(occurrence + 1):
        position = text.find(phrase, position + 1)
        if position < 0:
            raise ValueError(f"Phrase not found: {phrase!r}")
    return (offset + position, offset + position + len(phrase))


def annotate(
    text: str,
    phrase: str,
    annotation_type: AnnotationType,
    offset: int = 0,
    **attributes: object,
) -> Annotation:
    """Create an annotation covering the first occurrence of a phrase."""
    start, end = find_span(text, phrase, offset)
    return Annotation(
        annotation_type=annotation_type,
        start=start,
        end=end,
        text=phrase,
        attributes=dict(attributes),
    )


def make_section(
    section_id: str,
    text: str,
    title: str | None = None,
    index: int = 0,
    offset: int = 0,
    annotations: Iterable[Annotation] = (),
    depth: int = 0,
    parent_id: str | None = None,
) -> Section:
    """Build a Section whose tokens start at the given document offset."""
    return Section(
        section_id=section_id,
        title=title,
        index=index,
        depth=depth,
        parent_id=parent_id,
        tokens=tuple(tokenize(text, offset)),
        annotations=tuple(annotations),
    )
