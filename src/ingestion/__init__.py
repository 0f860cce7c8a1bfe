"""
Ingestion Layer - Comparison Inputs.

Tokens, sections, documents and annotations supplied by the upstream pipeline.
"""

from src.ingestion.schemas import (
    AlignmentHint,
    Annotation,
    AnnotationIndex,
    AnnotationType,
    Document,
    HintKind,
    Section,
    Token,
    TokenTag,
)
from src.ingestion.tokenizer import annotate, find_span, make_section, tokenize

__all__ = [
    # Schemas
    "Token",
    "TokenTag",
    "Annotation",
    "AnnotationType",
    "AnnotationIndex",
    "Section",
    "Document",
    "AlignmentHint",
    "HintKind",
    # Tokenizer
    "tokenize",
    "make_section",
    "annotate",
    "find_span",
]
