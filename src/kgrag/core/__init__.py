"""Core algorithms: chunking and context assembly. No I/O."""

from kgrag.core.chunking import (
    CHARS_PER_TOKEN,
    TextChunk,
    chunk_text,
    create_passages,
    estimate_token_count,
    normalize_text,
)
from kgrag.core.context import build_context

__all__ = [
    "CHARS_PER_TOKEN",
    "TextChunk",
    "build_context",
    "chunk_text",
    "create_passages",
    "estimate_token_count",
    "normalize_text",
]
