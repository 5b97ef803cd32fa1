"""Text chunking utilities.

Why this exists:
- Splits documents into token-bounded passages for embedding and citation
- Maintains context across splits with an overlap window
- Keeps paragraph and sentence boundaries where possible

Sizing uses an estimate of four characters per token everywhere. Every chunk
is a span of the normalized text, so ``start_offset``/``end_offset`` can be
used to cite the exact characters a passage came from.

Oversized sentences (a single sentence estimated above ``target_tokens``)
are emitted whole and flagged ``oversized``; they are never hard-split.
"""

import math
import re
from collections.abc import Iterator
from dataclasses import dataclass

from kgrag.config.schema import ChunkingConfig
from kgrag.entities import ChunkType, Document, Passage
from kgrag.observability.logging import get_logger

logger = get_logger(__name__)

# Tuned for English text
CHARS_PER_TOKEN = 4

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_END = re.compile(r"[.!?]+(?=\s)")


@dataclass(frozen=True)
class TextChunk:
    """A chunk of normalized text with its character span."""

    content: str
    start_offset: int
    end_offset: int
    token_count: int
    oversized: bool = False


def estimate_token_count(text: str) -> int:
    """Estimate tokens as ceil(characters / 4)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def normalize_text(text: str) -> str:
    """Convert CRLF to LF and trim surrounding whitespace."""
    return text.replace("\r\n", "\n").strip()


def _trim(text: str, start: int, end: int) -> tuple[int, int]:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return start, end


def _paragraph_spans(text: str) -> Iterator[tuple[int, int]]:
    cursor = 0
    for match in _PARAGRAPH_BREAK.finditer(text):
        start, end = _trim(text, cursor, match.start())
        if start < end:
            yield start, end
        cursor = match.end()
    start, end = _trim(text, cursor, len(text))
    if start < end:
        yield start, end


def _sentence_spans(text: str, start: int, end: int) -> Iterator[tuple[int, int]]:
    cursor = start
    for match in _SENTENCE_END.finditer(text, start, end):
        s_start, s_end = _trim(text, cursor, match.end())
        if s_start < s_end:
            yield s_start, s_end
        cursor = match.end()
    s_start, s_end = _trim(text, cursor, end)
    if s_start < s_end:
        yield s_start, s_end


def _make_chunk(text: str, start: int, end: int, target_tokens: int) -> TextChunk:
    start, end = _trim(text, start, end)
    content = text[start:end]
    token_count = estimate_token_count(content)
    return TextChunk(
        content=content,
        start_offset=start,
        end_offset=end,
        token_count=token_count,
        oversized=token_count > target_tokens,
    )


def _overlap_start(
    chunk_start: int,
    chunk_end: int,
    sentence_start: int,
    sentence_end: int,
    target_tokens: int,
    overlap_tokens: int,
) -> int:
    """Where the next chunk begins: inside the closed chunk, or at the sentence.

    The window is the trailing ``overlap_tokens`` worth of characters of the
    closed chunk, shrunk so that window + sentence stays within the target.
    """
    budget = target_tokens * CHARS_PER_TOKEN - (sentence_end - chunk_end)
    window = min(overlap_tokens * CHARS_PER_TOKEN, budget, chunk_end - chunk_start)
    if window <= 0:
        return sentence_start
    return chunk_end - window


def chunk_text(text: str, target_tokens: int, overlap_tokens: int) -> list[TextChunk]:
    """Split text into ordered, token-bounded chunks with sliding overlap.

    Args:
        text: Raw text; normalized before splitting
        target_tokens: Upper bound on the estimated tokens of a chunk
        overlap_tokens: Estimated tokens carried over from the previous chunk

    Returns:
        Chunks in input order with offsets into the normalized text

    Raises:
        ValueError: If the size parameters are inconsistent
    """
    if target_tokens <= 0:
        raise ValueError("target_tokens must be positive")
    if overlap_tokens < 0 or overlap_tokens >= target_tokens:
        raise ValueError("overlap_tokens must be in [0, target_tokens)")

    normalized = normalize_text(text)
    if not normalized:
        return []

    if estimate_token_count(normalized) <= target_tokens:
        return [_make_chunk(normalized, 0, len(normalized), target_tokens)]

    chunks: list[TextChunk] = []
    chunk_start: int | None = None
    chunk_end = 0

    for p_start, p_end in _paragraph_spans(normalized):
        for s_start, s_end in _sentence_spans(normalized, p_start, p_end):
            if chunk_start is None:
                chunk_start, chunk_end = s_start, s_end
                continue

            if estimate_token_count(normalized[chunk_start:s_end]) <= target_tokens:
                chunk_end = s_end
                continue

            chunks.append(_make_chunk(normalized, chunk_start, chunk_end, target_tokens))
            chunk_start = _overlap_start(
                chunk_start, chunk_end, s_start, s_end, target_tokens, overlap_tokens
            )
            chunk_end = s_end

    if chunk_start is not None and normalized[chunk_start:chunk_end].strip():
        chunks.append(_make_chunk(normalized, chunk_start, chunk_end, target_tokens))

    oversized = sum(1 for chunk in chunks if chunk.oversized)
    if oversized:
        logger.warning(
            "oversized_chunks_emitted",
            count=oversized,
            target_tokens=target_tokens,
        )

    return chunks


def create_passages(document: Document, config: ChunkingConfig) -> list[Passage]:
    """Chunk a document into passages ready for embedding.

    Args:
        document: Document to chunk
        config: Chunking configuration

    Returns:
        Passages with contiguous, zero-based ``chunk_order_index`` values
    """
    passages = []

    for idx, chunk in enumerate(
        chunk_text(document.content, config.target_tokens, config.overlap_tokens)
    ):
        metadata: dict = {
            "start_offset": chunk.start_offset,
            "end_offset": chunk.end_offset,
        }
        if chunk.oversized:
            metadata["oversized"] = True
        if document.is_markdown:
            metadata["is_markdown"] = True

        passages.append(
            Passage(
                workspace=document.workspace,
                document_id=document.id,
                chunk_order_index=idx,
                content=chunk.content,
                tokens=chunk.token_count,
                chunk_type=ChunkType.TEXT,
                metadata=metadata,
            )
        )

    logger.info(
        "document_chunked",
        document_id=document.id,
        file_type=document.file_type,
        chunk_count=len(passages),
        avg_chunk_tokens=sum(p.tokens for p in passages) // len(passages) if passages else 0,
    )

    return passages
