"""Chunker: turns page-structured text into overlapping chunks sized for embedding.

Pages are walked word by word into a running buffer. When the next word would
push the buffer over chunk_size characters, the buffer is emitted unchanged and
the next buffer is seeded with the last chunk_overlap characters of the emitted
chunk, followed by the word that triggered the overflow. No page markers are
written into the chunk text; page attribution is inferred afterwards.
"""

import time
from datetime import datetime, timezone

from services.document_processing.progress import notify_progress
from services.document_processing.text_utils import normalize_whitespace, split_words
from shared.exceptions.errors import ValidationError
from shared.models.chunk import Chunk, ChunkMetadata
from shared.models.document import Page, ProgressCallback, ProgressEvent

DEFAULT_CHUNK_SIZE = 512
DEFAULT_CHUNK_OVERLAP = 50
PAGE_PREFIX_LENGTH = 50


def validate_chunk_options(chunk_size: int, chunk_overlap: int) -> None:
    """
    Raises:
        ValidationError: If chunk_size <= 0 or the overlap is not in [0, chunk_size).
    """
    if chunk_size <= 0:
        raise ValidationError(f"Chunk size must be positive, got {chunk_size}", field="chunk_size")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValidationError(
            f"Chunk overlap must be between 0 and chunk size ({chunk_size}), got {chunk_overlap}",
            field="chunk_overlap",
        )


def create_text_chunks(pages: list[Page], chunk_size: int = DEFAULT_CHUNK_SIZE, chunk_overlap: int = DEFAULT_CHUNK_OVERLAP) -> list[str]:
    """Split the text of all pages into overlapping chunks.

    Args:
        pages (list[Page]): Pages in document order.
        chunk_size (int): Soft upper bound of a chunk in characters.
        chunk_overlap (int): Number of trailing characters carried into the next chunk.

    Returns:
        list[str]: Chunk texts in order. Deterministic for identical input.
    """
    validate_chunk_options(chunk_size, chunk_overlap)

    chunks: list[str] = []
    current = ""
    for page in pages:
        for word in split_words(page.text):
            piece = f" {word}" if current else word
            if len(current) + len(piece) > chunk_size and current:
                chunks.append(current)
                overlap = current[-chunk_overlap:] if chunk_overlap else ""
                # the triggering word keeps its separating space behind the overlap
                current = overlap + piece if overlap else word
            else:
                current += piece
    if current:
        chunks.append(current)
    return chunks


def attribute_page(chunk_text: str, pages: list[Page]) -> int:
    """Return the first page whose leading text occurs in the chunk, else page 1.

    The page prefix is whitespace-normalised before the lookup, since chunk text
    joins words with single spaces, and pages without text never match. A raw
    prefix would miss pages with line breaks, and an empty page would match
    every chunk. Chunks that span a page boundary may be attributed to the
    earlier page.
    """
    for page in pages:
        prefix = normalize_whitespace(page.text)[:PAGE_PREFIX_LENGTH]
        if prefix and prefix in chunk_text:
            return page.page_number
    return 1


def build_chunks(
    pages: list[Page],
    conversation_id: str,
    source: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    on_progress: ProgressCallback | None = None,
) -> list[Chunk]:
    """Chunk the pages and wrap every text into a Chunk with provenance.

    Chunk ids follow "{conversation_id}_chunk_{index}_{epoch_ms}". Indexes are
    contiguous and start at 0.
    """
    texts = create_text_chunks(pages, chunk_size, chunk_overlap)
    now = datetime.now(timezone.utc)
    stamp = int(time.time() * 1000)
    total = len(texts)

    chunks: list[Chunk] = []
    for index, text in enumerate(texts):
        chunks.append(
            Chunk(
                id=f"{conversation_id}_chunk_{index}_{stamp}",
                content=text,
                metadata=ChunkMetadata(
                    source=source,
                    page_number=attribute_page(text, pages),
                    chunk_index=index,
                    conversation_id=conversation_id,
                ),
                created_at=now,
                updated_at=now,
            )
        )
        notify_progress(on_progress, ProgressEvent(stage="chunking", percent=round((index + 1) / total * 100, 1)))
    return chunks
