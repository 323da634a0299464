"""Chunk model: a bounded text fragment prepared for embedding and retrieval."""

from datetime import datetime

from pydantic import BaseModel


class ChunkMetadata(BaseModel):
    """Provenance of a chunk.

    Attributes:
        source:           Identifier of the source document (title or file name).
        page_number:      1-based page the chunk was attributed to.
        chunk_index:      Zero-based ordinal within one ingestion run, contiguous.
        conversation_id:  Conversation the chunk belongs to.
    """

    source: str
    page_number: int = 1
    chunk_index: int
    conversation_id: str


class Chunk(BaseModel):
    """A chunk of document text.

    The embedding stays None until the embedding step succeeds; a chunk may be
    stored without one.
    """

    id: str
    content: str
    metadata: ChunkMetadata
    embedding: list[float] | None = None
    created_at: datetime
    updated_at: datetime
