"""VectorPoint model: metadata payload stored alongside each chunk vector in a RAG backend."""

from pydantic import BaseModel

from shared.models.chunk import Chunk


class VectorPoint(BaseModel):
    """Payload stored alongside each vector chunk in a RAG backend.

    The conversation_id field is mandatory and used as a filter on every
    search, so one conversation never sees the chunks of another.

    Attributes:
        conversation_id:  Mandatory, the conversation that owns the chunk.
        chunk_id:         Chunk identifier ("{conversation}_chunk_{index}_{ms}").
        chunk_index:      Zero-based position of this chunk within the document.
        source:           Source document identifier (title or file name).
        page_number:      1-based page the chunk was attributed to.
        content:          Raw text content of this chunk.
        created_at:       ISO-8601 creation timestamp.
        updated_at:       ISO-8601 update timestamp.
    """

    conversation_id: str
    chunk_id: str
    chunk_index: int
    source: str
    page_number: int = 1
    content: str
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_chunk(cls, chunk: Chunk) -> "VectorPoint":
        return cls(
            conversation_id=chunk.metadata.conversation_id,
            chunk_id=chunk.id,
            chunk_index=chunk.metadata.chunk_index,
            source=chunk.metadata.source,
            page_number=chunk.metadata.page_number,
            content=chunk.content,
            created_at=chunk.created_at.isoformat(),
            updated_at=chunk.updated_at.isoformat(),
        )
