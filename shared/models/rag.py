"""Pydantic models for the ingestion and query operations exposed by the core.

Hierarchy:
  EmbeddingContext         - resolved embedding model and its vector size.
  ProcessDocumentOptions   - per-call ingestion options.
  PartialFailure           - chunks that were stored without an embedding.
  ProcessDocumentResult    - structured ingestion result.
  RAGQuery / RAGResponse   - similarity query and its ranked sources.
  DeleteCollectionResult   - structured delete result.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from shared.models.chunk import Chunk
from shared.models.collection import DistanceMetric
from shared.models.document import ProgressStage


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmbeddingContext(BaseModel):
    model_name: str
    vector_size: int


##########################################
############### INGESTION ################
##########################################

class ProcessDocumentOptions(BaseModel):
    """Per-call ingestion options. Unset values fall back to the configured defaults."""

    chunk_size: int | None = None
    chunk_overlap: int | None = None
    embedding_model: str | None = None
    source: str | None = None


class PartialFailure(BaseModel):
    """Chunks that were kept without an embedding after a per-chunk failure."""

    failed_chunk_indexes: list[int] = []
    messages: list[str] = []


class ProcessDocumentResult(BaseModel):
    success: bool
    chunks: list[Chunk] = []
    total_chunks: int = 0
    error: str | None = None
    error_type: str | None = None
    stage: ProgressStage = "completed"
    partial_failure: PartialFailure | None = None


##########################################
################# QUERY ##################
##########################################

class QueryFilters(BaseModel):
    source: str | None = None
    page_number: int | None = None
    additional: dict[str, Any] = {}


class RAGQuery(BaseModel):
    query: str
    conversation_id: str
    top_k: int = 5
    similarity_threshold: float = 0.7
    filters: QueryFilters | None = None


class SourceMetadata(BaseModel):
    source: str
    page_number: int = 1
    chunk_index: int = 0


class DocumentSource(BaseModel):
    """One retrieved chunk, ranked by relevance (the similarity score)."""

    chunk_id: str
    content: str
    relevance: float
    metadata: SourceMetadata


class SearchMetadata(BaseModel):
    """Search statistics. search_time is in milliseconds."""

    search_time: float = 0.0
    chunks_found: int = 0
    average_similarity: float = 0.0
    distance_metric: DistanceMetric = "cosine"


class RAGResponse(BaseModel):
    """Ranked sources for a query. The answer is generated elsewhere and stays empty here."""

    answer: str = ""
    sources: list[DocumentSource] = []
    confidence: float = 0.0
    search_metadata: SearchMetadata = SearchMetadata()
    timestamp: datetime = Field(default_factory=_utcnow)


class DeleteCollectionResult(BaseModel):
    success: bool
    deleted_id: str | None = None
    error: str | None = None
