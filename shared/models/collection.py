"""Pydantic models describing per-conversation vector collections."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

DistanceMetric = Literal["cosine", "euclidean", "dot"]
IndexingStatus = Literal["idle", "indexing", "completed", "error"]


class HnswConfig(BaseModel):
    m: int = 16
    ef_construct: int = 200
    ef_search: int = 50
    full_scan_threshold: int = 10000


class FlatConfig(BaseModel):
    compressed: bool = False


class IndexParams(BaseModel):
    """Index parameters of a collection. Flat means exact (full scan) search."""

    index_type: Literal["hnsw", "flat"] = "hnsw"
    hnsw_config: HnswConfig = HnswConfig()
    flat_config: FlatConfig = FlatConfig()


class CollectionStats(BaseModel):
    points_count: int = 0
    size_bytes: int = 0
    indexes_count: int = 0
    indexing_status: IndexingStatus = "idle"
    last_indexed_at: datetime | None = None


class VectorCollection(BaseModel):
    """One vector collection. Exactly one exists per conversation.

    Attributes:
        name:             Deterministic collection name derived from the conversation id.
        conversation_id:  Owning conversation, None when it cannot be recovered (empty collection).
        vector_size:      Dimensionality fixed at creation.
        distance_metric:  Similarity metric of the collection.
        index_params:     HNSW or flat index parameters.
        stats:            Point count, estimated size and indexing status.
        created_at:       First time this process saw the collection.
        updated_at:       Last refresh from the vector store.
    """

    name: str
    conversation_id: str | None = None
    vector_size: int
    distance_metric: DistanceMetric = "cosine"
    index_params: IndexParams = IndexParams()
    stats: CollectionStats = CollectionStats()
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CachedCollectionEntry(BaseModel):
    """Cache wrapper around a VectorCollection. Timestamps are clock seconds."""

    collection: VectorCollection
    cached_at: float
    expires_at: float
    access_count: int = 0
    last_accessed_at: float


class VectorStoreConfig(BaseModel):
    """Defaults applied to newly created collections and to the collection cache."""

    default_vector_size: int = 768
    default_distance_metric: DistanceMetric = "cosine"
    default_index_params: IndexParams = IndexParams()
    cache_ttl_seconds: float = 1800.0
    cache_max_entries: int = 100
    upsert_batch_size: int = 100
