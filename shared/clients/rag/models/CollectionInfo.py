"""Backend-neutral description of a collection as reported by a RAG backend."""

from pydantic import BaseModel


class CollectionInfo(BaseModel):
    """Collection state as reported by the RAG backend.

    Attributes:
        name:                  Collection name.
        vector_size:           Dimensionality of the stored vectors.
        distance:              Distance metric ("cosine", "euclidean" or "dot").
        points_count:          Number of stored points.
        indexed_vectors_count: Number of vectors already in the index.
        status:                Backend health/optimisation status (e.g. "green").
        index_type:            "hnsw" or "flat".
        hnsw_m:                HNSW graph degree (0 for flat).
        hnsw_ef_construct:     HNSW construction beam width.
        full_scan_threshold:   Size below which the backend does a full scan.
        payload_indexes_count: Number of indexed payload fields.
    """

    name: str
    vector_size: int
    distance: str = "cosine"
    points_count: int = 0
    indexed_vectors_count: int = 0
    status: str = "green"
    index_type: str = "hnsw"
    hnsw_m: int = 16
    hnsw_ef_construct: int = 200
    full_scan_threshold: int = 10000
    payload_indexes_count: int = 0
