"""Vector store gateway.

Owns the mapping conversation id -> vector collection. Creates collections,
upserts chunk vectors, runs filtered similarity queries, deletes collections
and reports statistics. Collection metadata is cached in-process.
"""

import asyncio
import hashlib
import time
import uuid
from datetime import datetime, timezone

from services.vector_store.CollectionCache import CollectionCache
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.CollectionInfo import CollectionInfo
from shared.clients.rag.models.VectorPoint import VectorPoint
from shared.exceptions.errors import DimensionMismatchError
from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import Chunk
from shared.models.collection import (
    CollectionStats,
    HnswConfig,
    FlatConfig,
    IndexParams,
    IndexingStatus,
    VectorCollection,
    VectorStoreConfig,
)
from shared.models.rag import DocumentSource, RAGQuery, RAGResponse, SearchMetadata, SourceMetadata

COLLECTION_PREFIX = "chat_"
COLLECTION_HASH_LENGTH = 16
FLOAT32_BYTES = 4

_STATUS_MAP: dict[str, IndexingStatus] = {
    "green": "completed",
    "yellow": "indexing",
    "red": "error",
    "grey": "idle",
}


def generate_collection_name(conversation_id: str) -> str:
    """Derive the collection name of a conversation: "chat_" + 16 hex chars of sha256."""
    digest = hashlib.sha256(conversation_id.encode("utf-8")).hexdigest()
    return f"{COLLECTION_PREFIX}{digest[:COLLECTION_HASH_LENGTH]}"


def _make_point_id(chunk_id: str) -> str:
    """Build a deterministic UUID5 point ID from a chunk id.

    The vector store only accepts UUIDs or integers as point ids.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_OID, chunk_id))


def load_vector_store_config(helper_config: HelperConfig) -> VectorStoreConfig:
    """Read the vector store defaults from the environment."""
    return VectorStoreConfig(
        default_vector_size=int(helper_config.get_number_val("RAG_VECTOR_SIZE", default=768)),
        default_distance_metric=helper_config.get_choice_val("RAG_DISTANCE", ["cosine", "euclidean", "dot"], default="cosine"),
        default_index_params=IndexParams(
            index_type=helper_config.get_choice_val("RAG_INDEX_TYPE", ["hnsw", "flat"], default="hnsw"),
            hnsw_config=HnswConfig(
                m=int(helper_config.get_number_val("RAG_HNSW_M", default=16)),
                ef_construct=int(helper_config.get_number_val("RAG_HNSW_EF_CONSTRUCT", default=200)),
                ef_search=int(helper_config.get_number_val("RAG_HNSW_EF_SEARCH", default=50)),
                full_scan_threshold=int(helper_config.get_number_val("RAG_HNSW_FULL_SCAN_THRESHOLD", default=10000)),
            ),
            flat_config=FlatConfig(compressed=helper_config.get_bool_val("RAG_FLAT_COMPRESSED", default=False)),
        ),
        cache_ttl_seconds=float(helper_config.get_number_val("RAG_COLLECTION_CACHE_TTL", default=1800)),
        cache_max_entries=int(helper_config.get_number_val("RAG_COLLECTION_CACHE_MAX_ENTRIES", default=100)),
        upsert_batch_size=int(helper_config.get_number_val("RAG_UPSERT_BATCH_SIZE", default=100)),
    )


class VectorStoreService:
    """Per-conversation collection management on top of a RAG client."""

    def __init__(
        self,
        helper_config: HelperConfig,
        rag_client: RAGClientInterface,
        config: VectorStoreConfig | None = None,
        cache: CollectionCache | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._rag = rag_client
        self._config = config or load_vector_store_config(helper_config)
        self._cache = cache or CollectionCache(
            ttl_seconds=self._config.cache_ttl_seconds,
            max_entries=self._config.cache_max_entries,
        )
        # one writer at a time per collection name
        self._locks: dict[str, asyncio.Lock] = {}
        self._last_indexed: dict[str, datetime] = {}
        self._first_seen: dict[str, datetime] = {}

    ##########################################
    ################ CONFIG ##################
    ##########################################

    def generate_collection_name(self, conversation_id: str) -> str:
        return generate_collection_name(conversation_id)

    def get_config(self) -> VectorStoreConfig:
        return self._config

    def update_config(self, **changes) -> VectorStoreConfig:
        """Update store defaults, e.g. update_config(default_vector_size=1024).

        Only newly created collections are affected.
        """
        self._config = self._config.model_copy(update=changes)
        self.logging.info("Vector store config updated: %s", changes)
        return self._config

    def _lock_for(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        return lock

    ##########################################
    ############## COLLECTIONS ###############
    ##########################################

    async def create_collection(self, conversation_id: str) -> VectorCollection:
        """Create the collection of a conversation, or return it if it already exists."""
        name = self.generate_collection_name(conversation_id)
        async with self._lock_for(name):
            existing = await self._get_collection(name, conversation_id)
            if existing is not None:
                if existing.vector_size == self._config.default_vector_size or existing.stats.points_count > 0:
                    self.logging.debug("Collection %s for conversation '%s' already exists.", name, conversation_id)
                    return existing
                # empty collection of an old vector size, safe to rebuild once confirmed by the store
                fresh = await self._rag.do_get_collection_info(name)
                if fresh is not None and fresh.points_count > 0:
                    self._cache.invalidate(name)
                    return self._to_collection(fresh, conversation_id)
                self.logging.info(
                    "Recreating empty collection %s with vector size %d (was %d).",
                    name, self._config.default_vector_size, existing.vector_size,
                )
                await self._rag.do_delete_collection(name)
                self._cache.invalidate(name)

            await self._rag.do_create_collection(
                collection=name,
                vector_size=self._config.default_vector_size,
                distance=self._config.default_distance_metric,
                index_params=self._config.default_index_params,
            )
            now = datetime.now(timezone.utc)
            self._first_seen[name] = now
            collection = VectorCollection(
                name=name,
                conversation_id=conversation_id,
                vector_size=self._config.default_vector_size,
                distance_metric=self._config.default_distance_metric,
                index_params=self._config.default_index_params,
                created_at=now,
                updated_at=now,
            )
            self._cache.put(collection)
            self.logging.info(
                "Created collection %s for conversation '%s' (size %d, %s).",
                name, conversation_id, collection.vector_size, collection.distance_metric,
            )
            return collection

    async def delete_collection(self, conversation_id: str) -> bool:
        """Delete the collection of a conversation. A missing collection is not an error.

        Returns:
            bool: True if a collection was deleted.
        """
        name = self.generate_collection_name(conversation_id)
        async with self._lock_for(name):
            deleted = await self._rag.do_delete_collection(name)
            self._cache.invalidate(name)
            self._last_indexed.pop(name, None)
            self._first_seen.pop(name, None)
        if deleted:
            self.logging.info("Deleted collection %s of conversation '%s'.", name, conversation_id)
        else:
            self.logging.debug("Collection %s of conversation '%s' did not exist.", name, conversation_id)
        return deleted

    async def get_collection(self, conversation_id: str) -> VectorCollection | None:
        name = self.generate_collection_name(conversation_id)
        return await self._get_collection(name, conversation_id)

    async def _get_collection(self, name: str, conversation_id: str | None = None) -> VectorCollection | None:
        cached = self._cache.get(name)
        if cached is not None:
            return cached
        info = await self._rag.do_get_collection_info(name)
        if info is None:
            return None
        collection = self._to_collection(info, conversation_id)
        self._cache.put(collection)
        return collection

    async def list_collections(self) -> list[VectorCollection]:
        """Return every conversation collection in the vector store."""
        names = [n for n in await self._rag.do_list_collections() if n.startswith(COLLECTION_PREFIX)]
        collections: list[VectorCollection] = []
        for name in names:
            info = await self._rag.do_get_collection_info(name)
            if info is None:
                # deleted between listing and lookup
                continue
            cached = self._cache.get(name)
            conversation_id = cached.conversation_id if cached else None
            if conversation_id is None and info.points_count > 0:
                conversation_id = await self._recover_conversation_id(name)
            collection = self._to_collection(info, conversation_id)
            self._cache.put(collection)
            collections.append(collection)
        return collections

    async def _recover_conversation_id(self, name: str) -> str | None:
        page = await self._rag.do_scroll(name, filters=[], with_payload=["conversation_id"], with_vector=False, limit=1)
        for point in page.result:
            conversation_id = (point.get("payload") or {}).get("conversation_id")
            if conversation_id:
                return conversation_id
        return None

    async def get_collection_stats(self, conversation_id: str) -> CollectionStats:
        """Return fresh statistics. A missing collection reports zero stats."""
        name = self.generate_collection_name(conversation_id)
        info = await self._rag.do_get_collection_info(name)
        if info is None:
            return CollectionStats()
        return self._to_stats(info)

    ##########################################
    ################# POINTS #################
    ##########################################

    async def add_chunks(self, conversation_id: str, chunks: list[Chunk]) -> int:
        """Upsert chunks into the conversation's collection and wait for persistence.

        Chunks without an embedding are stored with their payload only.

        Returns:
            int: Number of points written.

        Raises:
            DimensionMismatchError: If any embedding length differs from the collection's vector size.
            DependencyError: If the vector store rejects the upsert.
        """
        if not chunks:
            return 0
        collection = await self.get_collection(conversation_id)
        if collection is None:
            collection = await self.create_collection(conversation_id)

        for chunk in chunks:
            if chunk.embedding is not None and len(chunk.embedding) != collection.vector_size:
                raise DimensionMismatchError(collection.vector_size, len(chunk.embedding), collection.name)

        points = [
            self._rag.get_point(
                point_id=_make_point_id(chunk.id),
                vector=chunk.embedding,
                payload=VectorPoint.from_chunk(chunk).model_dump(),
            )
            for chunk in chunks
        ]

        batch_size = max(self._config.upsert_batch_size, 1)
        async with self._lock_for(collection.name):
            try:
                for batch_start in range(0, len(points), batch_size):
                    await self._rag.do_upsert_points(collection.name, points[batch_start: batch_start + batch_size])
            finally:
                # point counts changed, even when a later batch failed
                self._cache.invalidate(collection.name)
            self._last_indexed[collection.name] = datetime.now(timezone.utc)

        without_vector = sum(1 for chunk in chunks if chunk.embedding is None)
        self.logging.info(
            "Upserted %d points into %s (%d without embedding).", len(points), collection.name, without_vector
        )
        return len(points)

    async def query(self, rag_query: RAGQuery, query_embedding: list[float] | None) -> RAGResponse:
        """Run a similarity search in the conversation's collection.

        The embedding is computed by the caller. A missing embedding, a missing
        collection or an empty collection yields an empty, successful response.

        Raises:
            DimensionMismatchError: If the embedding length differs from the vector size of a populated collection.
        """
        started = time.perf_counter()
        name = self.generate_collection_name(rag_query.conversation_id)

        if not query_embedding:
            self.logging.warning(
                "Query for conversation '%s' has no embedding, returning no sources.", rag_query.conversation_id
            )
            return self._build_response([], started, self._config.default_distance_metric)

        collection = await self._get_collection(name, rag_query.conversation_id)
        if collection is None:
            self.logging.info("No collection for conversation '%s', returning no sources.", rag_query.conversation_id)
            return self._build_response([], started, self._config.default_distance_metric)

        if len(query_embedding) != collection.vector_size:
            # an empty collection of an older vector size holds nothing to compare against
            if await self._rag.do_count(name, []) == 0:
                self.logging.info(
                    "Collection %s is empty (vector size %d), returning no sources.", name, collection.vector_size
                )
                return self._build_response([], started, collection.distance_metric)
            raise DimensionMismatchError(collection.vector_size, len(query_embedding), collection.name)

        hits = await self._rag.do_search(
            collection=name,
            vector=query_embedding,
            filters=self._build_filters(rag_query),
            limit=rag_query.top_k,
            score_threshold=rag_query.similarity_threshold,
            index_params=collection.index_params,
        )
        sources = [
            DocumentSource(
                chunk_id=str(hit.payload.get("chunk_id") or hit.id),
                content=hit.payload.get("content", ""),
                relevance=hit.score,
                metadata=SourceMetadata(
                    source=hit.payload.get("source", "unknown"),
                    page_number=hit.payload.get("page_number", 1),
                    chunk_index=hit.payload.get("chunk_index", 0),
                ),
            )
            for hit in hits
        ]
        sources.sort(key=lambda s: s.relevance, reverse=True)
        response = self._build_response(sources, started, collection.distance_metric)
        self.logging.info(
            "Query in %s: %d sources (threshold %.2f, top_k %d).",
            name, len(sources), rag_query.similarity_threshold, rag_query.top_k,
        )
        return response

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _build_filters(self, rag_query: RAGQuery) -> list[dict]:
        filters = [self._rag.get_match_filter("conversation_id", rag_query.conversation_id)]
        extra = rag_query.filters
        if extra is not None:
            if extra.source:
                filters.append(self._rag.get_match_filter("source", extra.source))
            if extra.page_number is not None:
                filters.append(self._rag.get_match_filter("page_number", extra.page_number))
            for key, value in extra.additional.items():
                filters.append(self._rag.get_match_filter(key, value))
        return filters

    def _build_response(self, sources: list[DocumentSource], started: float, distance_metric: str) -> RAGResponse:
        average = sum(s.relevance for s in sources) / len(sources) if sources else 0.0
        return RAGResponse(
            sources=sources,
            confidence=sources[0].relevance if sources else 0.0,
            search_metadata=SearchMetadata(
                search_time=(time.perf_counter() - started) * 1000,
                chunks_found=len(sources),
                average_similarity=average,
                distance_metric=distance_metric,
            ),
        )

    def _to_stats(self, info: CollectionInfo) -> CollectionStats:
        return CollectionStats(
            points_count=info.points_count,
            size_bytes=info.points_count * info.vector_size * FLOAT32_BYTES,
            indexes_count=info.payload_indexes_count + (1 if info.index_type == "hnsw" else 0),
            indexing_status=_STATUS_MAP.get(info.status, "idle"),
            last_indexed_at=self._last_indexed.get(info.name),
        )

    def _to_collection(self, info: CollectionInfo, conversation_id: str | None) -> VectorCollection:
        now = datetime.now(timezone.utc)
        defaults = self._config.default_index_params
        return VectorCollection(
            name=info.name,
            conversation_id=conversation_id,
            vector_size=info.vector_size,
            distance_metric=info.distance,
            index_params=IndexParams(
                index_type=info.index_type,
                hnsw_config=HnswConfig(
                    m=info.hnsw_m,
                    ef_construct=info.hnsw_ef_construct,
                    ef_search=defaults.hnsw_config.ef_search,
                    full_scan_threshold=info.full_scan_threshold,
                ),
                flat_config=defaults.flat_config,
            ),
            stats=self._to_stats(info),
            created_at=self._first_seen.setdefault(info.name, now),
            updated_at=now,
        )
