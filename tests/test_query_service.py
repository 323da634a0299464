"""Tests for QueryService against the in-memory Qdrant fake."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.embedding_context.EmbeddingContextResolver import EmbeddingContextResolver
from services.query.QueryService import QueryService
from services.vector_store.VectorStoreService import VectorStoreService, generate_collection_name
from shared.exceptions.errors import DependencyError, DimensionMismatchError, ValidationError
from shared.models.chunk import Chunk, ChunkMetadata
from shared.models.collection import VectorCollection, VectorStoreConfig
from shared.models.rag import QueryFilters


def _embed_client(vector=None, dims: int = 3) -> MagicMock:
    client = MagicMock()
    client.get_current_embedding_model.return_value = "embeddinggemma"
    client.validate_embedding_model = AsyncMock(return_value=True)
    client.get_embedding_dimensions = AsyncMock(return_value=dims)
    client.generate_embedding = AsyncMock(return_value=vector or [1.0, 0.0, 0.0])
    return client


def _chunk(conversation_id: str, index: int, embedding: list[float], source: str = "doc.pdf") -> Chunk:
    now = datetime.now(timezone.utc)
    return Chunk(
        id=f"{conversation_id}_chunk_{index}_1",
        content=f"content {index}",
        metadata=ChunkMetadata(source=source, chunk_index=index, conversation_id=conversation_id),
        embedding=embedding,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def store(helper_config, rag_client) -> VectorStoreService:
    return VectorStoreService(helper_config, rag_client, config=VectorStoreConfig(default_vector_size=3))


def _query_service(helper_config, store, embed_client=None) -> QueryService:
    embed_client = embed_client or _embed_client()
    resolver = EmbeddingContextResolver(helper_config, embed_client, store)
    return QueryService(helper_config, embed_client, store, resolver)


class TestQueryDocuments:
    @pytest.mark.asyncio
    async def test_returns_ranked_sources(self, helper_config, store):
        """
        Arrange: A conversation with two stored chunks
        Act: Query with a vector close to the first chunk
        Assert: Both sources are returned, best match first
        """
        # Arrange
        await store.add_chunks("conv-1", [_chunk("conv-1", 0, [1.0, 0.0, 0.0]), _chunk("conv-1", 1, [0.6, 0.8, 0.0])])
        service = _query_service(helper_config, store)

        # Act
        response = await service.query_documents("what is in chunk zero?", "conv-1", top_k=5, similarity_threshold=0.5)

        # Assert
        assert [s.content for s in response.sources] == ["content 0", "content 1"]
        assert response.confidence == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_empty_collection_gives_empty_response(self, helper_config, store):
        await store.create_collection("conv-1")
        service = _query_service(helper_config, store)

        response = await service.query_documents("anything", "conv-1")

        assert response.sources == []
        assert response.search_metadata.chunks_found == 0

    @pytest.mark.asyncio
    async def test_unknown_conversation_gives_empty_response(self, helper_config, store):
        service = _query_service(helper_config, store)

        response = await service.query_documents("anything", "nobody")

        assert response.sources == []

    @pytest.mark.asyncio
    async def test_embedding_failure_gives_empty_response(self, helper_config, store):
        await store.add_chunks("conv-1", [_chunk("conv-1", 0, [1.0, 0.0, 0.0])])
        embed = _embed_client()
        embed.generate_embedding = AsyncMock(side_effect=DependencyError("engine down"))
        service = _query_service(helper_config, store, embed)

        response = await service.query_documents("question", "conv-1")

        assert response.sources == []

    @pytest.mark.asyncio
    async def test_filters_are_applied(self, helper_config, store):
        await store.add_chunks("conv-1", [
            _chunk("conv-1", 0, [1.0, 0.0, 0.0], source="a.pdf"),
            _chunk("conv-1", 1, [1.0, 0.0, 0.0], source="b.pdf"),
        ])
        service = _query_service(helper_config, store)

        response = await service.query_documents("q", "conv-1", filters=QueryFilters(source="b.pdf"))

        assert [s.metadata.source for s in response.sources] == ["b.pdf"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query,conversation_id", [("", "conv-1"), ("   ", "conv-1"), ("q", "")])
    async def test_empty_inputs_are_rejected(self, helper_config, store, query, conversation_id):
        service = _query_service(helper_config, store)

        with pytest.raises(ValidationError):
            await service.query_documents(query, conversation_id)

    @pytest.mark.asyncio
    async def test_incompatible_model_is_fatal(self, helper_config, store):
        await store.add_chunks("conv-1", [_chunk("conv-1", 0, [1.0, 0.0, 0.0])])
        service = _query_service(helper_config, store, _embed_client(dims=1024))

        with pytest.raises(DimensionMismatchError):
            await service.query_documents("q", "conv-1", embedding_model="mxbai-embed-large")

    @pytest.mark.asyncio
    async def test_empty_collection_of_old_vector_size_gives_empty_response(self, helper_config, store, fake_qdrant):
        """
        Arrange: An empty 384-dim collection and a 768-dim embedding model
        Act: Query the conversation
        Assert: No sources and no error, the search is never sent
        """
        # Arrange
        fake_qdrant.add_collection(generate_collection_name("conv-empty"), size=384)
        service = _query_service(helper_config, store, _embed_client(vector=[0.1] * 768, dims=768))

        # Act
        response = await service.query_documents("hello", "conv-empty", 5, 0.9)

        # Assert
        assert response.sources == []
        assert not any(path.endswith("/points/search") for _, path in fake_qdrant.requests)


class TestCollectionOperations:
    @pytest.mark.asyncio
    async def test_delete_collection(self, helper_config, store, fake_qdrant):
        await store.add_chunks("conv-1", [_chunk("conv-1", 0, [1.0, 0.0, 0.0])])
        service = _query_service(helper_config, store)

        result = await service.delete_collection("conv-1")

        assert result.success is True
        assert result.deleted_id == "conv-1"
        assert fake_qdrant.collections == {}

    @pytest.mark.asyncio
    async def test_delete_missing_collection_succeeds(self, helper_config, store):
        service = _query_service(helper_config, store)

        result = await service.delete_collection("nobody")

        assert result.success is True

    @pytest.mark.asyncio
    async def test_delete_failure_is_reported(self, helper_config):
        store = MagicMock()
        store.delete_collection = AsyncMock(side_effect=DependencyError("qdrant down"))
        service = QueryService(helper_config, _embed_client(), store, MagicMock())

        result = await service.delete_collection("conv-1")

        assert result.success is False
        assert result.error == "qdrant down"

    @pytest.mark.asyncio
    async def test_stats_and_listing(self, helper_config, store):
        await store.add_chunks("conv-1", [_chunk("conv-1", i, [1.0, 0.0, 0.0]) for i in range(3)])
        service = _query_service(helper_config, store)

        stats = await service.get_collection_stats("conv-1")
        collections = await service.list_collections()

        assert stats.points_count == 3
        assert all(isinstance(c, VectorCollection) for c in collections)
        assert [c.conversation_id for c in collections] == ["conv-1"]
