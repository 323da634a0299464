"""Unit tests for embedding model and vector size resolution."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.embedding_context.EmbeddingContextResolver import EmbeddingContextResolver
from services.vector_store.VectorStoreService import VectorStoreService
from shared.exceptions.errors import DimensionMismatchError, ModelNotConfiguredError, ModelUnavailableError
from shared.models.chunk import Chunk, ChunkMetadata
from shared.models.collection import CollectionStats, VectorCollection, VectorStoreConfig


def _embed_client(model: str = "embeddinggemma", installed: bool = True, dims: int = 768) -> MagicMock:
    client = MagicMock()
    client.get_current_embedding_model.return_value = model
    client.validate_embedding_model = AsyncMock(return_value=installed)
    client.get_embedding_dimensions = AsyncMock(return_value=dims)
    return client


def _store(default_size: int = 768, collections: list[VectorCollection] | None = None) -> MagicMock:
    store = MagicMock()
    store.get_config.return_value = VectorStoreConfig(default_vector_size=default_size)
    store.list_collections = AsyncMock(return_value=collections or [])
    return store


def _collection(size: int, points: int) -> VectorCollection:
    return VectorCollection(name="chat_x", conversation_id="x", vector_size=size, stats=CollectionStats(points_count=points))


class TestEmbeddingContextResolver:
    @pytest.mark.asyncio
    async def test_resolves_configured_model(self, helper_config):
        embed = _embed_client()
        resolver = EmbeddingContextResolver(helper_config, embed, _store())

        context = await resolver.resolve()

        assert context.model_name == "embeddinggemma"
        assert context.vector_size == 768
        embed.update_config.assert_called_once_with(default_model="embeddinggemma")

    @pytest.mark.asyncio
    async def test_preferred_model_wins(self, helper_config):
        embed = _embed_client(dims=1024)
        store = _store(default_size=1024)
        resolver = EmbeddingContextResolver(helper_config, embed, store)

        context = await resolver.resolve("mxbai-embed-large")

        assert context.model_name == "mxbai-embed-large"
        embed.validate_embedding_model.assert_awaited_once_with("mxbai-embed-large")

    @pytest.mark.asyncio
    async def test_no_model_configured(self, helper_config):
        resolver = EmbeddingContextResolver(helper_config, _embed_client(model=""), _store())

        with pytest.raises(ModelNotConfiguredError):
            await resolver.resolve()

    @pytest.mark.asyncio
    async def test_model_not_installed(self, helper_config):
        resolver = EmbeddingContextResolver(helper_config, _embed_client(installed=False), _store())

        with pytest.raises(ModelUnavailableError):
            await resolver.resolve()

    @pytest.mark.asyncio
    async def test_unknown_vector_size(self, helper_config):
        resolver = EmbeddingContextResolver(helper_config, _embed_client(dims=0), _store())

        with pytest.raises(ModelUnavailableError):
            await resolver.resolve()

    @pytest.mark.asyncio
    async def test_switch_with_populated_conflicting_collection_is_refused(self, helper_config):
        """
        Arrange: The store holds 768-dim vectors in a populated collection
        Act: Resolve a 1024-dim model
        Assert: DimensionMismatchError, and neither store nor client config changes
        """
        # Arrange
        embed = _embed_client(model="mxbai-embed-large", dims=1024)
        store = _store(default_size=768, collections=[_collection(768, 10)])
        resolver = EmbeddingContextResolver(helper_config, embed, store)

        # Act / Assert
        with pytest.raises(DimensionMismatchError):
            await resolver.resolve()
        store.update_config.assert_not_called()
        embed.update_config.assert_not_called()

    @pytest.mark.asyncio
    async def test_switch_with_only_empty_collections_updates_store(self, helper_config):
        embed = _embed_client(model="all-minilm", dims=384)
        store = _store(default_size=768, collections=[_collection(768, 0)])
        resolver = EmbeddingContextResolver(helper_config, embed, store)

        context = await resolver.resolve()

        assert context.vector_size == 384
        store.update_config.assert_called_once_with(default_vector_size=384)


class TestResolveAgainstStore:
    @pytest.mark.asyncio
    async def test_model_switch_succeeds_after_conflicting_collection_is_deleted(self, helper_config, rag_client):
        """
        Arrange: A 768-dim model whose vectors populate one conversation's collection
        Act: Resolve a 1024-dim model before and after deleting that collection
        Assert: The first switch is refused, the second one succeeds and moves the store default
        """
        # Arrange
        dims = {"embeddinggemma": 768, "mxbai-embed-large": 1024}
        embed = _embed_client()
        embed.get_embedding_dimensions = AsyncMock(side_effect=lambda model: dims[model])
        store = VectorStoreService(helper_config, rag_client, config=VectorStoreConfig(default_vector_size=768))
        resolver = EmbeddingContextResolver(helper_config, embed, store)

        context = await resolver.resolve("embeddinggemma")
        now = datetime.now(timezone.utc)
        await store.add_chunks("conv-1", [
            Chunk(
                id="conv-1_chunk_0_1",
                content="stored with the first model",
                metadata=ChunkMetadata(source="a.txt", chunk_index=0, conversation_id="conv-1"),
                embedding=[0.1] * context.vector_size,
                created_at=now,
                updated_at=now,
            )
        ])

        # Act / Assert
        with pytest.raises(DimensionMismatchError):
            await resolver.resolve("mxbai-embed-large")
        assert store.get_config().default_vector_size == 768

        await store.delete_collection("conv-1")
        switched = await resolver.resolve("mxbai-embed-large")

        assert switched.vector_size == 1024
        assert store.get_config().default_vector_size == 1024
