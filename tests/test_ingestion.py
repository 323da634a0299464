"""Tests for the ingestion pipeline, wired to the in-memory Qdrant fake and a mocked embedding engine."""

import asyncio
import base64
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_config
from services.document_processing.readers.DocumentReaderManager import DocumentReaderManager
from services.embedding_context.EmbeddingContextResolver import EmbeddingContextResolver
from services.ingestion.IngestionService import IngestionService
from services.vector_store.VectorStoreService import VectorStoreService, generate_collection_name
from shared.exceptions.errors import DependencyError
from shared.models.collection import VectorStoreConfig
from shared.models.rag import ProcessDocumentOptions


def _embed_client(embed=None, installed: bool = True) -> MagicMock:
    async def default_embed(text, model=None, timeout=None):
        return [1.0, float(len(text) % 7), 0.5]

    client = MagicMock()
    client.get_current_embedding_model.return_value = "embeddinggemma"
    client.validate_embedding_model = AsyncMock(return_value=installed)
    client.get_embedding_dimensions = AsyncMock(return_value=3)
    client.generate_embedding = AsyncMock(side_effect=embed or default_embed)
    return client


def _service(rag_client, embed_client=None, **overrides) -> IngestionService:
    config = make_config(**overrides)
    store = VectorStoreService(config, rag_client, config=VectorStoreConfig(default_vector_size=3))
    embed_client = embed_client or _embed_client()
    resolver = EmbeddingContextResolver(config, embed_client, store)
    return IngestionService(config, embed_client, store, resolver)


def _points(fake_qdrant, conversation_id: str) -> list[dict]:
    collection = fake_qdrant.collections.get(generate_collection_name(conversation_id))
    return list(collection["points"].values()) if collection else []


FIVE_CHUNK_TEXT = "aaaa bbbb cccc dddd eeee ffff gggg hhhh iiii jjjj"
FIVE_CHUNK_OPTIONS = ProcessDocumentOptions(chunk_size=9, chunk_overlap=0)


class TestProcessDocument:
    @pytest.mark.asyncio
    async def test_text_file_is_chunked_embedded_and_stored(self, tmp_path, rag_client, fake_qdrant):
        """
        Arrange: A 1500 character text file cut into 500 character pages
        Act: Process it with the default chunk size and overlap
        Assert: Three overlapping chunks with embeddings are stored in the conversation's collection
        """
        # Arrange
        path = tmp_path / "doc.txt"
        path.write_text("abc  " * 300, encoding="utf-8")
        service = _service(rag_client, DOC_TEXT_PAGE_SIZE=500)

        # Act
        result = await service.process_document(str(path), "conv-1")

        # Assert
        assert result.success is True
        assert result.error is None
        assert result.stage == "completed"
        assert result.total_chunks == 3
        assert [len(c.content) for c in result.chunks] == [511, 510, 278]
        assert result.chunks[1].content.startswith(result.chunks[0].content[-50:])
        assert [c.metadata.chunk_index for c in result.chunks] == [0, 1, 2]
        assert all(c.metadata.source == "doc.txt" for c in result.chunks)
        assert all(c.embedding is not None for c in result.chunks)
        assert result.partial_failure is None
        assert len(_points(fake_qdrant, "conv-1")) == 3

    @pytest.mark.asyncio
    async def test_unsupported_extension_fails_validation(self, tmp_path, rag_client, fake_qdrant):
        path = tmp_path / "report.exe"
        path.write_bytes(b"MZ\x90\x00")
        service = _service(rag_client)

        result = await service.process_document(str(path), "conv-1")

        assert result.success is False
        assert result.error_type == "validation"
        assert result.stage == "validating"
        assert "report.exe" in result.error
        assert fake_qdrant.collections == {}

    @pytest.mark.asyncio
    async def test_unsupported_extension_is_rejected_before_stat(self, rag_client):
        service = _service(rag_client)

        result = await service.process_document("/does/not/exist/report.exe", "conv-1")

        assert result.error_type == "validation"
        assert "Unsupported" in result.error

    @pytest.mark.asyncio
    async def test_missing_file_fails_validation(self, tmp_path, rag_client):
        service = _service(rag_client)

        result = await service.process_document(str(tmp_path / "missing.txt"), "conv-1")

        assert result.success is False
        assert result.error_type == "validation"
        assert "not found" in result.error

    @pytest.mark.asyncio
    @pytest.mark.parametrize("file_path,conversation_id", [("", "conv-1"), ("a.txt", ""), ("a.txt", "   ")])
    async def test_required_arguments(self, rag_client, file_path, conversation_id):
        service = _service(rag_client)

        result = await service.process_document(file_path, conversation_id)

        assert result.success is False
        assert result.error_type == "validation"

    @pytest.mark.asyncio
    async def test_file_over_size_limit(self, tmp_path, rag_client):
        path = tmp_path / "big.txt"
        path.write_text("x" * 100)
        service = _service(rag_client, DOC_MAX_FILE_SIZE=50)

        result = await service.process_document(str(path), "conv-1")

        assert result.error_type == "validation"
        assert "too large" in result.error.lower()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("options", [
        ProcessDocumentOptions(chunk_size=10, chunk_overlap=10),
        ProcessDocumentOptions(chunk_size=0),
        ProcessDocumentOptions(chunk_size=0, chunk_overlap=0),
    ])
    async def test_invalid_chunk_options(self, tmp_path, rag_client, options):
        path = tmp_path / "a.txt"
        path.write_text("text")
        service = _service(rag_client)

        result = await service.process_document(str(path), "conv-1", options)

        assert result.error_type == "validation"
        assert result.stage == "validating"

    @pytest.mark.asyncio
    async def test_one_failed_embedding_degrades_to_partial_failure(self, tmp_path, rag_client, fake_qdrant):
        """
        Arrange: A document that yields five chunks and an engine that fails for the third
        Act: Process the document
        Assert: Success with five stored chunks, the failed one without vector and reported
        """
        # Arrange
        async def flaky_embed(text, model=None, timeout=None):
            if "eeee" in text:
                raise DependencyError("engine hiccup", engine="ollama")
            return [0.1, 0.2, 0.3]

        path = tmp_path / "five.txt"
        path.write_text(FIVE_CHUNK_TEXT)
        service = _service(rag_client, _embed_client(flaky_embed))

        # Act
        result = await service.process_document(str(path), "conv-1", FIVE_CHUNK_OPTIONS)

        # Assert
        assert result.success is True
        assert result.total_chunks == 5
        assert result.partial_failure.failed_chunk_indexes == [2]
        assert "engine hiccup" in result.partial_failure.messages[0]
        assert result.chunks[2].embedding is None
        assert sum(c.embedding is not None for c in result.chunks) == 4
        points = _points(fake_qdrant, "conv-1")
        assert len(points) == 5
        assert sum(p["vector"] is None for p in points) == 1

    @pytest.mark.asyncio
    async def test_embedding_timeout_degrades_chunk(self, tmp_path, rag_client):
        async def slow_embed(text, model=None, timeout=None):
            if "aaaa" in text:
                await asyncio.sleep(5)
            return [0.1, 0.2, 0.3]

        path = tmp_path / "five.txt"
        path.write_text(FIVE_CHUNK_TEXT)
        service = _service(rag_client, _embed_client(slow_embed), EMBED_TIMEOUT=0.05)

        result = await service.process_document(str(path), "conv-1", FIVE_CHUNK_OPTIONS)

        assert result.success is True
        assert result.partial_failure.failed_chunk_indexes == [0]
        assert "timed out" in result.partial_failure.messages[0]

    @pytest.mark.asyncio
    async def test_embedding_concurrency_is_bounded(self, tmp_path, rag_client):
        running = 0
        peak = 0

        async def tracking_embed(text, model=None, timeout=None):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return [0.1, 0.2, 0.3]

        path = tmp_path / "five.txt"
        path.write_text(FIVE_CHUNK_TEXT)
        service = _service(rag_client, _embed_client(tracking_embed), EMBED_CONCURRENCY=2)

        result = await service.process_document(str(path), "conv-1", FIVE_CHUNK_OPTIONS)

        assert result.success is True
        assert peak == 2

    @pytest.mark.asyncio
    async def test_model_not_installed_fails_in_embedding_stage(self, tmp_path, rag_client, fake_qdrant):
        path = tmp_path / "a.txt"
        path.write_text("some text to embed")
        service = _service(rag_client, _embed_client(installed=False))

        result = await service.process_document(str(path), "conv-1")

        assert result.success is False
        assert result.error_type == "dependency"
        assert result.stage == "embedding"
        assert fake_qdrant.collections == {}

    @pytest.mark.asyncio
    async def test_vector_store_failure_is_reported(self, tmp_path, rag_client, fake_qdrant):
        path = tmp_path / "a.txt"
        path.write_text("some text to embed")
        fake_qdrant.fail_upserts = True
        service = _service(rag_client)

        result = await service.process_document(str(path), "conv-1")

        assert result.success is False
        assert result.error_type == "dependency"
        assert result.stage == "upserting"

    @pytest.mark.asyncio
    async def test_document_without_text_succeeds_with_no_chunks(self, tmp_path, rag_client, fake_qdrant):
        path = tmp_path / "blank.txt"
        path.write_text("   \n\n\t  ")
        service = _service(rag_client)

        result = await service.process_document(str(path), "conv-1")

        assert result.success is True
        assert result.total_chunks == 0
        assert fake_qdrant.collections == {}

    @pytest.mark.asyncio
    async def test_same_input_gives_same_chunks(self, tmp_path, rag_client):
        path = tmp_path / "doc.md"
        path.write_text("# Title\n\n" + "lorem ipsum dolor sit amet " * 60)
        service = _service(rag_client)

        first = await service.process_document(str(path), "conv-1")
        second = await service.process_document(str(path), "conv-2")

        assert [c.content for c in first.chunks] == [c.content for c in second.chunks]
        assert [c.metadata.page_number for c in first.chunks] == [c.metadata.page_number for c in second.chunks]

    @pytest.mark.asyncio
    async def test_progress_walks_through_all_stages(self, tmp_path, rag_client):
        path = tmp_path / "a.txt"
        path.write_text("progress is advisory only")
        service = _service(rag_client)
        events = []

        await service.process_document(str(path), "conv-1", on_progress=events.append)

        stages = []
        for event in events:
            if not stages or stages[-1] != event.stage:
                stages.append(event.stage)
        assert stages == ["validating", "reading", "parsing", "chunking", "embedding", "upserting", "completed"]

    @pytest.mark.asyncio
    async def test_failure_emits_failed_event(self, rag_client):
        service = _service(rag_client)
        events = []

        await service.process_document("report.exe", "conv-1", on_progress=events.append)

        assert events[-1].stage == "failed"
        assert "report.exe" in events[-1].message


class TestReaderInitialisation:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_initialisation(self, rag_client):
        config = make_config()
        calls = []

        def factory():
            calls.append(1)
            return DocumentReaderManager(config)

        service = _service(rag_client)
        service._reader_factory = factory

        first, second = await asyncio.gather(service.get_readers(), service.get_readers())

        assert first is second
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_failed_initialisation_is_retried(self, rag_client):
        config = make_config()
        attempts = []

        def factory():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("import failed")
            return DocumentReaderManager(config)

        service = _service(rag_client)
        service._reader_factory = factory

        with pytest.raises(RuntimeError):
            await service.get_readers()
        readers = await service.get_readers()

        assert readers.is_supported("a.pdf")
        assert len(attempts) == 2


class TestUploadAndProcess:
    @pytest.mark.asyncio
    async def test_upload_is_processed_and_temp_file_removed(self, tmp_path, rag_client, fake_qdrant):
        """
        Arrange: A base64 encoded Markdown upload and an empty scratch directory
        Act: Upload and process it
        Assert: Chunks are stored with the upload name as source and the scratch directory is empty again
        """
        # Arrange
        scratch = tmp_path / "scratch"
        service = _service(rag_client, DOC_SCRATCH_DIR=str(scratch))
        data = base64.b64encode(b"# Notes\n\nUploaded markdown content.").decode("ascii")

        # Act
        result = await service.upload_and_process_document("notes.md", data, "conv-1")

        # Assert
        assert result.success is True
        assert result.chunks[0].metadata.source == "notes.md"
        assert len(_points(fake_qdrant, "conv-1")) == 1
        assert list(scratch.iterdir()) == []

    @pytest.mark.asyncio
    async def test_temp_file_is_removed_on_failure(self, tmp_path, rag_client):
        scratch = tmp_path / "scratch"
        service = _service(rag_client, _embed_client(installed=False), DOC_SCRATCH_DIR=str(scratch))
        data = base64.b64encode(b"text").decode("ascii")

        result = await service.upload_and_process_document("a.txt", data, "conv-1")

        assert result.success is False
        assert list(scratch.iterdir()) == []

    @pytest.mark.asyncio
    async def test_temp_file_is_removed_on_cancellation(self, tmp_path, rag_client):
        async def hanging_embed(text, model=None, timeout=None):
            await asyncio.sleep(60)

        scratch = tmp_path / "scratch"
        service = _service(rag_client, _embed_client(hanging_embed), DOC_SCRATCH_DIR=str(scratch), EMBED_TIMEOUT=120)
        data = base64.b64encode(b"cancel me please").decode("ascii")

        task = asyncio.create_task(service.upload_and_process_document("a.txt", data, "conv-1"))
        for _ in range(200):
            await asyncio.sleep(0.01)
            if service._embed.generate_embedding.await_count:
                break
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert list(scratch.iterdir()) == []

    @pytest.mark.asyncio
    async def test_unsupported_upload_is_rejected_before_writing(self, tmp_path, rag_client):
        scratch = tmp_path / "scratch"
        service = _service(rag_client, DOC_SCRATCH_DIR=str(scratch))
        data = base64.b64encode(b"MZ").decode("ascii")

        result = await service.upload_and_process_document("report.exe", data, "conv-1")

        assert result.success is False
        assert result.error_type == "validation"
        assert not scratch.exists()

    @pytest.mark.asyncio
    async def test_invalid_base64_is_rejected(self, tmp_path, rag_client):
        service = _service(rag_client, DOC_SCRATCH_DIR=str(tmp_path))

        result = await service.upload_and_process_document("a.txt", "not base64!!", "conv-1")

        assert result.success is False
        assert result.error_type == "validation"
        assert "base64" in result.error

    @pytest.mark.asyncio
    async def test_path_components_in_file_name_are_dropped(self, tmp_path, rag_client):
        scratch = tmp_path / "scratch"
        service = _service(rag_client, DOC_SCRATCH_DIR=str(scratch))
        data = base64.b64encode(b"content").decode("ascii")

        result = await service.upload_and_process_document("../../etc/evil.txt", data, "conv-1")

        assert result.success is True
        assert result.chunks[0].metadata.source == "evil.txt"
        assert not (tmp_path / "etc").exists()
