"""Ingestion service.

Runs one document through validate -> read -> parse -> chunk -> embed -> upsert
and reports the outcome as a structured result. Chunks whose embedding fails
are stored without a vector instead of aborting the document.
"""

import asyncio
import base64
import binascii
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Callable

from services.document_processing.chunker import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, build_chunks, validate_chunk_options
from services.document_processing.progress import notify_progress
from services.document_processing.readers.DocumentReaderInterface import get_extension
from services.document_processing.readers.DocumentReaderManager import DocumentReaderManager
from services.document_processing.text_utils import format_file_size
from services.embedding_context.EmbeddingContextResolver import EmbeddingContextResolver
from services.vector_store.VectorStoreService import VectorStoreService
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.exceptions.errors import (
    FileTooLargeError,
    RAGBridgeError,
    UnsupportedFormatError,
    ValidationError,
)
from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import Chunk
from shared.models.document import ProgressCallback, ProgressEvent, ProgressStage
from shared.models.rag import EmbeddingContext, PartialFailure, ProcessDocumentOptions, ProcessDocumentResult

UPLOAD_EXTENSIONS = ("pdf", "txt", "md")
DEFAULT_EMBED_CONCURRENCY = 5
DEFAULT_EMBED_TIMEOUT = 30.0

_STAGE_PERCENT: dict[str, float] = {
    "validating": 0.0,
    "reading": 10.0,
    "parsing": 20.0,
    "chunking": 40.0,
    "embedding": 50.0,
    "upserting": 90.0,
    "completed": 100.0,
}


class IngestionService:
    """Orchestrates document ingestion for one conversation at a time per call."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        vector_store: VectorStoreService,
        resolver: EmbeddingContextResolver,
        reader_factory: Callable[[], DocumentReaderManager] | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed = embed_client
        self._store = vector_store
        self._resolver = resolver
        self._reader_factory = reader_factory or (lambda: DocumentReaderManager(helper_config=helper_config))

        self.default_chunk_size = int(helper_config.get_number_val("DOC_CHUNK_SIZE", default=DEFAULT_CHUNK_SIZE))
        self.default_chunk_overlap = int(helper_config.get_number_val("DOC_CHUNK_OVERLAP", default=DEFAULT_CHUNK_OVERLAP))
        self.embed_concurrency = max(int(helper_config.get_number_val("EMBED_CONCURRENCY", default=DEFAULT_EMBED_CONCURRENCY)), 1)
        self.embed_timeout = float(helper_config.get_number_val("EMBED_TIMEOUT", default=DEFAULT_EMBED_TIMEOUT))
        self.scratch_dir = Path(helper_config.get_string_val("DOC_SCRATCH_DIR", default=tempfile.gettempdir()))

        # lazily built reader registry, shared by concurrent first callers
        self._readers: DocumentReaderManager | None = None
        self._readers_init: asyncio.Future | None = None

    ##########################################
    ############ READER REGISTRY #############
    ##########################################

    async def get_readers(self) -> DocumentReaderManager:
        """Return the reader registry, building it on first use.

        Callers arriving while the registry is being built wait for that
        build. A failed build is retried by the next caller.
        """
        if self._readers is not None:
            return self._readers
        if self._readers_init is None:
            self.logging.debug("Initialising document readers.")
            self._readers_init = asyncio.ensure_future(asyncio.to_thread(self._reader_factory))
        init = self._readers_init
        try:
            # shield: a cancelled caller must not cancel the shared build
            readers = await asyncio.shield(init)
        except Exception:
            if self._readers_init is init:
                self._readers_init = None
            raise
        self._readers = readers
        return readers

    ##########################################
    ################ INGESTION ###############
    ##########################################

    async def process_document(
        self,
        file_path: str,
        conversation_id: str,
        options: ProcessDocumentOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ProcessDocumentResult:
        """Ingest a file from disk into the conversation's collection.

        Args:
            file_path (str): Path of a PDF, TXT or MD file.
            conversation_id (str): Conversation that owns the document.
            options (ProcessDocumentOptions | None): Chunking, model and source overrides.
            on_progress (ProgressCallback | None): Optional advisory progress consumer.

        Returns:
            ProcessDocumentResult: success flag, chunks and the first error if any.
        """
        options = options or ProcessDocumentOptions()
        stage: ProgressStage = "validating"

        def enter(next_stage: ProgressStage) -> None:
            nonlocal stage
            stage = next_stage
            self.logging.debug("Ingestion of '%s' for '%s': %s", file_path, conversation_id, next_stage)
            notify_progress(on_progress, ProgressEvent(stage=next_stage, percent=_STAGE_PERCENT[next_stage]), self.logging)

        started = time.perf_counter()
        try:
            enter("validating")
            if not file_path or not file_path.strip():
                raise ValidationError("File path is required", field="file_path")
            if not conversation_id or not conversation_id.strip():
                raise ValidationError("Conversation ID is required", field="conversation_id")
            chunk_size = options.chunk_size if options.chunk_size is not None else self.default_chunk_size
            chunk_overlap = options.chunk_overlap if options.chunk_overlap is not None else self.default_chunk_overlap
            validate_chunk_options(chunk_size, chunk_overlap)

            readers = await self.get_readers()
            reader = readers.get_reader(file_path)
            size = await asyncio.to_thread(self._stat_size, file_path)
            if size > reader.max_file_size:
                raise FileTooLargeError(size, reader.max_file_size, format_file_size(size), format_file_size(reader.max_file_size))

            enter("reading")
            buffer = await asyncio.to_thread(Path(file_path).read_bytes)

            enter("parsing")
            read_result = await reader.read(buffer, file_name=os.path.basename(file_path), on_progress=on_progress)

            enter("chunking")
            source = options.source or os.path.basename(file_path)
            chunks = build_chunks(
                read_result.pages,
                conversation_id=conversation_id,
                source=source,
                chunk_size=chunk_size,
                chunk_overlap=chunk_overlap,
                on_progress=on_progress,
            )
            if not chunks:
                self.logging.warning("Document '%s' contains no text, nothing to ingest.", source)
                enter("completed")
                return ProcessDocumentResult(success=True, chunks=[], total_chunks=0, stage="completed")

            enter("embedding")
            context = await self._resolver.resolve(options.embedding_model)
            partial = await self._embed_chunks(chunks, context, on_progress)

            enter("upserting")
            await self._store.create_collection(conversation_id)
            await self._store.add_chunks(conversation_id, chunks)

            enter("completed")
        except MemoryError:
            raise
        except RAGBridgeError as e:
            return self._failed(stage, e.message, e.category, file_path, conversation_id, on_progress)
        except FileNotFoundError:
            return self._failed(stage, f"File not found: {file_path}", "validation", file_path, conversation_id, on_progress)
        except OSError as e:
            return self._failed(stage, f"Cannot read file {file_path}: {e}", "validation", file_path, conversation_id, on_progress)
        except Exception as e:
            self.logging.exception("Unexpected error while ingesting '%s'", file_path)
            return self._failed(stage, str(e) or type(e).__name__, "internal", file_path, conversation_id, on_progress)

        self.logging.info(
            "Ingested '%s' into conversation '%s': %d chunks (%d without embedding) in %.2fs.",
            source, conversation_id, len(chunks), len(partial.failed_chunk_indexes), time.perf_counter() - started,
        )
        return ProcessDocumentResult(
            success=True,
            chunks=chunks,
            total_chunks=len(chunks),
            stage="completed",
            partial_failure=partial if partial.failed_chunk_indexes else None,
        )

    async def upload_and_process_document(
        self,
        file_name: str,
        file_data: str,
        conversation_id: str,
        options: ProcessDocumentOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ProcessDocumentResult:
        """Ingest a base64 encoded upload.

        The payload is written to the scratch directory as
        rag_{conversation}_{epoch_ms}_{file_name} and removed again on every
        exit path, including cancellation.
        """
        options = options or ProcessDocumentOptions()
        try:
            if not file_name or not file_name.strip():
                raise ValidationError("File name is required", field="file_name")
            if not file_data:
                raise ValidationError("File data is required", field="file_data")
            if not conversation_id or not conversation_id.strip():
                raise ValidationError("Conversation ID is required", field="conversation_id")
            if get_extension(file_name) not in UPLOAD_EXTENSIONS:
                raise UnsupportedFormatError(file_name, list(UPLOAD_EXTENSIONS))
            try:
                data = base64.b64decode(file_data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValidationError("File data is not valid base64", field="file_data") from e
        except RAGBridgeError as e:
            return self._failed("validating", e.message, e.category, file_name, conversation_id, on_progress)

        safe_name = os.path.basename(file_name.replace("\\", "/"))
        temp_path = self.scratch_dir / f"rag_{_safe_token(conversation_id)}_{int(time.time() * 1000)}_{safe_name}"
        try:
            await asyncio.to_thread(self._write_temp_file, temp_path, data)
            return await self.process_document(
                str(temp_path),
                conversation_id,
                options.model_copy(update={"source": options.source or safe_name}),
                on_progress,
            )
        except OSError as e:
            return self._failed("validating", f"Cannot write upload to scratch directory: {e}", "dependency", file_name, conversation_id, on_progress)
        finally:
            self._remove_temp_file(temp_path)

    ##########################################
    ################ EMBEDDING ###############
    ##########################################

    async def _embed_chunks(self, chunks: list[Chunk], context: EmbeddingContext, on_progress: ProgressCallback | None) -> PartialFailure:
        """Embed all chunks concurrently and attach the vectors in place.

        A failing or timed-out chunk keeps embedding=None and is reported in
        the returned PartialFailure.
        """
        sem = asyncio.Semaphore(self.embed_concurrency)
        done = 0

        async def embed_one(chunk: Chunk) -> list[float]:
            nonlocal done
            async with sem:
                try:
                    vector = await asyncio.wait_for(
                        self._embed.generate_embedding(chunk.content, model=context.model_name, timeout=self.embed_timeout),
                        timeout=self.embed_timeout,
                    )
                finally:
                    done += 1
                    notify_progress(
                        on_progress,
                        ProgressEvent(stage="embedding", percent=50.0 + 40.0 * done / len(chunks)),
                        self.logging,
                    )
            if len(vector) != context.vector_size:
                raise ValueError(f"embedding has {len(vector)} dimensions, expected {context.vector_size}")
            return vector

        results = await asyncio.gather(*[embed_one(chunk) for chunk in chunks], return_exceptions=True)

        partial = PartialFailure()
        for chunk, result in zip(chunks, results):
            if isinstance(result, MemoryError):
                raise result
            if isinstance(result, BaseException):
                reason = "timed out" if isinstance(result, asyncio.TimeoutError) else str(result) or type(result).__name__
                self.logging.warning(
                    "Embedding failed for chunk %d of '%s', storing it without vector: %s",
                    chunk.metadata.chunk_index, chunk.metadata.source, reason,
                )
                partial.failed_chunk_indexes.append(chunk.metadata.chunk_index)
                partial.messages.append(f"chunk {chunk.metadata.chunk_index}: {reason}")
                continue
            chunk.embedding = result
        return partial

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _failed(
        self,
        stage: ProgressStage,
        message: str,
        error_type: str,
        file_path: str,
        conversation_id: str,
        on_progress: ProgressCallback | None,
    ) -> ProcessDocumentResult:
        self.logging.error(
            "Ingestion of '%s' for conversation '%s' failed during %s: %s", file_path, conversation_id, stage, message
        )
        notify_progress(on_progress, ProgressEvent(stage="failed", percent=100.0, message=message), self.logging)
        return ProcessDocumentResult(success=False, error=message, error_type=error_type, stage=stage)

    def _stat_size(self, file_path: str) -> int:
        path = Path(file_path)
        if not path.is_file():
            raise ValidationError(f"File not found: {file_path}", field="file_path")
        return path.stat().st_size

    def _write_temp_file(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def _remove_temp_file(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            self.logging.warning("Could not remove temporary upload %s: %s", path, e)


def _safe_token(value: str) -> str:
    return re.sub(r"[^\w.-]", "_", value)
