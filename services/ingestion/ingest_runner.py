"""Ingest runner entry point.

Ingests a single file into the collection of a conversation.

Usage:
    python -m services.ingestion.ingest_runner FILE CONVERSATION_ID [--chunk-size N] [--chunk-overlap N] [--model NAME]
"""

import argparse
import asyncio
import sys

from services.embedding_context.EmbeddingContextResolver import EmbeddingContextResolver
from services.ingestion.IngestionService import IngestionService
from services.vector_store.VectorStoreService import VectorStoreService
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.exceptions.errors import DependencyError
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.document import ProgressEvent
from shared.models.rag import ProcessDocumentOptions


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest a PDF, TXT or MD file into a conversation's collection.")
    parser.add_argument("file", help="Path of the document to ingest.")
    parser.add_argument("conversation_id", help="Conversation that owns the document.")
    parser.add_argument("--chunk-size", type=int, default=None, help="Maximum characters per chunk.")
    parser.add_argument("--chunk-overlap", type=int, default=None, help="Characters carried over between chunks.")
    parser.add_argument("--model", default=None, help="Embedding model, defaults to the configured model.")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Run one ingestion and return the process exit code."""
    args = parse_args(argv)
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    embed_client = EmbedClientManager(helper_config=config).get_client()
    rag_client = RAGClientManager(helper_config=config).get_client()
    vector_store = VectorStoreService(helper_config=config, rag_client=rag_client)
    resolver = EmbeddingContextResolver(helper_config=config, embed_client=embed_client, vector_store=vector_store)
    ingestion_service = IngestionService(
        helper_config=config,
        embed_client=embed_client,
        vector_store=vector_store,
        resolver=resolver,
    )

    def on_progress(event: ProgressEvent) -> None:
        logger.debug("Progress: %s %.0f%%", event.stage, event.percent)

    try:
        await embed_client.boot()
        await rag_client.boot()
        try:
            await rag_client.do_healthcheck()
        except DependencyError as e:
            logger.error("Vector store is not reachable: %s", e)
            return 1

        result = await ingestion_service.process_document(
            args.file,
            args.conversation_id,
            ProcessDocumentOptions(
                chunk_size=args.chunk_size,
                chunk_overlap=args.chunk_overlap,
                embedding_model=args.model,
            ),
            on_progress=on_progress,
        )
    finally:
        await embed_client.close()
        await rag_client.close()

    if not result.success:
        logger.error("Ingestion failed (%s during %s): %s", result.error_type, result.stage, result.error)
        return 1
    if result.partial_failure:
        logger.warning("Chunks stored without embedding: %s", result.partial_failure.failed_chunk_indexes)
    logger.info("Ingestion finished: %d chunks.", result.total_chunks)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
