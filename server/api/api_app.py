"""FastAPI application entry point for the conversation RAG bridge.

Usage:
    python -m server.api.api_app
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from server.api.error_handlers import register_error_handlers
from server.api.routers.CollectionRouter import router as collection_router
from server.api.routers.DocumentRouter import router as document_router
from server.api.routers.EmbeddingRouter import router as embedding_router
from server.api.routers.QueryRouter import router as query_router
from services.embedding_context.EmbeddingContextResolver import EmbeddingContextResolver
from services.ingestion.IngestionService import IngestionService
from services.query.QueryService import QueryService
from services.vector_store.VectorStoreService import VectorStoreService
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.exceptions.errors import DependencyError
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    app.state.helper_config = HelperConfig(logger=logging)

    embed_client = EmbedClientManager(helper_config=app.state.helper_config).get_client()
    rag_client = RAGClientManager(helper_config=app.state.helper_config).get_client()

    logging.info("Booting all clients...")
    for client in [embed_client, rag_client]:
        await client.boot()
    logging.info("All clients booted successfully.")

    await check_connections(embed_client, rag_client)

    app.state.embed_client = embed_client
    vector_store = VectorStoreService(helper_config=app.state.helper_config, rag_client=rag_client)
    resolver = EmbeddingContextResolver(
        helper_config=app.state.helper_config,
        embed_client=embed_client,
        vector_store=vector_store,
    )
    app.state.ingestion_service = IngestionService(
        helper_config=app.state.helper_config,
        embed_client=embed_client,
        vector_store=vector_store,
        resolver=resolver,
    )
    app.state.query_service = QueryService(
        helper_config=app.state.helper_config,
        embed_client=embed_client,
        vector_store=vector_store,
        resolver=resolver,
    )

    # while the app is running...
    yield

    # when the app shuts down, close all client connections
    logging.info("Shutting down, closing all clients...")
    for client in [embed_client, rag_client]:
        await client.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="rag_bridge",
    description=(
        "Per-conversation document retrieval. Documents (PDF, TXT, MD) are split into "
        "overlapping chunks, embedded and stored in one vector collection per conversation. "
        "Ingest via POST /documents/process or /documents/upload, retrieve via POST /query."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)
app.include_router(document_router)
app.include_router(query_router)
app.include_router(collection_router)
app.include_router(embedding_router)


@app.get("/health", tags=["health"])
async def health() -> dict:
    return {"status": "ok", "version": app_version}


async def check_connections(embed_client: EmbedClientInterface, rag_client: RAGClientInterface) -> None:
    """Check connectivity to the backends on startup.

    An unreachable embedding engine is logged and tolerated, ingestion and
    queries fail with a dependency error until it is up. An unreachable
    vector store is fatal.

    Raises:
        DependencyError: If the vector store is not reachable.
    """
    try:
        await embed_client.do_healthcheck()
    except DependencyError as e:
        logging.warning("Embedding engine '%s' is not reachable: %s", embed_client.get_engine_name(), e)

    await rag_client.do_healthcheck()


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting rag_bridge API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
