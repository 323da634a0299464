"""Query service: embeds a question and retrieves ranked chunks of one conversation."""

from services.embedding_context.EmbeddingContextResolver import EmbeddingContextResolver
from services.vector_store.VectorStoreService import VectorStoreService
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.exceptions.errors import DependencyError, RAGBridgeError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.collection import CollectionStats, VectorCollection
from shared.models.rag import DeleteCollectionResult, QueryFilters, RAGQuery, RAGResponse


class QueryService:
    """Orchestrates embedding, vector retrieval and collection housekeeping."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        vector_store: VectorStoreService,
        resolver: EmbeddingContextResolver,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed = embed_client
        self._store = vector_store
        self._resolver = resolver

    ##########################################
    ################ CORE ####################
    ##########################################

    async def query_documents(
        self,
        query: str,
        conversation_id: str,
        top_k: int = 5,
        similarity_threshold: float = 0.7,
        embedding_model: str | None = None,
        filters: QueryFilters | None = None,
    ) -> RAGResponse:
        """Retrieve the chunks of a conversation most similar to the query.

        Args:
            query (str): Natural language question.
            conversation_id (str): Conversation whose documents are searched.
            top_k (int): Maximum number of sources.
            similarity_threshold (float): Minimum similarity score.
            embedding_model (str | None): Model override, defaults to the configured model.
            filters (QueryFilters | None): Optional payload filters.

        Returns:
            RAGResponse: Ranked sources. Empty if the conversation has no
            collection or the query could not be embedded.

        Raises:
            ValidationError: If the query or conversation id is empty.
            CompatibilityError: If the embedding model does not fit the stored vectors.
        """
        if not query or not query.strip():
            raise ValidationError("Query text is required", field="query")
        if not conversation_id or not conversation_id.strip():
            raise ValidationError("Conversation ID is required", field="conversation_id")
        if top_k < 1:
            raise ValidationError("top_k must be at least 1", field="top_k")

        self.logging.info("Executing query for conversation '%s': %r (top_k=%d)", conversation_id, query[:80], top_k)
        context = await self._resolver.resolve(embedding_model)

        try:
            vector = await self._embed.generate_embedding(query, model=context.model_name)
        except DependencyError as e:
            self.logging.warning("Query embedding failed, returning no sources: %s", e)
            vector = None

        rag_query = RAGQuery(
            query=query,
            conversation_id=conversation_id,
            top_k=top_k,
            similarity_threshold=similarity_threshold,
            filters=filters,
        )
        response = await self._store.query(rag_query, vector)
        self.logging.info(
            "Query complete for conversation '%s': %d sources (confidence %.3f)",
            conversation_id, len(response.sources), response.confidence,
        )
        return response

    ##########################################
    ############## COLLECTIONS ###############
    ##########################################

    async def delete_collection(self, conversation_id: str) -> DeleteCollectionResult:
        """Delete all vectors of a conversation. Deleting a missing collection succeeds."""
        if not conversation_id or not conversation_id.strip():
            return DeleteCollectionResult(success=False, error="Conversation ID is required")
        try:
            await self._store.delete_collection(conversation_id)
        except RAGBridgeError as e:
            self.logging.error("Deleting collection of conversation '%s' failed: %s", conversation_id, e)
            return DeleteCollectionResult(success=False, error=e.message)
        return DeleteCollectionResult(success=True, deleted_id=conversation_id)

    async def get_collection_stats(self, conversation_id: str) -> CollectionStats:
        if not conversation_id or not conversation_id.strip():
            raise ValidationError("Conversation ID is required", field="conversation_id")
        return await self._store.get_collection_stats(conversation_id)

    async def list_collections(self) -> list[VectorCollection]:
        return await self._store.list_collections()
