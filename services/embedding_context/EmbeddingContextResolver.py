"""Embedding context resolution.

Picks the embedding model for an operation, checks it is installed, looks up
its vector size and refuses a model switch that would put vectors of a new
dimensionality next to populated collections of another one.
"""

from services.vector_store.VectorStoreService import VectorStoreService
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.exceptions.errors import DimensionMismatchError, ModelNotConfiguredError, ModelUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.models.rag import EmbeddingContext


class EmbeddingContextResolver:
    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        vector_store: VectorStoreService,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed = embed_client
        self._store = vector_store

    async def resolve(self, preferred_model: str | None = None) -> EmbeddingContext:
        """Resolve the embedding model and vector size for one operation.

        Args:
            preferred_model (str | None): Explicit model, defaults to the engine's configured model.

        Returns:
            EmbeddingContext: Model name and output vector size.

        Raises:
            ModelNotConfiguredError: If no model is given and none is configured.
            ModelUnavailableError: If the model is not installed or its size is unknown.
            DimensionMismatchError: If a populated collection uses a different vector size.
        """
        target = (preferred_model or "").strip() or self._embed.get_current_embedding_model()
        if not target:
            raise ModelNotConfiguredError()

        if not await self._embed.validate_embedding_model(target):
            raise ModelUnavailableError(target, "not installed")

        vector_size = await self._embed.get_embedding_dimensions(target)
        if not vector_size or vector_size <= 0:
            raise ModelUnavailableError(target, "vector size unknown")

        await self._ensure_compatibility(target, vector_size)

        self._embed.update_config(default_model=target)
        self.logging.debug("Embedding context resolved: model=%s size=%d", target, vector_size)
        return EmbeddingContext(model_name=target, vector_size=vector_size)

    async def _ensure_compatibility(self, model: str, vector_size: int) -> None:
        current = self._store.get_config().default_vector_size
        if current == vector_size:
            return

        for collection in await self._store.list_collections():
            if collection.stats.points_count >= 1 and collection.vector_size != vector_size:
                self.logging.error(
                    "Model '%s' (size %d) conflicts with collection %s (size %d, %d points).",
                    model, vector_size, collection.name, collection.vector_size, collection.stats.points_count,
                )
                raise DimensionMismatchError(collection.vector_size, vector_size, collection.name)

        self.logging.info("Switching default vector size from %d to %d for model '%s'.", current, vector_size, model)
        self._store.update_config(default_vector_size=vector_size)
