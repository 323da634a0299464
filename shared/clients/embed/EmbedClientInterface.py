from abc import abstractmethod
import re

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbeddingCache import DEFAULT_MAX_SIZE_BYTES, DEFAULT_TTL_SECONDS, EmbeddingCache, EmbeddingCacheStats
from shared.exceptions.errors import DependencyError, ValidationError

from shared.helper.HelperConfig import HelperConfig

DEFAULT_EMBEDDING_MODEL = "embeddinggemma"
MAX_EMBEDDING_TEXT_LENGTH = 8192

# output dimensions of common embedding models, keyed by name without tag
KNOWN_EMBEDDING_DIMENSIONS: dict[str, int] = {
    "embeddinggemma": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
    "bge-small-en": 384,
    "nomic-embed-text": 768,
}


def normalize_model_name(name: str) -> str:
    """Strip the tag suffix from a model name ("all-minilm:latest" -> "all-minilm")."""
    return name.strip().split(":", 1)[0].lower()


class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        prefix = self.get_client_type().upper()
        self.embed_model: str = helper_config.get_string_val(f"{prefix}_MODEL", default=DEFAULT_EMBEDDING_MODEL)
        self.embed_model_max_chars = int(helper_config.get_number_val(f"{prefix}_MODEL_MAX_CHARS", default=MAX_EMBEDDING_TEXT_LENGTH))
        self._dimension_cache: dict[str, int] = {}

        self._embedding_cache: EmbeddingCache | None = None
        if helper_config.get_bool_val(f"{prefix}_CACHE_ENABLED", default=True):
            self._embedding_cache = EmbeddingCache(
                ttl_seconds=float(helper_config.get_number_val(f"{prefix}_CACHE_TTL", default=DEFAULT_TTL_SECONDS)),
                max_size_bytes=int(helper_config.get_number_val(f"{prefix}_CACHE_MAX_SIZE", default=DEFAULT_MAX_SIZE_BYTES)),
            )

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "embed"

    def get_current_embedding_model(self) -> str:
        """Return the configured default embedding model (may be empty)."""
        return self.embed_model

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_models(self) -> str:
        """
        Returns the endpoint path for model listing requests (e.g. "/api/tags").
        """
        pass

    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests (e.g. "/api/embed").
        """
        pass

    @abstractmethod
    def get_endpoint_model_details(self) -> str:
        """
        Returns the endpoint path for model details requests (e.g. "/api/show").
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str], model: str) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.
            model (str): The model to embed with.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).
        """
        pass

    @abstractmethod
    def get_model_details_payload(self, model: str) -> dict:
        pass

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    @abstractmethod
    def extract_vector_size_from_model_info(self, model_info: dict, model: str) -> int:
        """
        Extracts the embedding vector size from the model information response.

        Raises:
            ValueError: If the vector size cannot be determined.
        """
        pass

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response, in input order.

        Raises:
            ValueError: If the response format is invalid or embeddings are empty.
        """
        pass

    @abstractmethod
    def extract_model_names(self, response_data: dict) -> list[str]:
        """Extract installed model names from a raw model listing response."""
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    def normalize_text(self, text: str) -> str:
        """Collapse whitespace and truncate to the model input limit."""
        text = re.sub(r"\s+", " ", text or "").strip()
        return text[: self.embed_model_max_chars]

    def update_config(self, default_model: str | None = None) -> None:
        """Persist a new default embedding model for calls without an explicit model."""
        if default_model and default_model != self.embed_model:
            self.logging.info("Default embedding model changed from '%s' to '%s'.", self.embed_model, default_model)
            self.embed_model = default_model

    def clear_cache(self) -> None:
        """Drop all cached embedding vectors."""
        if self._embedding_cache is not None:
            self._embedding_cache.clear()
            self.logging.info("Embedding cache cleared.")

    def get_cache_stats(self) -> EmbeddingCacheStats:
        if self._embedding_cache is None:
            return EmbeddingCacheStats()
        return self._embedding_cache.get_stats()

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_models(self) -> httpx.Response:
        """Fetch the list of installed models from the backend."""
        return await self.do_request(method="GET", endpoint=self._get_endpoint_models(), raise_on_error=True)

    async def validate_embedding_model(self, model: str) -> bool:
        """Check whether a model is installed. The tag suffix is ignored.

        Returns:
            bool: True if a model with the same base name is installed.

        Raises:
            DependencyError: If the backend cannot be reached.
        """
        if not model:
            return False
        response = await self.do_fetch_models()
        wanted = normalize_model_name(model)
        installed = {normalize_model_name(name) for name in self.extract_model_names(response.json())}
        if wanted not in installed:
            self.logging.warning("Embedding model '%s' is not installed on %s.", model, self.get_engine_name())
            return False
        return True

    async def get_embedding_dimensions(self, model: str) -> int:
        """Return the output vector size of a model.

        Known models are answered from a static table, the rest from the model
        details endpoint. Returns 0 when the size cannot be determined.
        """
        key = normalize_model_name(model)
        if key in KNOWN_EMBEDDING_DIMENSIONS:
            return KNOWN_EMBEDDING_DIMENSIONS[key]
        if key in self._dimension_cache:
            return self._dimension_cache[key]
        response = await self.do_request(
            method="POST",
            json=self.get_model_details_payload(model),
            endpoint=self.get_endpoint_model_details(),
            raise_on_error=True,
        )
        try:
            size = self.extract_vector_size_from_model_info(model_info=response.json(), model=model)
        except ValueError as e:
            self.logging.warning("Could not determine vector size of '%s': %s", model, e)
            return 0
        self._dimension_cache[key] = size
        return size

    async def do_embed(self, texts: list[str] | str, model: str | None = None, timeout: float | None = None) -> list[list[float]]:
        """Send an embedding request and return the extracted vectors.

        Args:
            texts (list[str] | str): One or more texts to embed.
            model (str | None): Model override, defaults to the configured model.
            timeout (float | None): Per-call timeout override.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            DependencyError: If the HTTP request fails or returns no valid embeddings.
        """
        texts = [texts] if isinstance(texts, str) else texts
        body = self.get_embed_payload(texts, model or self.embed_model)
        response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body, timeout=timeout)
        if response.status_code != 200:
            self.logging.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise DependencyError("Embedding request failed with status %d." % response.status_code, engine=self.get_engine_name())
        try:
            return self.extract_embeddings_from_response(response.json())
        except ValueError as e:
            raise DependencyError(str(e), engine=self.get_engine_name()) from e

    async def generate_embedding(self, text: str, model: str | None = None, timeout: float | None = None) -> list[float]:
        """Embed a single text after normalising it.

        Vectors are cached by (normalised text, model) when the cache is enabled.

        Raises:
            ValidationError: If the text is empty after normalisation.
            DependencyError: If the engine fails.
        """
        normalized = self.normalize_text(text)
        if not normalized:
            raise ValidationError("Cannot embed empty text", field="text")
        target = model or self.embed_model
        cache_model = normalize_model_name(target)
        if self._embedding_cache is not None:
            cached = self._embedding_cache.get(normalized, cache_model)
            if cached is not None:
                self.logging.debug("Embedding for model '%s' served from cache.", target)
                return cached
        vectors = await self.do_embed(normalized, model=target, timeout=timeout)
        if self._embedding_cache is not None:
            self._embedding_cache.put(normalized, cache_model, vectors[0])
        return vectors[0]
