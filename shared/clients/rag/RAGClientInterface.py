from abc import abstractmethod
from typing import Any
import json

from shared.clients.ClientInterface import ClientInterface
from shared.clients.rag.models.CollectionInfo import CollectionInfo
from shared.clients.rag.models.Scroll import ScrollResult, SearchHit
from shared.exceptions.errors import DependencyError
from shared.models.collection import IndexParams

from shared.helper.HelperConfig import HelperConfig


class RAGClientInterface(ClientInterface):
    """Vector database client. Every request is scoped to an explicit collection name."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "rag"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_collections(self) -> str:
        """
        Returns the endpoint path for listing collections (e.g. "/collections").
        """
        pass

    @abstractmethod
    def _get_endpoint_collection(self, collection: str) -> str:
        """
        Returns the endpoint path of a single collection, used for info, create and delete.
        """
        pass

    @abstractmethod
    def _get_endpoint_points(self, collection: str) -> str:
        """
        Returns the endpoint path for points upsert requests.
        """
        pass

    @abstractmethod
    def _get_endpoint_search(self, collection: str) -> str:
        pass

    @abstractmethod
    def _get_endpoint_scroll(self, collection: str) -> str:
        pass

    @abstractmethod
    def _get_endpoint_count(self, collection: str) -> str:
        pass

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    @abstractmethod
    def get_create_collection_payload(self, vector_size: int, distance: str, index_params: IndexParams) -> dict:
        """Build the backend-specific body for creating a collection.

        Args:
            vector_size (int): Dimensionality of the vectors.
            distance (str): "cosine", "euclidean" or "dot".
            index_params (IndexParams): HNSW or flat index parameters.
        """
        pass

    @abstractmethod
    def get_point(self, point_id: str, vector: list[float] | None, payload: dict) -> dict:
        """Build one backend-specific point. A missing vector stores the payload only."""
        pass

    @abstractmethod
    def get_search_payload(self, vector: list[float], filters: list[dict], limit: int, score_threshold: float | None, index_params: IndexParams | None = None) -> dict:
        pass

    @abstractmethod
    def get_scroll_payload(self, filters: list[dict], with_payload: bool | list | dict, with_vector: bool | list, limit: int | None = None, offset: str | int | None = None) -> dict:
        pass

    @abstractmethod
    def get_count_payload(self, filters: list[dict]) -> dict:
        pass

    @abstractmethod
    def get_match_filter(self, key: str, value: Any) -> dict:
        """Build an equality condition on a payload field."""
        pass

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    @abstractmethod
    def extract_collection_names(self, raw_response: dict) -> list[str]:
        pass

    @abstractmethod
    def extract_collection_info(self, collection: str, raw_response: dict) -> CollectionInfo:
        """
        Raises:
            ValueError: If the response does not describe a vector configuration.
        """
        pass

    @abstractmethod
    def extract_search_hits(self, raw_response: dict) -> list[SearchHit]:
        pass

    @abstractmethod
    def extract_scroll_content(self, raw_response: dict) -> dict:
        """
        Returns:
            dict: A dict with keys "result", "status", "time".
        """
        pass

    @abstractmethod
    def extract_next_page_offset(self, raw_response: dict) -> str | int | None:
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_list_collections(self) -> list[str]:
        """Return the names of all collections in the backend."""
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_collections(), raise_on_error=True)
        return self.extract_collection_names(resp.json())

    async def do_get_collection_info(self, collection: str) -> CollectionInfo | None:
        """Fetch the state of a collection.

        Returns:
            CollectionInfo | None: The collection state, or None if it does not exist.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_collection(collection))
        if resp.status_code == 404:
            return None
        self.raise_for_status(resp)
        try:
            return self.extract_collection_info(collection, resp.json())
        except ValueError as e:
            raise DependencyError(str(e), engine=self.get_engine_name()) from e

    async def do_create_collection(self, collection: str, vector_size: int, distance: str, index_params: IndexParams) -> None:
        """Create a collection in the rag backend."""
        await self.do_request(
            method="PUT",
            json=self.get_create_collection_payload(vector_size, distance, index_params),
            endpoint=self._get_endpoint_collection(collection),
            raise_on_error=True,
        )

    async def do_delete_collection(self, collection: str) -> bool:
        """Delete a collection. Returns False if it did not exist."""
        resp = await self.do_request(method="DELETE", endpoint=self._get_endpoint_collection(collection))
        if resp.status_code == 404:
            return False
        self.raise_for_status(resp)
        return bool(resp.json().get("result", True))

    async def do_upsert_points(self, collection: str, points: list[dict[str, Any]]) -> None:
        """Upsert points and wait until the backend has persisted them.
        Inserts new points or replaces existing ones if a point with the same ID already exists.
        """
        await self.do_request(
            method="PUT",
            content=json.dumps({"points": points}),
            endpoint=self._get_endpoint_points(collection),
            params={"wait": "true"},
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )

    async def do_search(
        self,
        collection: str,
        vector: list[float],
        filters: list[dict],
        limit: int,
        score_threshold: float | None = None,
        index_params: IndexParams | None = None,
    ) -> list[SearchHit]:
        """Run a similarity search restricted by payload filters.

        Returns:
            list[SearchHit]: Hits ordered by descending score.
        """
        resp = await self.do_request(
            method="POST",
            content=json.dumps(self.get_search_payload(vector, filters, limit, score_threshold, index_params)),
            endpoint=self._get_endpoint_search(collection),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        return self.extract_search_hits(resp.json())

    async def do_scroll(self, collection: str, filters: list[dict], with_payload: bool | list | dict, with_vector: bool | list, limit: int | None = None, offset: str | int | None = None) -> ScrollResult:
        """Scroll a single page from a collection in the RAG backend."""
        resp = await self.do_request(
            method="POST",
            content=json.dumps(self.get_scroll_payload(filters, with_payload, with_vector, limit, offset)),
            endpoint=self._get_endpoint_scroll(collection),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        raw_response = resp.json()
        scroll_content = self.extract_scroll_content(raw_response=raw_response)
        return ScrollResult(
            result=scroll_content.get("result", []),
            status=scroll_content.get("status", "ok"),
            time=scroll_content.get("time", 0),
            next_page_offset=self.extract_next_page_offset(raw_response),
        )

    async def do_count(self, collection: str, filters: list[dict]) -> int:
        """Count the points matching the given filters."""
        resp = await self.do_request(
            method="POST",
            content=json.dumps(self.get_count_payload(filters)),
            endpoint=self._get_endpoint_count(collection),
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )
        return resp.json().get("result", {}).get("count", 0)
