from typing import Any

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.CollectionInfo import CollectionInfo
from shared.clients.rag.models.Scroll import SearchHit
from shared.models.collection import IndexParams
from shared.models.config import EnvConfig

# every point stores its embedding under this named vector, so points
# without an embedding can still be upserted with an empty vector map
VECTOR_NAME = "content"

_DISTANCE_TO_QDRANT = {"cosine": "Cosine", "euclidean": "Euclid", "dot": "Dot"}
_DISTANCE_FROM_QDRANT = {v.lower(): k for k, v in _DISTANCE_TO_QDRANT.items()}


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_collections(self) -> str:
        return "/collections"

    def _get_endpoint_collection(self, collection: str) -> str:
        return f"/collections/{collection}"

    def _get_endpoint_points(self, collection: str) -> str:
        return f"/collections/{collection}/points"

    def _get_endpoint_search(self, collection: str) -> str:
        return f"/collections/{collection}/points/search"

    def _get_endpoint_scroll(self, collection: str) -> str:
        return f"/collections/{collection}/points/scroll"

    def _get_endpoint_count(self, collection: str) -> str:
        return f"/collections/{collection}/points/count"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_create_collection_payload(self, vector_size: int, distance: str, index_params: IndexParams) -> dict:
        hnsw = index_params.hnsw_config
        # qdrant has no flat index type, m=0 disables graph building (exact search only)
        hnsw_config = {
            "m": hnsw.m if index_params.index_type == "hnsw" else 0,
            "ef_construct": hnsw.ef_construct,
            "full_scan_threshold": hnsw.full_scan_threshold,
        }
        payload: dict = {
            "vectors": {
                VECTOR_NAME: {
                    "size": vector_size,
                    "distance": _DISTANCE_TO_QDRANT.get(distance, "Cosine"),
                }
            },
            "hnsw_config": hnsw_config,
        }
        if index_params.index_type == "flat" and index_params.flat_config.compressed:
            payload["quantization_config"] = {"scalar": {"type": "int8", "always_ram": True}}
        return payload

    def get_point(self, point_id: str, vector: list[float] | None, payload: dict) -> dict:
        return {
            "id": point_id,
            "vector": {VECTOR_NAME: vector} if vector else {},
            "payload": payload,
        }

    def get_search_payload(self, vector: list[float], filters: list[dict], limit: int, score_threshold: float | None, index_params: IndexParams | None = None) -> dict:
        payload: dict = {
            "vector": {"name": VECTOR_NAME, "vector": vector},
            "filter": {"must": filters},
            "limit": limit,
            "with_payload": True,
            "with_vector": False,
        }
        if score_threshold is not None:
            payload["score_threshold"] = score_threshold
        if index_params is not None:
            if index_params.index_type == "flat":
                payload["params"] = {"exact": True}
            else:
                payload["params"] = {"hnsw_ef": index_params.hnsw_config.ef_search, "exact": False}
        return payload

    def get_scroll_payload(self, filters: list[dict], with_payload: bool | list | dict, with_vector: bool | list, limit: int | None = None, offset: str | int | None = None) -> dict:
        payload: dict = {
            "limit": limit,
            "with_payload": with_payload,
            "with_vector": with_vector,
        }
        if filters:
            payload["filter"] = {"must": filters}
        if offset is not None:
            payload["offset"] = offset
        return payload

    def get_count_payload(self, filters: list[dict]) -> dict:
        if not filters:
            return {"exact": True}
        return {"filter": {"must": filters}, "exact": True}

    def get_match_filter(self, key: str, value: Any) -> dict:
        return {"key": key, "match": {"value": value}}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_collection_names(self, raw_response: dict) -> list[str]:
        collections = raw_response.get("result", {}).get("collections", [])
        return [c["name"] for c in collections if c.get("name")]

    def extract_collection_info(self, collection: str, raw_response: dict) -> CollectionInfo:
        result: dict = raw_response.get("result") or {}
        config: dict = result.get("config") or {}
        vectors: dict = (config.get("params") or {}).get("vectors") or {}
        # named vectors {"content": {...}} or a single unnamed {"size": .., "distance": ..}
        vector_params = vectors if "size" in vectors else vectors.get(VECTOR_NAME) or next(iter(vectors.values()), None)
        if not vector_params or "size" not in vector_params:
            raise ValueError(f"Collection '{collection}' has no vector configuration.")
        hnsw: dict = config.get("hnsw_config") or {}
        m = int(hnsw.get("m", 16))
        return CollectionInfo(
            name=collection,
            vector_size=int(vector_params["size"]),
            distance=_DISTANCE_FROM_QDRANT.get(str(vector_params.get("distance", "Cosine")).lower(), "cosine"),
            points_count=int(result.get("points_count") or 0),
            indexed_vectors_count=int(result.get("indexed_vectors_count") or 0),
            status=str(result.get("status", "green")).lower(),
            index_type="hnsw" if m > 0 else "flat",
            hnsw_m=m,
            hnsw_ef_construct=int(hnsw.get("ef_construct", 200)),
            full_scan_threshold=int(hnsw.get("full_scan_threshold", 10000)),
            payload_indexes_count=len(result.get("payload_schema") or {}),
        )

    def extract_search_hits(self, raw_response: dict) -> list[SearchHit]:
        return [
            SearchHit(id=hit["id"], score=float(hit.get("score", 0.0)), payload=hit.get("payload") or {})
            for hit in raw_response.get("result", [])
        ]

    def extract_scroll_content(self, raw_response: dict) -> dict:
        result = raw_response.get("result", {})
        return {
            "result": result.get("points", []),
            "status": raw_response.get("status", "ok"),
            "time": raw_response.get("time", 0),
        }

    def extract_next_page_offset(self, raw_response: dict) -> str | int | None:
        return raw_response.get("result", {}).get("next_page_offset")
