from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from shared.clients.embed.EmbeddingCache import EmbeddingCacheStats

router = APIRouter(prefix="/embeddings", tags=["embeddings"])


@router.get("/cache")
async def get_cache_stats(request: Request, _: None = Depends(verify_api_key)) -> EmbeddingCacheStats:
    """Return size, entry count and hit rate of the embedding vector cache."""
    return request.app.state.embed_client.get_cache_stats()


@router.delete("/cache")
async def clear_cache(request: Request, _: None = Depends(verify_api_key)) -> EmbeddingCacheStats:
    embed_client = request.app.state.embed_client
    embed_client.clear_cache()
    return embed_client.get_cache_stats()
