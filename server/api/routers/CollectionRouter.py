from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from server.dependencies.auth import verify_api_key
from shared.models.collection import CollectionStats, VectorCollection

router = APIRouter(prefix="/collections", tags=["collections"])


@router.get("")
async def list_collections(request: Request, _: None = Depends(verify_api_key)) -> list[VectorCollection]:
    query_service = request.app.state.query_service
    return await query_service.list_collections()


@router.get("/{conversation_id}/stats")
async def get_collection_stats(
    request: Request,
    conversation_id: str,
    _: None = Depends(verify_api_key),
) -> CollectionStats:
    """Return point count, estimated size and indexing state of a conversation's collection."""
    query_service = request.app.state.query_service
    return await query_service.get_collection_stats(conversation_id)


@router.delete("/{conversation_id}")
async def delete_collection(
    request: Request,
    conversation_id: str,
    _: None = Depends(verify_api_key),
) -> JSONResponse:
    query_service = request.app.state.query_service
    result = await query_service.delete_collection(conversation_id)
    return JSONResponse(status_code=200 if result.success else 503, content=result.model_dump(mode="json"))
