from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import QueryRequest
from shared.models.rag import RAGResponse

router = APIRouter(prefix="/query", tags=["query"])


@router.post("")
async def query_documents(
    request: Request,
    body: QueryRequest,
    _: None = Depends(verify_api_key),
) -> RAGResponse:
    """Retrieve the chunks of a conversation that best match the query.

    Args:
        request (Request): FastAPI request (provides app.state.query_service).
        body (QueryRequest): Query text, conversation id and search options.
        _ (None): Auth dependency result (unused).

    Returns:
        RAGResponse: Ranked sources with search metadata.
    """
    query_service = request.app.state.query_service
    return await query_service.query_documents(
        query=body.query,
        conversation_id=body.conversation_id,
        top_k=body.top_k,
        similarity_threshold=body.similarity_threshold,
        embedding_model=body.embedding_model,
        filters=body.filters,
    )
