from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from server.api.error_handlers import status_for_category
from server.dependencies.auth import verify_api_key
from server.models.requests import ProcessDocumentRequest, UploadDocumentRequest
from shared.models.rag import ProcessDocumentResult

router = APIRouter(prefix="/documents", tags=["documents"])


def _to_response(result: ProcessDocumentResult) -> JSONResponse:
    status_code = 200 if result.success else status_for_category(result.error_type)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post("/process")
async def process_document(
    request: Request,
    body: ProcessDocumentRequest,
    _: None = Depends(verify_api_key),
) -> JSONResponse:
    """Ingest a file that is readable by the server process.

    Args:
        request (Request): FastAPI request (provides app.state.ingestion_service).
        body (ProcessDocumentRequest): File path, conversation id and options.

    Returns:
        JSONResponse: The ProcessDocumentResult, with an error status code on failure.
    """
    ingestion_service = request.app.state.ingestion_service
    result = await ingestion_service.process_document(body.file_path, body.conversation_id, body.options)
    return _to_response(result)


@router.post("/upload")
async def upload_document(
    request: Request,
    body: UploadDocumentRequest,
    _: None = Depends(verify_api_key),
) -> JSONResponse:
    ingestion_service = request.app.state.ingestion_service
    result = await ingestion_service.upload_and_process_document(
        body.file_name, body.file_data, body.conversation_id, body.options
    )
    return _to_response(result)
