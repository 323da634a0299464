"""Translation of bridge errors into HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shared.exceptions.errors import RAGBridgeError

_CATEGORY_STATUS: dict[str, int] = {
    "validation": 400,
    "format": 422,
    "compatibility": 409,
    "dependency": 503,
}


def status_for_category(category: str | None) -> int:
    return _CATEGORY_STATUS.get(category or "", 500)


async def handle_bridge_error(request: Request, exc: RAGBridgeError) -> JSONResponse:
    status_code = status_for_category(exc.category)
    request.app.state.logging.warning(
        "%s %s failed with %d (%s): %s", request.method, request.url.path, status_code, exc.category, exc
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.message, "error_type": exc.category, "details": exc.details},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RAGBridgeError, handle_bridge_error)
