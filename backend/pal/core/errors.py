import logging
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pal.core.config import get_settings

logger = logging.getLogger(__name__)


class PalError(Exception):
    """Base class for failures that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str = "Something went wrong"


class UnsupportedDocumentError(PalError):
    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
    public_message = "Unsupported document type"


class ExtractionError(PalError):
    status_code = 422
    public_message = "Failed to extract document content"


class GenerationError(PalError):
    status_code = status.HTTP_502_BAD_GATEWAY
    public_message = "Failed to generate a response"


class WebSearchError(PalError):
    status_code = status.HTTP_502_BAD_GATEWAY
    public_message = "Web search failed"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PalError)
    async def pal_error_handler(request: Request, exc: PalError) -> JSONResponse:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        content = {"detail": exc.public_message}
        if not get_settings().is_production:
            content["error"] = str(exc)
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Malformed input is reported as 400, not 422
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        content = {"detail": "Something went wrong"}
        if not get_settings().is_production:
            content["error"] = f"{type(exc).__name__}: {exc}"
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)
