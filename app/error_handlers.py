from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
from domain.errors import PipelineError, UpstreamMalformed

logger = logging.getLogger(__name__)

def attach_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(PipelineError)
    async def _pipeline(request: Request, exc: PipelineError):
        if isinstance(exc, UpstreamMalformed) and exc.raw:
            logger.error("Malformed upstream payload on %s: %r", request.url.path, exc.raw)
        elif exc.status_code >= 500:
            logger.error("%s on %s: %s", exc.kind, request.url.path, exc)
        else:
            logger.info("%s on %s: %s", exc.kind, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code,
                            content={"error": exc.message, "kind": exc.kind})

    @app.exception_handler(RequestValidationError)
    async def _invalid(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"Invalid request: {field} {first.get('msg', '')}".strip()
        return JSONResponse(status_code=400, content={"error": message, "kind": "ValidationError"})

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled: %s", exc)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
