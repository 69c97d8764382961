import logging
import uuid

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.exceptions import PlanetException

logger = logging.getLogger("app.errors")


def register_error_handlers(app):
    @app.exception_handler(PlanetException)
    async def planet_exception(request: Request, exc: PlanetException):
        level = logging.WARNING if exc.status_code >= 500 else logging.INFO
        logger.log(level, "Handled error code=%s status=%s path=%s", exc.code, exc.status_code, request.url.path)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception(request: Request, exc: RequestValidationError):
        logger.info("Rejected request body path=%s errors=%d", request.url.path, len(exc.errors()))
        return JSONResponse(
            status_code=422,
            content={
                "error": {
                    "message": "Request validation failed",
                    "code": "VAL302",
                    "details": {"errors": jsonable_encoder(exc.errors())},
                }
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):  # noqa: BLE001
        correlation_id = uuid.uuid4().hex
        logger.exception("Unhandled error cid=%s path=%s method=%s", correlation_id, request.url.path, request.method)
        return JSONResponse(
            status_code=500,
            content={"error": {"message": "Internal server error", "code": "SRV500", "details": {"cid": correlation_id}}},
        )

    return app
