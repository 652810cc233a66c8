import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from povgen.api.routes import router
from povgen.core.config import settings
from povgen.core.errors import DuplicateJobError, JobNotFoundError, JobStateConflictError, ValidationError
from povgen.services.pipeline import get_pipeline

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_pipeline().backend.aclose()


def create_app() -> FastAPI:
    _configure_logging()
    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

    @app.exception_handler(JobNotFoundError)
    async def _not_found(request: Request, exc: JobNotFoundError):
        return JSONResponse(status_code=404, content={"error": "Video not found"})

    @app.exception_handler(DuplicateJobError)
    @app.exception_handler(JobStateConflictError)
    async def _conflict(request: Request, exc: Exception):
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def _internal_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(exc) or type(exc).__name__},
        )

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
