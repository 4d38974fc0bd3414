import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy import text

from campaign_engine.config import settings
from campaign_engine.db.base import engine, init_db
from campaign_engine.errors import (
    AuthorizationError,
    ConfigurationError,
    RemoteFatalError,
    ValidationError,
)
from campaign_engine.llm.client import LLMClientConfigError
from campaign_engine.routers import agent, meta

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _app_lifespan(_app: FastAPI) -> AsyncIterator[None]:
    init_db()
    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="Campaign Provisioning API",
        default_response_class=ORJSONResponse,
        lifespan=_app_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AuthorizationError)
    async def authorization_error_handler(_request: Request, exc: AuthorizationError) -> ORJSONResponse:
        return ORJSONResponse(status_code=403, content={"detail": exc.message, **exc.details})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(_request: Request, exc: ConfigurationError) -> ORJSONResponse:
        return ORJSONResponse(status_code=400, content={"detail": exc.message, **exc.details})

    @app.exception_handler(ValidationError)
    async def validation_error_handler(_request: Request, exc: ValidationError) -> ORJSONResponse:
        return ORJSONResponse(status_code=400, content={"detail": exc.message, **exc.details})

    @app.exception_handler(RemoteFatalError)
    async def remote_fatal_error_handler(_request: Request, exc: RemoteFatalError) -> ORJSONResponse:
        logger.warning(
            "Remote platform rejected request",
            extra={"error": exc.message, "code": exc.code, "subcode": exc.subcode},
        )
        content = {"detail": exc.message, "metaError": exc.remote_message, "code": exc.code, "subcode": exc.subcode}
        if exc.created:
            content["created"] = exc.created
        return ORJSONResponse(status_code=502, content=content)

    @app.exception_handler(LLMClientConfigError)
    async def llm_config_error_handler(_request: Request, exc: LLMClientConfigError) -> ORJSONResponse:
        return ORJSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("Unhandled server exception", exc_info=exc)
        return ORJSONResponse(status_code=500, content={"detail": "Internal server error."})

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/health/db")
    def health_db() -> dict[str, str]:
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return {"db": "ok"}
        except Exception as exc:  # pragma: no cover - simple runtime check
            return {"db": f"error: {exc}"}

    app.include_router(agent.router)
    app.include_router(meta.router)

    return app


app = create_app()
