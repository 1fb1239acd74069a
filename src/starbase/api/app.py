"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from starbase.api.routes import router
from starbase.app import StarbaseApp
from starbase.errors import AuthError, ConversationNotFound, ProviderError, ValidationError
from starbase.log import get_logger

logger = get_logger(__name__)


def create_app(starbase: StarbaseApp) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await starbase.start()
        try:
            yield
        finally:
            await starbase.stop()

    app = FastAPI(title="Starbase Agent", lifespan=lifespan)
    app.state.starbase = starbase
    app.include_router(router)

    @app.exception_handler(ConversationNotFound)
    async def _not_found(request: Request, exc: ConversationNotFound) -> JSONResponse:
        return JSONResponse({"error": "Conversation not found"}, status_code=404)

    @app.exception_handler(AuthError)
    async def _unauthorized(request: Request, exc: AuthError) -> JSONResponse:
        return JSONResponse({"error": str(exc) or "Unauthorized"}, status_code=401)

    @app.exception_handler(ValidationError)
    async def _invalid(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(ProviderError)
    async def _provider_failed(request: Request, exc: ProviderError) -> JSONResponse:
        logger.error("agent_request_failed", path=request.url.path, error=str(exc))
        return JSONResponse({"error": "Agent failed to respond"}, status_code=500)

    return app
