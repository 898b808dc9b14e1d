import os
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load .env BEFORE importing modules that use environment variables
load_dotenv()

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.requests import Request

from gen_tasks.api.router import ApiResponse, router as generation_router
from gen_tasks.config import load_config
from gen_tasks.services import GenerationServices
from mqtt_notification import get_notifier
from supabase_client import create_supabase_client

logger = logging.getLogger("uvicorn.error")


def create_app(services: GenerationServices = None) -> FastAPI:
    """
    Build the API app

    Args:
        services: Pre-built service container (tests); built from the
            environment on startup when omitted
    """
    config = services.config if services is not None else load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "generation", None) is None:
            app.state.generation = GenerationServices(
                config,
                supabase=create_supabase_client(config.supabase_url, config.supabase_service_key),
                notifier=get_notifier(),
            )
        await app.state.generation.startup()
        try:
            yield
        finally:
            await app.state.generation.shutdown()

    app = FastAPI(title="Keychain Generation API", version="0.1.0", lifespan=lifespan)
    app.state.generation = services

    app.include_router(generation_router)

    logger.info(f"[CORS] ALLOWED_ORIGINS loaded: {config.allowed_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "error": str(exc.detail)},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"status": "error", "error": "Internal server error"},
        )

    @app.get("/health", response_model=ApiResponse)
    async def health():
        return ApiResponse(status="ok", data={"service": "alive"})

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=int(os.getenv("PORT", "7000")), reload=True)
