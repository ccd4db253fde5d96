"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .services.llm import get_llm_client, shutdown_llm_client
from .storage.database import get_db_manager, shutdown_database
from .routes import chat, conversations, messages, projects, settings


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan hooks for initializing shared resources."""

    app_settings = get_settings()
    logger.info(
        "Starting branchchat backend with model endpoint=%s default model=%s",
        app_settings.LLM.base_url,
        app_settings.LLM.default_model,
    )

    await get_db_manager()
    await get_llm_client()
    logger.info("Database initialized at %s", app_settings.conversation_db_path)
    yield

    await shutdown_llm_client()
    await shutdown_database()
    logger.info("Stopping branchchat backend")


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request data", "details": jsonable_encoder(exc.errors())},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app_settings = get_settings()
    app = FastAPI(title="Branchchat", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    app.include_router(projects.router)
    app.include_router(conversations.router)
    app.include_router(messages.router)
    app.include_router(chat.router)
    app.include_router(settings.router)

    return app
