"""FastAPI application entry point for the Smart Transformations API.

This module initializes the FastAPI application, configures logging and CORS
middleware, maps domain errors to HTTP responses, and creates the metadata
tables on startup.

To run locally:
    uvicorn main:app --reload
"""
from __future__ import annotations

import sys

from dotenv import load_dotenv
load_dotenv()  # Load .env file before other imports

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from api.routes import router as api_router
from config import settings
from db import init_models
from exceptions import (
    LimitReachedError,
    MaterializationError,
    NameCollisionError,
    NotFoundError,
    QueryExecutionError,
    SmartTransformationsError,
    SQLValidationError,
)
from services.llm.client import LLMAPIError, LLMRateLimitError

logger.remove()
logger.add(
    sys.stderr,
    level=settings.logging.level,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
)

app = FastAPI(
    title="Smart Transformations",
    description="AI-assisted, versioned dataset transformation API",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)

ERROR_STATUS_CODES = {
    NotFoundError: 404,
    NameCollisionError: 409,
    LimitReachedError: 409,
    SQLValidationError: 400,
    MaterializationError: 400,
    QueryExecutionError: 400,
}


@app.exception_handler(SmartTransformationsError)
async def domain_error_handler(request: Request, exc: SmartTransformationsError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        500,
    )
    if status_code >= 500:
        logger.error("[API] {} {} failed: {}", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": exc.message, "details": exc.details},
    )


@app.exception_handler(LLMRateLimitError)
async def llm_rate_limit_handler(request: Request, exc: LLMRateLimitError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"error": "LLMRateLimitError", "detail": str(exc)})


@app.exception_handler(LLMAPIError)
async def llm_api_error_handler(request: Request, exc: LLMAPIError) -> JSONResponse:
    logger.error("[API] LLM error on {}: {}", request.url.path, exc)
    return JSONResponse(status_code=502, content={"error": "LLMAPIError", "detail": str(exc)})


@app.on_event("startup")
async def startup() -> None:
    """Create the metadata tables on application startup."""
    await init_models()
    logger.info("[Startup] Metadata tables ready")


@app.get("/healthcheck")
async def healthcheck() -> dict:
    """Health check endpoint.

    Returns:
        Dict with status "ok" if the service is running.
    """
    return {"status": "ok"}
