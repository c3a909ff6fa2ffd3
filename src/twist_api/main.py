# src/twist_api/main.py
"""Main entry point for the Twist API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from twist_api.api.v1 import (
    checkin_router,
    payouts_router,
    social_router,
    spins_router,
    system_router,
)
from twist_api.core.errors import BAD_REQUEST, AdmissionError
from twist_api.core.settings import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Spin allowance and payout API for the Twist mini-app",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(spins_router, prefix="/api/v1")
app.include_router(checkin_router, prefix="/api/v1")
app.include_router(payouts_router, prefix="/api/v1")
app.include_router(social_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.exception_handler(AdmissionError)
async def admission_error_handler(request: Request, exc: AdmissionError) -> JSONResponse:
    """Render pipeline rejections as an opaque `{"error": ...}` body."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info("Rejected malformed request to %s: %d error(s)", request.url.path,
                len(exc.errors()))
    return JSONResponse(status_code=400, content={"error": BAD_REQUEST})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Spin allowance and payout API for the Twist mini-app",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("twist_api.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
