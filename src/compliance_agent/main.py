"""Compliance Agent main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from compliance_agent import __version__
from compliance_agent.api.router import router
from compliance_agent.api.deps import validate_security_config
from compliance_agent.api.schemas import error_response
from compliance_agent.config import settings
from compliance_agent.db.base import close_db, init_db
from compliance_agent.engine.errors import ComplianceAgentError
from compliance_agent.middleware.trace import request_id_middleware

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("compliance_agent")

HTTP_ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Compliance Agent...")
    logger.info(f"Environment: {settings.env.value}")
    logger.info(f"Schema version: {settings.schema_version}, policy version: {settings.policy_version}")

    # Validate internal secret and policy posture (fail fast if insecure)
    validate_security_config()

    if settings.auto_create_schema:
        await init_db()
        logger.info("Database schema created")

    yield

    logger.info("Shutting down Compliance Agent...")
    await close_db()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Compliance Agent",
    description="Tenant-scoped compliance data agent over a customer-owned Postgres",
    version=__version__,
    lifespan=lifespan,
)

# Request id middleware (correlation across logs and audit rows)
app.middleware("http")(request_id_middleware)

# CORS (explicit allowlist)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)


@app.exception_handler(ComplianceAgentError)
async def handle_agent_error(request: Request, exc: ComplianceAgentError):
    return error_response(exc.status_code, exc.code, exc.message)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    return error_response(400, "bad_request", "Invalid request")


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    if exc.status_code >= 500:
        return error_response(exc.status_code, "internal_error", "Internal error")
    code = HTTP_ERROR_CODES.get(exc.status_code, "bad_request")
    message = exc.detail if isinstance(exc.detail, str) else code
    return error_response(exc.status_code, code, message)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception for {request.method} {request.url.path}")
    return error_response(500, "internal_error", "Internal error")


# Include API router
app.include_router(router)


def main():
    """Entry point for the application."""
    uvicorn.run(
        "compliance_agent.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
