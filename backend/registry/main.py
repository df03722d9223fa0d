"""
Trainer Registry - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Maps registry errors onto JSON error responses
5. Registers the public, auth and admin route handlers
6. Serves uploaded documents and provides a health check endpoint

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: Business logic (store, identifiers, verification, notifications, AI)
- console.py: Per-operator console state
- security.py: Password hashing and bearer tokens
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import os
import time
from pathlib import Path
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from registry.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from registry.errors import RegistryError
from registry.routes import admin, auth, public
from registry.database import DATABASE_URL, create_tables
from registry.services.storage import STORAGE_DIR

# Import all models so they are registered with Base.metadata
from registry.models import AdminUser, EmailLog, Trainer  # noqa: F401

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

# Auto-create tables for SQLite local development
if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite, creating tables directly")
    create_tables()

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# ──────────────────────────────────────────────────────────────
# Create FastAPI application
# ──────────────────────────────────────────────────────────────
app = FastAPI(
    title="Trainer Registry",
    description=(
        "Certification registry for legal trainers: public verification portal, "
        "admin console for issuing and revoking credentials, and AI drafted "
        "notifications with a delivery log."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# ──────────────────────────────────────────────────────────────
# CORS Middleware
#
# CORS_ORIGINS is a comma separated list; "*" allows every origin.
# ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


# ──────────────────────────────────────────────────────────────
# Request ID Middleware
#
# One UUID per request, stored in a context variable for every log
# entry and echoed in the X-Request-ID response header.
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    req_id = generate_request_id()
    request_id_var.set(req_id)
    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
        })

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = req_id

    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


# ──────────────────────────────────────────────────────────────
# Registry errors → JSON
#
# Body: {"detail", "error", "setup_required"}; status from the error class.
# ──────────────────────────────────────────────────────────────
@app.exception_handler(RegistryError)
async def registry_error_handler(request: Request, exc: RegistryError):
    log_with_context(logger, "WARNING",
        f"{exc.kind} on {request.method} {request.url.path}: {exc.message}",
        extra_data={"status_code": exc.status_code})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(public.router, tags=["Public"])
app.include_router(auth.router, tags=["Auth"])
app.include_router(admin.router, tags=["Admin"])

# Uploaded certificates and attachments
Path(STORAGE_DIR).mkdir(parents=True, exist_ok=True)
app.mount("/files", StaticFiles(directory=STORAGE_DIR), name="files")


# ──────────────────────────────────────────────────────────────
# Health check endpoint
# ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for Docker health checks and monitoring."""
    return {"status": "healthy", "service": "trainer-registry-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Trainer Registry",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "portal": "GET /api/public/portal?verify=&q=",
            "verify": "GET /api/verify/{term}",
            "announcement": "GET /api/verify/{term}/announcement",
            "extract_id": "POST /api/public/extract-id",
            "login": "POST /api/auth/login",
            "console": "GET /api/admin/console",
            "trainers": "POST /api/admin/trainers",
            "trainer_update": "PUT /api/admin/trainers/{id}",
            "trainer_delete": "DELETE /api/admin/trainers/{id}",
            "email_draft": "POST /api/admin/emails/draft",
            "email_send": "POST /api/admin/emails/send",
            "email_logs": "GET /api/admin/email-logs"
        }
    }
