from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import os
import sys

import config
import models
from database import engine, Base, SessionLocal
from errors import AppError
from auth.routes import router as auth_router
from auth.security import hash_password
from routers.analytics import router as analytics_router
from routers.comments import router as comments_router
from routers.files import router as files_router
from routers.tasks import router as tasks_router
from routers.users import router as users_router

# Configure logging
logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Task Management Platform API",
    description="Tasks, comments, file attachments and analytics for small teams",
    version="1.0.0"
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(tasks_router)
app.include_router(comments_router)
app.include_router(files_router)
app.include_router(analytics_router)


# ============== Error Envelope ==============

def error_response(status_code: int, message: str, errors=None, headers=None) -> JSONResponse:
    content = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return error_response(exc.status_code, exc.message, exc.errors)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        loc = error.get("loc", ())
        errors.append({
            "msg": error.get("msg", "Invalid value"),
            "param": ".".join(str(part) for part in loc[1:]),
            "location": str(loc[0]) if loc else "body",
        })
    logger.info(f"{request.method} {request.url.path} validation failed: {errors}")
    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", errors)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server error")


# ============== Startup ==============

@app.on_event("startup")
async def init_database():
    """Create tables that do not exist yet."""
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables verified")
    except Exception as e:
        logger.error(f"Failed to create database tables: {e}")


@app.on_event("startup")
async def ensure_admin_user():
    """
    Ensure an admin user exists on startup.

    Uses ADMIN_EMAIL / ADMIN_PASSWORD env vars, otherwise defaults to
    admin@example.com / 'admin123' for local dev. The default password is
    refused in production-like environments.
    """
    admin_email = os.getenv("ADMIN_EMAIL", "admin@example.com").strip().lower()
    admin_password = os.getenv("ADMIN_PASSWORD", "admin123")
    is_default_password = admin_password.strip() == "admin123"

    if config.is_production_like() and (is_default_password or len(admin_password.strip()) < 8):
        logger.error(
            "=" * 80 + "\n"
            "❌ STARTUP FAILED: Secure ADMIN_PASSWORD is required in production/staging!\n"
            "❌ Password must not be the default 'admin123' and must be at least 8 characters long.\n"
            "❌ Example: ADMIN_PASSWORD=$(openssl rand -base64 32)\n" +
            "=" * 80
        )
        sys.exit(1)

    db = SessionLocal()
    try:
        admin = db.query(models.User).filter(models.User.email == admin_email).first()
        if admin:
            logger.info(f"Admin user already exists (email: {admin_email})")
            return

        admin = models.User(
            name="Admin",
            email=admin_email,
            role=models.UserRole.admin.value,
            password_hash=hash_password(admin_password),
            is_active=True
        )
        db.add(admin)
        db.commit()

        if is_default_password:
            logger.warning(
                "=" * 80 + "\n"
                f"⚠️  SECURITY WARNING: Admin user created with DEFAULT password 'admin123' ({admin_email})\n"
                "⚠️  This is OK for local development but DANGEROUS for production!\n"
                "⚠️  Set ADMIN_PASSWORD environment variable to use a custom password.\n" +
                "=" * 80
            )
        else:
            logger.info(f"✅ Admin user created with custom password from ADMIN_PASSWORD env var ({admin_email})")
    except Exception as e:
        logger.error(f"Failed to ensure admin user exists: {e}")
        db.rollback()
        # Don't fail startup - let the app run even if admin creation fails
    finally:
        db.close()


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy"}
