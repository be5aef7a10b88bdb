from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
import os
import time
import logging

from .api.deps import general_rate_limit
from .api.routes.admin import router as admin_router
from .api.routes.auth import router as auth_router
from .api.routes.doctor import router as doctor_router
from .api.routes.user import router as user_router
from .core.config import settings
from .core.database import SessionLocal, check_db_connection, init_db
from .services.auth_service import AuthService

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Doctor appointment booking API",
    openapi_url="/api/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Middleware setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
    allow_headers=["Content-Type", "Authorization"],
)

# Only add TrustedHostMiddleware in production, not in testing
if not settings.TESTING and not settings.DEBUG:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=["localhost", "127.0.0.1", "*.localhost", "testserver"]
    )

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "cross-origin",
}

# Custom middleware for request logging, timing and security headers
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)

    logger.info(
        f"{request.method} {request.url.path} - "
        f"Status: {response.status_code} - "
        f"Time: {process_time:.4f}s"
    )

    return response

# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Route {request.url.path} not found"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message},
        headers=getattr(exc, "headers", None),
    )

# Same text the field validators give for an empty value
MISSING_FIELD_MESSAGES = {
    "name": "Name is required",
    "email": "Please enter a valid email",
    "password": "Password is required",
    "speciality": "Speciality is required",
    "degree": "Degree is required",
    "experience": "Experience must be a number between 0 and 70",
    "fees": "Fees must be a positive number",
    "docId": "Doctor ID is required",
    "slotDate": "Appointment date is required",
    "slotTime": "Appointment time is required",
    "appointmentId": "Appointment ID is required",
}

def first_validation_message(errors) -> str:
    """Mirror express-validator: report only the first failing rule."""
    if not errors:
        return "Invalid input data"
    error = errors[0]
    field = str(error.get("loc", ["input"])[-1])
    if error.get("type") == "missing":
        return MISSING_FIELD_MESSAGES.get(field, f"{field} is required")
    message = error.get("msg", "Invalid input data")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return message

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": first_validation_message(exc.errors())},
    )

@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.error(f"Internal server error on {request.method} {request.url.path}: {str(exc)}", exc_info=exc)
    content = {"success": False, "message": "Something went wrong"}
    if settings.DEBUG:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)

# Include routers
api_limits = [Depends(general_rate_limit)]
app.include_router(auth_router, prefix="/api", dependencies=api_limits)
app.include_router(user_router, prefix="/api", dependencies=api_limits)
app.include_router(doctor_router, prefix="/api", dependencies=api_limits)
app.include_router(admin_router, prefix="/api", dependencies=api_limits)

# Locally stored uploads
app.mount(
    settings.UPLOAD_URL_PREFIX,
    StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
    name="uploads",
)

# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    logger.info(f"Starting {settings.APP_NAME}...")

    db_url = settings.get_database_url
    db_type = "PostgreSQL" if "postgresql" in db_url else "SQLite" if "sqlite" in db_url else "Unknown"
    logger.info(f"Using {db_type} database")

    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {str(e)}")
        raise

    if not settings.cloudinary_configured:
        os.makedirs(settings.UPLOAD_DIR, exist_ok=True)

    if settings.ADMIN_EMAIL and settings.ADMIN_PASSWORD:
        db = SessionLocal()
        try:
            AuthService(db).ensure_admin(settings.ADMIN_EMAIL.lower(), settings.ADMIN_PASSWORD)
        finally:
            db.close()

    logger.info("Application startup complete")

@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown."""
    logger.info(f"Shutting down {settings.APP_NAME}...")

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    database_ok = check_db_connection()
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": "healthy" if database_ok else "degraded",
            "timestamp": time.time(),
            "version": settings.VERSION,
            "services": {
                "database": "healthy" if database_ok else "unhealthy",
                "api": "healthy",
            },
        },
    )

@app.get("/test-db", response_class=PlainTextResponse)
async def database_check():
    if check_db_connection():
        return "Database is connected"
    return PlainTextResponse("Database is NOT connected", status_code=500)

# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": "API Working",
        "version": settings.VERSION,
        "docs": "/docs",
        "health": "/health"
    }

# API Info endpoint
@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "success": True,
        "name": settings.APP_NAME,
        "version": settings.VERSION,
        "endpoints": {
            "authentication": "/api/auth",
            "patients": "/api/user",
            "doctors": "/api/doctor",
            "admin": "/api/admin",
            "docs": "/docs",
            "openapi": "/api/openapi.json"
        }
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "carebook.main:app",
        host="0.0.0.0",
        port=4000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
