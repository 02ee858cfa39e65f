"""
Order Service - Main FastAPI Application
"""
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from storefront import __version__
from storefront.common_logging import setup_logging
from storefront.common_instrumentation import setup_opentelemetry, instrument_fastapi, instrument_sqlalchemy
from storefront.api import routes
from storefront.db.database import init_database, create_tables, check_connection
from storefront.models.schemas import HealthResponse
from storefront.services.notifier import EmailNotifier
from storefront.services.payment_client import RazorpayClient
from storefront.config import settings

# Setup logging
setup_logging(
    service_name=settings.service_name,
    log_level=settings.log_level,
    log_format=settings.log_format
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    logger.info(f"Starting {settings.service_name}")
    logger.info(f"Environment: {settings.environment}")

    # Initialize database
    try:
        engine = init_database(settings.database_url)
        create_tables()
        logger.info("Database initialized successfully")

        if settings.otel_enabled:
            instrument_sqlalchemy(engine)

    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    # Payment provider client
    payment_client = RazorpayClient(
        key_id=settings.razorpay_key_id,
        key_secret=settings.razorpay_key_secret,
        base_url=settings.razorpay_api_url,
        timeout=settings.razorpay_timeout
    )
    if not payment_client.is_configured():
        logger.warning("Razorpay credentials not set - payment intents will fail")
    routes.payment_client = payment_client

    # Email notifications
    routes.notifier = EmailNotifier.from_settings(settings)

    if settings.otel_enabled:
        setup_opentelemetry(
            service_name=settings.otel_service_name or settings.service_name,
            otlp_endpoint=settings.otel_endpoint,
            enabled=settings.otel_enabled
        )

    logger.info(f"{settings.service_name} started successfully")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.service_name}")
    await payment_client.close()


app = FastAPI(
    title="Order Service",
    description="Storefront orders, payment intents and payment verification",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.otel_enabled:
    instrument_fastapi(app)

app.include_router(routes.router)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint (liveness probe)"""
    payment_provider = "unknown"
    if routes.payment_client:
        payment_provider = "configured" if routes.payment_client.is_configured() else "unconfigured"

    notifications = "unknown"
    if routes.notifier:
        notifications = "enabled" if routes.notifier.is_enabled() else "disabled"

    return HealthResponse(
        status="healthy",
        service=settings.service_name,
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        payment_provider=payment_provider,
        notifications=notifications
    )


@app.get("/ready")
async def readiness_check():
    """Readiness check endpoint (readiness probe)"""
    try:
        check_connection()
        return {
            "status": "ready",
            "service": settings.service_name,
            "database": "connected",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "service": settings.service_name,
                "database": "disconnected",
                "error": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        )


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.service_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready"
    }


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as {"message": ...}"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing input is a client error"""
    logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")

    return JSONResponse(
        status_code=400,
        content={
            "message": "Invalid request",
            "errors": jsonable_encoder(exc.errors())
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "message": "Server error",
            "type": exc.__class__.__name__
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storefront.main:app",
        host="0.0.0.0",
        port=8002,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
