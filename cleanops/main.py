import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all model modules so every table is registered on Base
from . import (
    models,  # noqa: F401
    models_chat,  # noqa: F401
    models_linen,  # noqa: F401
    models_notifications,  # noqa: F401
    models_payments,  # noqa: F401
    models_photos,  # noqa: F401
)
from .config import COMPANY_NAME
from .database import Base, engine
from .domain.bookings import router as bookings_router
from .domain.customers import router as customers_router
from .routes.activity_logs import router as activity_logs_router
from .routes.auth import router as auth_router
from .routes.chats import router as chats_router
from .routes.cleaners import router as cleaners_router
from .routes.coverage import router as coverage_router
from .routes.invoices import router as invoices_router
from .routes.invoices import webhook_router as invoiless_webhook_router
from .routes.linen import router as linen_router
from .routes.notifications import router as notifications_router
from .routes.notifications import webhook_router as resend_webhook_router
from .routes.payments import router as payments_router
from .routes.photos import router as photos_router
from .routes.quote_leads import router as quote_leads_router
from .routes.recurring import router as recurring_router
from .routes.stripe_webhooks import router as stripe_webhooks_router
from .routes.twilio_webhooks import router as sms_router
from .routes.twilio_webhooks import webhook_router as twilio_webhook_router
from .routes.users import router as users_router
from .services.invoiless_service import InvoilessError
from .services.stripe_service import StripeError
from .services.twilio_service import SMSError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    try:
        from .rate_limiter import get_redis_client

        get_redis_client().ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.warning(
            f"Redis connection failed - Rate limiting will operate in fail-open mode: {e}"
        )

    yield
    logger.info("Application shutting down...")


app = FastAPI(title=f"{COMPANY_NAME} Operations API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors from HTTPBearer to 401 authentication errors
    when the issue is with the Authorization header
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(StripeError)
async def stripe_exception_handler(request: Request, exc: StripeError):
    logger.error(f"❌ Stripe error on {request.url.path}: {exc.message} ({exc.code})")
    return JSONResponse(status_code=400, content={"success": False, **exc.as_dict()})


@app.exception_handler(InvoilessError)
async def invoiless_exception_handler(request: Request, exc: InvoilessError):
    logger.error(f"❌ Invoiless error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=502, content={"detail": f"Invoiless error: {exc.message}"})


@app.exception_handler(SMSError)
async def sms_exception_handler(request: Request, exc: SMSError):
    logger.error(f"❌ SMS error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": f"Failed to send SMS: {exc.message}"})


# CORS Configuration
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(customers_router)
app.include_router(cleaners_router)
app.include_router(bookings_router)
app.include_router(photos_router)
app.include_router(recurring_router)
app.include_router(payments_router)
app.include_router(invoices_router)
app.include_router(notifications_router)
app.include_router(chats_router)
app.include_router(sms_router)
app.include_router(linen_router)
app.include_router(activity_logs_router)
app.include_router(quote_leads_router)
app.include_router(coverage_router)

# Webhooks
app.include_router(stripe_webhooks_router)
app.include_router(invoiless_webhook_router)
app.include_router(resend_webhook_router)
app.include_router(twilio_webhook_router)


@app.get("/")
async def root():
    return {"message": f"{COMPANY_NAME} Operations API"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.get("/health/redis")
async def redis_health_check():
    """Check Redis connectivity for monitoring"""
    try:
        from .rate_limiter import get_redis_client

        redis_client = get_redis_client()

        start_time = time.time()
        redis_client.ping()
        response_time = (time.time() - start_time) * 1000

        info = redis_client.info()

        return {
            "status": "healthy",
            "redis": {
                "connected": True,
                "response_time_ms": round(response_time, 2),
                "version": info.get("redis_version", "unknown"),
                "used_memory_human": info.get("used_memory_human", "unknown"),
                "connected_clients": info.get("connected_clients", 0),
            },
        }
    except Exception as e:
        return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}
