import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import models  # noqa: F401
from .config import ALLOWED_ORIGINS
from .database import Base, engine
from .domain.applications.router import chef_router as applications_chef_router
from .domain.applications.router import manager_router as applications_manager_router
from .domain.applications.router import router as applications_router
from .domain.bookings.router import chef_router as bookings_chef_router
from .domain.bookings.router import manager_router as bookings_manager_router
from .domain.damage_claims.router import admin_router as damage_claims_admin_router
from .domain.damage_claims.router import chef_router as damage_claims_chef_router
from .domain.damage_claims.router import manager_router as damage_claims_manager_router
from .domain.damage_claims.router import router as damage_claims_router
from .domain.kitchens.router import public_router as kitchens_public_router
from .domain.kitchens.router import router as kitchens_router
from .domain.locations.router import admin_router as locations_admin_router
from .domain.locations.router import public_router as locations_public_router
from .domain.locations.router import router as locations_router
from .domain.payments.router import router as payments_router
from .domain.payments.router import webhooks_router as stripe_webhooks_router
from .routes.cron import router as cron_router
from .routes.upload import router as upload_router
from .routes.users import router as users_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("stripe").setLevel(logging.WARNING)


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

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Local Cooks API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors on the Authorization header to 401
    authentication errors
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
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors with the exception objects pydantic puts in ctx turned into strings"""
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors


logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(users_router)
app.include_router(locations_router)
app.include_router(locations_public_router)
app.include_router(locations_admin_router)
app.include_router(kitchens_router)
app.include_router(kitchens_public_router)
app.include_router(applications_chef_router)
app.include_router(applications_manager_router)
app.include_router(applications_router)
app.include_router(bookings_chef_router)
app.include_router(bookings_manager_router)
app.include_router(payments_router)
app.include_router(stripe_webhooks_router)
app.include_router(damage_claims_manager_router)
app.include_router(damage_claims_chef_router)
app.include_router(damage_claims_admin_router)
app.include_router(damage_claims_router)
app.include_router(upload_router)
app.include_router(cron_router)


@app.get("/")
def root():
    return {"message": "Local Cooks API is running"}


@app.get("/health")
def health():
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

        return {
            "status": "healthy",
            "redis": {"connected": True, "response_time_ms": round(response_time, 2)},
        }
    except Exception as e:
        return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}
