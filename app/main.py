import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from app.api.endpoints import ai, analytics, health, notifications, orders, products, stores, usage
from app.db import engine
from app.exceptions import AppError, ValidationFailedError
from app.models import DropshipBase
from app.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="DropScout API")

app.include_router(products.router, prefix="/api/products", tags=["Products"])
app.include_router(ai.router, prefix="/api/ai", tags=["AI"])
app.include_router(stores.router, prefix="/api/stores", tags=["Stores"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(usage.router, prefix="/api/usage", tags=["Usage"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])
app.include_router(health.router, prefix="/api/health", tags=["Health"])


def _error(status_code: int, error: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} {exc.context}")
    return _error(exc.status_code, exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else str(first.get("msg") or "Invalid request")
    return _error(400, ValidationFailedError(message).to_dict())


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} integrity error: {exc.orig}")
    return _error(409, AppError("Duplicate entry", 409, "DUPLICATE").to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"{request.method} {request.url.path} unhandled error: {exc}")
    return _error(500, AppError("Internal server error").to_dict())


@app.on_event("startup")
def on_startup() -> None:
    # Alembic owns the schema; this is for local runs against an empty database
    if os.getenv("DB_AUTO_CREATE_TABLES", "").strip() in ("1", "true", "TRUE", "yes", "YES"):
        DropshipBase.metadata.create_all(bind=engine)


@app.get("/health")
def health_check() -> dict:
    return {"status": "ok"}
