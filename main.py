"""
OData Shop - Application Entry Point
======================================
FastAPI app initialization, middleware, exception mapping, and router
registration.
"""

import logging
import time as _time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import settings
from config.database import Base, SessionLocal, engine
from common.exceptions import ConcurrencyConflict, InvalidArgument, InvalidOperation, PersistenceError

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("shop")
access_logger = logging.getLogger("shop.request")

# ==========================================
# Import routers (and with them, every model)
# ==========================================
from modules.catalog.routes import router as product_router
from modules.customer.routes import router as customer_router
from modules.order.routes import router as order_router
from modules.odata.routes import router as odata_router
from modules.repository.unit_of_work import UnitOfWork
from modules.seed.service import seed_database


@asynccontextmanager
async def lifespan(app):
    # Auto-create any missing tables (safe for existing tables)
    Base.metadata.create_all(bind=engine)

    if settings.SEED_ON_STARTUP:
        with UnitOfWork(SessionLocal) as uow:
            seed_database(uow)
    logger.info(f"{settings.APP_TITLE} {settings.APP_VERSION} started")
    yield
    logger.info(f"{settings.APP_TITLE} stopped")


# ==========================================
# Create App
# ==========================================
app = FastAPI(
    title=settings.APP_TITLE,
    description="Customers, products and orders over REST and OData-style queries",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)


# ==========================================
# Exception handlers: data-layer errors -> HTTP
# ==========================================
async def invalid_request_handler(request: Request, exc: Exception):
    return JSONResponse({"detail": exc.message}, status_code=400)


async def conflict_handler(request: Request, exc: ConcurrencyConflict):
    return JSONResponse({"detail": exc.message}, status_code=409)


async def persistence_error_handler(request: Request, exc: PersistenceError):
    # Cause already logged with traceback by the unit of work
    return JSONResponse({"detail": exc.message}, status_code=500)


app.add_exception_handler(InvalidArgument, invalid_request_handler)
app.add_exception_handler(InvalidOperation, invalid_request_handler)
app.add_exception_handler(ConcurrencyConflict, conflict_handler)
app.add_exception_handler(PersistenceError, persistence_error_handler)


# ==========================================
# Middleware: Request Log
# ==========================================
_SKIP_PATHS = ("/health", "/favicon.ico")


@app.middleware("http")
async def request_logger(request: Request, call_next):
    """One log line per request: method, path, status, elapsed time."""
    path = request.url.path
    if any(path.startswith(p) for p in _SKIP_PATHS):
        return await call_next(request)

    start = _time.time()
    response = await call_next(request)
    elapsed_ms = int((_time.time() - start) * 1000)

    query = f"?{request.url.query}" if request.url.query else ""
    access_logger.info(f"{request.method} {path}{query} -> {response.status_code} ({elapsed_ms} ms)")
    return response


# ==========================================
# Register Routers
# ==========================================
app.include_router(product_router)
app.include_router(customer_router)
app.include_router(order_router)
app.include_router(odata_router)


# ==========================================
# Health check
# ==========================================
@app.get("/health")
async def health():
    return {"status": "ok", "version": settings.APP_VERSION}
