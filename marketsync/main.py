# marketsync/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException

from marketsync.core.exceptions import BusinessError
from marketsync.core.logging_config import configure_logging
from marketsync.routes import health
from marketsync.routes.api import categories, integrations, orders, prices, products, supplies
from marketsync.scheduler import start_scheduler, stop_scheduler
from marketsync.schemas.base import error_response

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await start_scheduler()
    try:
        yield
    finally:
        await stop_scheduler()


app = FastAPI(
    title="Marketplace Sync",
    lifespan=lifespan
)


def _validation_errors(exc: RequestValidationError) -> dict:
    errors = {}
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body") or "request"
        errors.setdefault(location, []).append(item.get("msg", "Invalid value"))
    return errors


@app.exception_handler(BusinessError)
async def business_error_handler(request: Request, exc: BusinessError):
    logger.info(f"{request.method} {request.url.path}: {exc.user_message}")
    return JSONResponse(status_code=exc.status_code, content=error_response(exc.user_message, exc.errors))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=422, content=error_response("The given data was invalid", _validation_errors(exc)))


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.critical(f"{request.method} {request.url.path}: unique key violation: {exc}")
    return JSONResponse(status_code=409, content=error_response("Some records are not unique"))


@app.exception_handler(Exception)
async def system_error_handler(request: Request, exc: Exception):
    logger.critical(f"{request.method} {request.url.path}: unhandled error", exc_info=exc)
    return JSONResponse(status_code=500, content=error_response("System error"))


app.include_router(products.router)
app.include_router(categories.router)
app.include_router(prices.router)
app.include_router(orders.router)
app.include_router(supplies.router)
app.include_router(integrations.router)
app.include_router(health.router)
