"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import app.models  # noqa: F401
from app.config import get_settings
from app.database import Base, engine
from app.errors import LabError, PersistenceError
from app.routers.admin import router as admin_router
from app.routers.authorization import router as authorization_router
from app.routers.bootstrap import router as bootstrap_router
from app.routers.checkout import router as checkout_router
from app.routers.inventory import router as inventory_router
from app.routers.issues import router as issues_router
from app.routers.requests import router as requests_router
from app.routers.users import router as users_router
from app.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Configure logging and initialize database schema on startup.

    Yields
    ------
    None
        Runs the application lifespan.
    """
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    logger.info("Schema ready")
    yield


def _error(status_code: int, message: str, error: str) -> JSONResponse:
    body = ErrorResponse(message=message, error=error)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def handle_lab_error(_: Request, exc: LabError) -> JSONResponse:
    """Render a domain error."""
    return _error(exc.status_code, exc.message, exc.code)


async def handle_validation_error(
    _: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures as a single message."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"] if part != "body")
        problems.append(f"{location}: {error['msg']}" if location else error["msg"])
    return _error(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "; ".join(problems) or "Invalid request",
        "validation_error",
    )


async def handle_http_error(
    _: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Render framework HTTP errors such as unknown routes."""
    return _error(exc.status_code, str(exc.detail), "http_error")


async def handle_integrity_error(_: Request, exc: IntegrityError) -> JSONResponse:
    """Render constraint violations without leaking driver text."""
    logger.warning("Integrity error: %s", exc.orig)
    return _error(
        status.HTTP_409_CONFLICT,
        "The change conflicts with existing data",
        PersistenceError.code,
    )


async def handle_database_error(_: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Render unexpected store failures without leaking driver text."""
    logger.error("Database error", exc_info=exc)
    return _error(
        PersistenceError.status_code,
        PersistenceError.default_message,
        PersistenceError.code,
    )


app = FastAPI(title=get_settings().app_name, lifespan=lifespan)
app.add_exception_handler(LabError, handle_lab_error)
app.add_exception_handler(RequestValidationError, handle_validation_error)
app.add_exception_handler(StarletteHTTPException, handle_http_error)
app.add_exception_handler(IntegrityError, handle_integrity_error)
app.add_exception_handler(SQLAlchemyError, handle_database_error)
app.include_router(bootstrap_router)
app.include_router(users_router)
app.include_router(inventory_router)
app.include_router(requests_router)
app.include_router(authorization_router)
app.include_router(checkout_router)
app.include_router(issues_router)
app.include_router(admin_router)
