from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tv_schedule.config import setup_logging
from tv_schedule.database import close_db, init_db
from tv_schedule.dependencies import get_sync_scheduler

from tv_schedule.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting TV Schedule Sync...")

    scheduler = get_sync_scheduler()
    try:
        logger.info("Initializing database...")
        await init_db()

        logger.info("Starting scheduler...")
        scheduler.start()

        logger.info("TV Schedule Sync started successfully")
    except Exception as e:
        logger.error(f"Failed to start TV Schedule Sync: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down TV Schedule Sync...")

    try:
        scheduler.shutdown()
    except Exception as e:
        logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)

    await close_db()
    logger.info("TV Schedule Sync stopped")


app = FastAPI(
    title="TV Schedule Sync",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(main_router)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    errors = []
    for error in exc.errors():
        errors.append({
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        })

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )
