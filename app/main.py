from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.errors import AppointmentConflictError, NotFoundError
from app.core.logging import setup_logging
from app.jobs.scheduler import get_scheduler
from app.services.db import init_db

settings = get_settings()
setup_logging(settings.logging.level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    scheduler = get_scheduler() if settings.scheduler_enabled else None
    if scheduler:
        scheduler.start()
        logger.info("Scheduler started with {count} jobs", count=len(scheduler.get_jobs()))
    yield
    if scheduler:
        scheduler.shutdown(wait=False)


app = FastAPI(title="Clinic Scheduling Core", version="0.1.0", lifespan=lifespan)

app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    logger.warning("{path}: {error}", path=request.url.path, error=exc)
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(AppointmentConflictError)
async def conflict_handler(request: Request, exc: AppointmentConflictError) -> JSONResponse:
    logger.info("{path}: {error}", path=request.url.path, error=exc)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": str(exc),
            "conflicting_ids": [slot.id for slot in exc.conflicts],
        },
    )


@app.exception_handler(ValueError)
async def invalid_request_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning("Invalid request {path}: {error}", path=request.url.path, error=exc)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error for {path}", path=request.url.path)
    return JSONResponse(status_code=500, content={"status": "error", "message": str(exc)})
