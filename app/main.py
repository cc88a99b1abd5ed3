"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import database
from app.errors import OperationFailedError, StorageError
from app.repositories.entry_repository import MongoEntryRepository
from app.routers import durations, timers, valuation
from app.services.ticker import TimerTicker

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    # Startup
    await database.connect()
    app.state.ticker = TimerTicker(
        MongoEntryRepository(database.db),
        interval=settings.timer_tick_seconds,
        grid_minutes=settings.quantization_grid_minutes,
    )
    yield
    # Shutdown
    await app.state.ticker.shutdown()
    await database.disconnect()


app = FastAPI(
    title="Effort Service API",
    description="Time tracking, live timers and budget valuation",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OperationFailedError)
async def operation_failed_handler(request: Request, exc: OperationFailedError):
    """Storage failures surface as 503 naming the failed operation."""
    logger.error("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": str(exc), "operation": exc.operation},
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    """Reads that hit an unavailable store also surface as 503."""
    logger.error("%s %s: storage unavailable: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})


# Include routers
app.include_router(timers.router)
app.include_router(valuation.router)
app.include_router(durations.router)


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {"status": "ok", "message": "Effort Service API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
