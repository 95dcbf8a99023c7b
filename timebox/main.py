"""Timebox Planner Web Application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timebox.core.config import settings
from timebox.core.database import create_db_and_tables
from timebox.core.errors import register_error_handlers
from timebox.core.scheduler import shutdown_scheduler, start_scheduler
from timebox.routes import items, planners, priorities, time_blocks

# Configure logging
settings.log_dir.mkdir(parents=True, exist_ok=True)
log_file = settings.log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    logger.info("Starting Timebox Planner application")
    create_db_and_tables()
    start_scheduler()
    yield
    # Shutdown
    shutdown_scheduler()
    logger.info("Timebox Planner application shut down")


app = FastAPI(
    title=settings.app_name,
    description="Daily planner linking a brain dump, three top priorities and a time-boxed schedule",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for the presentation layer
origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Include routers
app.include_router(planners.router)
app.include_router(items.router)
app.include_router(priorities.router)
app.include_router(time_blocks.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
