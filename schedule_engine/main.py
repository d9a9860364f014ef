"""Schedule Engine Web Application."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from schedule_engine.core.config import settings
from schedule_engine.core.database import create_db_and_tables
from schedule_engine.core.dependencies import orchestrator
from schedule_engine.core.scheduler import shutdown_scheduler, start_scheduler
from schedule_engine.errors import ReauthenticationRequired, StoreError
from schedule_engine.routes import auth, conflicts, events, sync

# Configure logging
log_dir = Path.home() / ".logs" / "schedule_engine"
log_dir.mkdir(parents=True, exist_ok=True)
log_file = log_dir / "latest.log"

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
    logger.info("Starting Schedule Engine application")
    create_db_and_tables()
    try:
        await orchestrator.fetch_events()
    except StoreError as e:
        logger.error(f"Failed to load events at startup: {e}")
    start_scheduler()
    yield
    # Shutdown
    shutdown_scheduler()
    await orchestrator.drain()
    logger.info("Schedule Engine application shut down")


app = FastAPI(
    title=settings.app_name,
    description="Calendar scheduling engine: recurrence expansion, conflict detection, and optimistic event updates",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for external access
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


@app.exception_handler(ReauthenticationRequired)
async def reauthentication_handler(request: Request, exc: ReauthenticationRequired):
    """Calendar credentials were missing or rejected; the client must renew them."""
    logger.warning(f"Reauthentication required for {request.url.path}: {exc}")
    return JSONResponse(status_code=401, content={"detail": str(exc), "requires_reauth": True})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    """The event store failed; nothing was removed locally, so the caller may retry."""
    logger.error(f"Event store failure for {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": f"Event store failure: {exc}"})


# Include routers
app.include_router(auth.router)
app.include_router(conflicts.router)
app.include_router(events.router)
app.include_router(sync.router)


@app.get("/")
async def root(request: Request):
    """Redirect root to this week's events."""
    rp = request.scope.get("root_path", "")
    return RedirectResponse(f"{rp}/events")


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
