"""
Edge Analytics & Promotion Redemption Service
Main FastAPI application entry point.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import re
import time

from edge_analytics.config import settings
from edge_analytics.errors import catch_unhandled_errors, install_exception_handlers
from edge_analytics.api import admin, qr, stats, system, tracking

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

_REPEATED_SLASHES = re.compile(r"/{2,}")


class PathNormalizeMiddleware:
    """
    Collapse repeated slashes and drop a trailing slash before routing,
    so ``/api//stats/`` and ``/api/stats`` reach the same handler.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            path = normalize_path(scope["path"])
            if path != scope["path"]:
                scope = dict(scope)
                scope["path"] = path
                scope["raw_path"] = path.encode("utf-8")
        await self.app(scope, receive, send)


def normalize_path(path: str) -> str:
    path = _REPEATED_SLASHES.sub("/", path or "/")
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return path


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info(f"Starting Edge Analytics service ({settings.APP_ENV})...")
    logger.info(f"Catalog origin: {settings.SITE_ORIGIN}")

    yield

    # Shutdown
    logger.info("Shutting down Edge Analytics service...")


app = FastAPI(
    title="Edge Analytics",
    description="""
    ## Per-location analytics and promotion redemption

    - Event counters per location and local day
    - QR scan log with campaign attribution
    - One-time redeem tokens for promotions
    - Dashboard range queries
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(PathNormalizeMiddleware)

# Added before CORS so error responses pass back through it
app.middleware("http")(catch_unhandled_errors)

# CORS middleware; preflights are answered here, before routing
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", settings.INTERNAL_REDEEM_HEADER],
    max_age=600,
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add request processing time to response headers."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


install_exception_handlers(app)

# Include routers
app.include_router(system.router)
app.include_router(tracking.router)
app.include_router(stats.router)
app.include_router(qr.router)
app.include_router(admin.router)


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API info."""
    return {
        "service": "Edge Analytics",
        "version": "1.0.0",
        "status": "running",
        "health": "/api/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "edge_analytics.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.APP_DEBUG
    )
