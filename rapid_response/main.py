"""
Rapid Response Hub API — Application entry point.

Bootstraps FastAPI, wires up middleware and error handlers, registers
route groups, and manages the MongoDB connection and notification
dispatcher lifecycle.

Run locally:
    uvicorn rapid_response.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from rapid_response.core.config import settings
from rapid_response.core.database import close_mongo_connection, connect_to_mongo
from rapid_response.core.errors import RapidResponseError
from rapid_response.core.rate_limit import limiter
from rapid_response.routes.auth import router as auth_router
from rapid_response.routes.contacts import router as contacts_router
from rapid_response.routes.health import API_VERSION
from rapid_response.routes.health import router as health_router
from rapid_response.routes.incidents import router as incidents_router
from rapid_response.routes.notifications import router as notifications_router
from rapid_response.routes.sos import router as sos_router
from rapid_response.routes.users import router as users_router
from rapid_response.services.notifier import NotificationDispatcher, NotifierConfig

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Rapid Response Hub API (env: %s)", settings.environment)
    await connect_to_mongo()
    app.state.dispatcher = NotificationDispatcher(NotifierConfig.from_settings(settings))
    yield
    logger.info("Shutting down Rapid Response Hub API")
    await close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Rapid Response Hub API",
    description=(
        "Community incident reporting with crowd verification, SOS alerts "
        "to emergency contacts, and in-app notifications."
    ),
    version=API_VERSION,
    lifespan=lifespan,
    # No interactive docs in production
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Routes opt in with @limiter.limit("N/minute") + a request: Request parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ─── Error handlers ────────────────────────────────────────────────────────────
@app.exception_handler(RapidResponseError)
async def domain_error_handler(request: Request, exc: RapidResponseError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Server error", "error": str(exc)},
    )


# ─── Middleware ────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])

app.include_router(auth_router)
app.include_router(users_router)

app.include_router(incidents_router)
app.include_router(sos_router)
app.include_router(contacts_router)
app.include_router(notifications_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "Rapid Response Hub API",
        "version": API_VERSION,
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
