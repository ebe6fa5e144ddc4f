"""
VeriSight API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups, and owns
the lifecycle of the MongoDB connection and the shared history store.

Extension points:
  - Add new route groups with app.include_router() below
  - Swap the detection backend by replacing the orchestrator's
    DetectionStrategies (see verisight/ai/strategies.py)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from verisight.ai.analysis_orchestrator import analysis_orchestrator
from verisight.core.config import settings
from verisight.core.database import close_mongo_connection, connect_to_mongo, get_db
from verisight.core.rate_limit import limiter
from verisight.routes.analysis import router as analysis_router
from verisight.routes.auth import router as auth_router
from verisight.routes.health import router as health_router
from verisight.services.history_store import HistoryStore
from verisight.services.kv_store import KeyValueStore

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Code before `yield` runs on startup; code after runs on shutdown.

    Startup connects to Mongo, loads history once and warms the detection
    models so the first analysis does not pay for it.
    """
    logger.info("Starting VeriSight API (env: %s)", settings.environment)
    await connect_to_mongo()

    app.state.history_store = HistoryStore(KeyValueStore(get_db()))
    await app.state.history_store.load()
    await analysis_orchestrator.initialize()

    yield

    logger.info("Shutting down VeriSight API")
    await app.state.history_store.close()
    await close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="VeriSight API",
    description=(
        "Deepfake analysis for video and audio: detection, decision and "
        "plain-language explanation. Scores are probabilistic, not proof."
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ─── Middleware ─────────────────────────────────────────────────────────────────
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
app.include_router(analysis_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "VeriSight API",
        "version": "0.1.0",
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
