from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from dotenv import load_dotenv
import logging
import httpx
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .routers.uploads import router as uploads_router
from .routers.chat import router as chat_router
from ..config import get_settings
from ..observability.metrics import metrics_middleware_factory
from ..services.context_store import get_context_store

load_dotenv()  # Load environment variables from .env if present (COMPANION_UPSTREAM_URL, REDIS_URL, etc.)

logger = logging.getLogger("companion.api")

API_NAME = "Companion Chat API"
API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    limits = httpx.Limits(max_connections=50, max_keepalive_connections=20)
    app.state.http_client = httpx.AsyncClient(limits=limits)
    logger.info("Streaming from %s (model=%s)", settings.upstream_url, settings.model)
    yield
    await app.state.http_client.aclose()


app = FastAPI(title=API_NAME, version=API_VERSION, lifespan=lifespan)

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

# Routers
app.include_router(uploads_router)
app.include_router(chat_router)

# Also expose the same routers under /api
app.include_router(uploads_router, prefix="/api")
app.include_router(chat_router, prefix="/api")

# CORS for the browser client issuing the upload
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _health_payload() -> dict:
    settings = get_settings()
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "context_store": getattr(get_context_store(), "backend_name", "memory"),
            "upstream": settings.upstream_url,
        },
    }


@app.get("/")
def root():
    return {"name": API_NAME, "version": API_VERSION}


@app.get("/health")
def health():
    return _health_payload()


@app.get("/metrics")
def metrics() -> Response:
    # Expose Prometheus metrics
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


# API-prefixed convenience routes (kept alongside non-prefixed routes)
@app.get("/api")
def api_root():
    return {"name": API_NAME, "version": API_VERSION}


@app.get("/api/health")
def api_health():
    return _health_payload()


@app.get("/api/metrics")
def api_metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
