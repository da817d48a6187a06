"""FastAPI application entrypoint.

Responsibilities kept minimal:
  * App / lifespan initialization
  * Router registration (auth, LinkedIn integrations, content publishing)
  * Cross-cutting concerns: logging, metrics middleware, tracing & exception handlers
"""

from contextlib import asynccontextmanager
import logging
import os
import time
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

from .api.auth import router as auth_router
from .api.content import router as content_router
from .api.integrations import router as integrations_router
from .db.session import ensure_tables
from .dependencies import build_services
from .errors import BaseAppException
from .logging_setup import configure_logging
from .services.state_store import RedisStateStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - simple startup path
    """Create tables for local SQLite runs; deployments migrate with Alembic."""
    ensure_tables()
    yield


if os.getenv("APP_LOAD_DOTENV") in {"1", "true", "TRUE", "yes", "on"}:  # pragma: no cover
    from dotenv import load_dotenv
    # Respect existing env (override=False). Default search walks up from CWD.
    load_dotenv(override=False)

configure_logging()

app = FastAPI(title="Content Publisher API", version="0.1.0", lifespan=lifespan)
app.state.services = build_services()

# --- OpenTelemetry Tracing (exporter only when an endpoint is configured) ---
if os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"):  # pragma: no cover
    resource = Resource.create({"service.name": "content-publisher-backend"})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"))))
    trace.set_tracer_provider(provider)
    tracer = trace.get_tracer(__name__)
else:
    tracer = None

# --- Metrics setup ---
REQUEST_COUNT = Counter(
    "content_publisher_requests_total", "Total HTTP requests", ["method", "path", "status"]
)
REQUEST_LATENCY = Histogram(
    "content_publisher_request_latency_seconds", "Latency of HTTP requests", ["method", "path"]
)

# --- CORS (for local frontend dev) ---
cors_origins_env = os.getenv("CORS_ALLOW_ORIGINS")
if cors_origins_env:
    allow_origins = [o.strip() for o in cors_origins_env.split(",") if o.strip()]
else:
    allow_origins = ["http://localhost:3000"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(integrations_router)
app.include_router(content_router)


def _path_label(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    method = request.method
    started = time.perf_counter()
    if tracer:
        with tracer.start_as_current_span(f"HTTP {method}"):
            response: Response = await call_next(request)
    else:
        response: Response = await call_next(request)
    # route template is only known after routing, e.g. /content-pieces/{content_piece_id}/publish
    path_label = _path_label(request)
    REQUEST_LATENCY.labels(method=method, path=path_label).observe(time.perf_counter() - started)
    REQUEST_COUNT.labels(method=method, path=path_label, status=str(response.status_code)).inc()
    return response


@app.get("/metrics")
def metrics():  # pragma: no cover - external scrape
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.exception_handler(BaseAppException)
async def app_exception_handler(request: Request, exc: BaseAppException):
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": {"code": exc.code, "message": exc.message}},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):  # pragma: no cover
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": {"code": "INTERNAL_ERROR", "message": "unexpected error"}},
    )


@app.get("/healthz")
async def health(request: Request):
    health = {"status": "ok"}
    store = request.app.state.services.sessions.state_store
    backend = 'redis' if isinstance(store, RedisStateStore) else 'memory'
    health['oauthStateBackend'] = backend
    if backend == 'redis':
        try:
            health['redis'] = 'up' if store.redis.ping() else 'down'
        except Exception as exc:
            logger.warning("redis ping failed: %s", exc)
            health['redis'] = 'error'
    health['linkedinConfigured'] = request.app.state.services.settings.is_configured
    health['tracing'] = 'enabled' if tracer else 'disabled'
    return health
