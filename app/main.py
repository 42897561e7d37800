"""
Behavioral Risk Aggregation Engine — FastAPI Application Entry Point

GET  /v1/assessments          → current risk table
POST /v1/assessments/refresh  → re-test backend + re-score all sessions
GET  /metrics                 → Prometheus
GET  /docs                    → OpenAPI / Swagger UI
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from app.aggregation.controller import AggregationController
from app.api.assessment_endpoint import router as assessment_router
from app.core.config import Settings, get_settings
from app.core.errors import InitializationError
from app.models.database import get_engine, get_sessionmaker
from app.services.live_feed import KafkaLiveRiskFeed, NullLiveRiskFeed
from app.services.pass_event_publisher import close_producer, publish_pass_event
from app.services.scoring_client import HttpScoringBackend
from app.services.session_store import SqlSessionStore

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.ConsoleRenderer() if get_settings().app_env == "development"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(get_settings().log_level),
)
logger = structlog.get_logger()


def build_controller(settings: Settings) -> AggregationController:
    feed = KafkaLiveRiskFeed.from_settings(settings) if settings.kafka_enabled else NullLiveRiskFeed()
    controller = AggregationController(
        store=SqlSessionStore(get_sessionmaker()),
        backend=HttpScoringBackend.from_settings(settings),
        feed=feed,
        concurrency=settings.batch_concurrency,
        progress_every=settings.progress_every,
        failure_threshold=settings.failure_threshold,
    )
    controller.add_pass_hook(publish_pass_event)
    return controller


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    owns_controller = getattr(app.state, "controller", None) is None
    if owns_controller:
        app.state.controller = build_controller(settings)
    controller: AggregationController = app.state.controller

    logger.info("risk_engine_starting", scoring_backend=settings.scoring_backend_url)
    if settings.autostart:
        try:
            await controller.start()
        except InitializationError as e:
            # Stay up in the unloaded state; POST /v1/assessments/reload retries.
            logger.error("initial_load_failed", error=str(e))

    yield

    logger.info("risk_engine_shutting_down")
    await controller.shutdown()
    await close_producer()
    if owns_controller:
        await get_engine().dispose()


app = FastAPI(
    title="Behavioral Risk Aggregation Engine",
    description="Batch + live behavioral-biometric risk assessment for user sessions",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (dashboard + internal tools) ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_methods=["POST", "GET"],
    allow_headers=["*"],
)

# ── Prometheus metrics ──
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── Routes ──
app.include_router(assessment_router)


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "behavior-risk-engine",
        "version": "1.0.0",
        "docs": "/docs",
        "assessments": "GET /v1/assessments",
    }
