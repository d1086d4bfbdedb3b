import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vendebot.core.config import CORS_ORIGINS, DATABASE_URL
from vendebot.core.database import Base, engine
from vendebot.core.logging_setup import configure_logging
from vendebot.core.startup_checks import (
    STARTUP_PREFIX,
    ensure_migrations_applied,
    validate_database_environment,
    warn_on_mock_providers,
)
from vendebot.middleware.observability import ObservabilityMiddleware
import vendebot.models  # garantiza que los modelos estén importados antes del create_all

from vendebot.routers.catalog import router as catalog_router
from vendebot.routers.conversations import router as conversations_router
from vendebot.routers.orders import router as orders_router
from vendebot.routers.simulator import router as simulator_router
from vendebot.routers.webhook import router as webhook_router
from vendebot.services.bot import build_bot_services

configure_logging()

logger = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
        warn_on_mock_providers()
    except Exception:
        logger.exception("%s ERROR startup failed", STARTUP_PREFIX)
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    _startup_tasks()
    if getattr(app.state, "bot", None) is None:
        app.state.bot = build_bot_services()
        logger.info(
            "%s servicios listos llm=%s whatsapp=%s",
            STARTUP_PREFIX,
            app.state.bot.llm.name,
            app.state.bot.whatsapp.name,
        )
    yield


app = FastAPI(
    title="VendéBot API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)

# Routers
app.include_router(webhook_router)
app.include_router(simulator_router)
app.include_router(catalog_router)
app.include_router(conversations_router)
app.include_router(orders_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
