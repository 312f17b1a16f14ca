from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os

from .config import settings
from .database import engine, Base
from . import models  # noqa: F401, registers tables on Base.metadata
from .production.cascade import get_default_resolver
from .routers import production

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("s2p.production")

# Create tables (handles new tables but won't add columns to existing ones)
Base.metadata.create_all(bind=engine)


def _run_migrations():
    """Run pending Alembic migrations on startup.

    Handles databases that were created by Base.metadata.create_all() before
    Alembic was introduced: if alembic_version doesn't exist but the production
    tables do, stamps the initial revision as applied first.
    """
    try:
        from alembic.config import Config
        from alembic import command
        from sqlalchemy import inspect

        alembic_ini = os.path.join(os.path.dirname(__file__), "..", "alembic.ini")
        if not os.path.exists(alembic_ini):
            logger.info("alembic.ini not found, skipping migrations")
            return

        alembic_cfg = Config(alembic_ini)

        # Override sqlalchemy.url from environment if DATABASE_URL is set
        database_url = os.environ.get("DATABASE_URL")
        if database_url:
            alembic_cfg.set_main_option("sqlalchemy.url", database_url)

        insp = inspect(engine)
        has_alembic = "alembic_version" in insp.get_table_names()
        has_projects = "production_projects" in insp.get_table_names()

        if not has_alembic and has_projects:
            logger.info("Stamping base migration 5a1c0e7d2b34 (tables already exist)")
            command.stamp(alembic_cfg, "5a1c0e7d2b34")

        logger.info("Running pending Alembic migrations...")
        command.upgrade(alembic_cfg, "head")
        logger.info("Migrations complete")

    except Exception as e:
        # Never let migration errors prevent app startup
        logger.warning(f"Alembic migration warning: {e}")


app = FastAPI(
    title=settings.APP_NAME,
    description="Scan-to-BIM production pipeline with stage prefill cascade",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(production.router, prefix="/api")


@app.get("/health")
def health():
    return {"status": "ok", "app": "s2p-production"}


@app.on_event("startup")
def auto_migrate():
    """Run pending Alembic migrations on startup."""
    _run_migrations()


@app.on_event("startup")
def validate_prefill_table():
    """Build the mapping table once so a bad mapping fails at boot, not mid-advance."""
    resolver = get_default_resolver()
    logger.info(
        "Prefill cascade ready: %d mappings, %d derivations",
        len(resolver.table), len(resolver.registry),
    )
