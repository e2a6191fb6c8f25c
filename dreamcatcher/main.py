"""
AI Dream Catcher Backend API

Dream journal, AI dream analysis and the Dream Analyst chat, with free-plan
quotas and premium billing through Stripe and the App Store.
"""
from dotenv import load_dotenv
load_dotenv()

import logging
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True  # Override any existing configuration
)

logger = logging.getLogger(__name__)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dreamcatcher.api.routes import analysis, auth, billing, chat, dreams, moods, statistics
from dreamcatcher.core.config import settings
from dreamcatcher.core.error_handlers import register_error_handlers
from dreamcatcher.db.base import Base
from dreamcatcher.db.session import engine
# Import all models to ensure they're registered with Base
from dreamcatcher.models import User, UsageCounter, UserSubscription, Dream, Analysis, MoodEntry


def run_migrations() -> None:
    """Run Alembic migrations on startup. Uses alembic.ini and DATABASE_URL.
    Fails startup if migrations fail, so the DB is never left out of sync."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found, skipping Alembic migrations")
        return
    try:
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
        alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
        command.upgrade(alembic_cfg, "head")
        logger.info("Alembic migrations completed successfully")
    except Exception as e:
        logger.exception("Alembic migration failed: %s", e)
        raise  # Fail startup so DB is not left out of sync


app = FastAPI(title="AI Dream Catcher")
register_error_handlers(app)


@app.on_event("startup")
def startup_event():
    """SQLite (local development) gets create_all; every other database is migrated with Alembic."""
    if settings.is_sqlite:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created")
    else:
        run_migrations()

    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.warning("STRIPE_WEBHOOK_SECRET is not set; Stripe webhooks will be rejected")
    if not settings.OPENROUTER_API_KEY:
        logger.warning("OPENROUTER_API_KEY is not set; AI analysis and chat are unavailable")


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(dreams.router, prefix="/dreams", tags=["Dreams"])
app.include_router(analysis.router, prefix="/analysis", tags=["Analysis"])
app.include_router(chat.router, prefix="/chat", tags=["Chat"])
app.include_router(moods.router, prefix="/moods", tags=["Moods"])
app.include_router(statistics.router, prefix="/statistics", tags=["Statistics"])
app.include_router(billing.router, prefix="/billing", tags=["Billing"])


@app.get("/health")
def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT}
