"""
Imaginary Crime Lab - FastAPI Backend

Run:
    uvicorn crimelab.main:app --host 0.0.0.0 --port 8080
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crimelab import __version__
from crimelab.api import activity, admin, cases, checkout, webhooks
from crimelab.catalog import check_integrity
from crimelab.config import get_settings, create_postgres_pool, create_activity_recorder
from crimelab.repositories import CaseRepository, EvidenceLedger, PurchaseRepository
from crimelab.repositories.base import STORAGE_ERRORS
from crimelab.services.resolution_committer import ResolutionCommitter
from crimelab.services.storefront_client import StorefrontClient

logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings = app.state.settings
    db_pool = await create_postgres_pool()
    recorder = await create_activity_recorder()

    app.state.db_pool = db_pool
    app.state.recorder = recorder
    app.state.cases = CaseRepository(db_pool)
    app.state.ledger = EvidenceLedger(db_pool)
    app.state.purchases = PurchaseRepository(db_pool)
    app.state.committer = ResolutionCommitter(
        db_pool,
        app.state.cases,
        app.state.ledger,
        app.state.purchases,
        recorder,
        max_attempts=settings.commit_max_attempts,
        announce_lease_seconds=settings.announce_lease_seconds,
    )
    app.state.storefront = StorefrontClient.from_settings(settings)

    # Bad catalog data is a configuration error: refuse to start
    try:
        check_integrity(await app.state.cases.list_cases())
    except STORAGE_ERRORS as e:
        logger.warning(f"⚠️  Catalog integrity check skipped: {e}")

    logger.info("✅ Crime lab ready")
    yield

    # Shutdown
    await recorder.close()
    await db_pool.close()


def create_app(with_lifespan: bool = True) -> FastAPI:
    """
    Build the application.

    Tests pass with_lifespan=False and put their own services on app.state.
    """
    app = FastAPI(
        title="Imaginary Crime Lab",
        description="Case resolution engine and live activity feed",
        version=__version__,
        lifespan=lifespan if with_lifespan else None,
    )
    app.state.settings = get_settings()

    # Enable CORS for the storefront frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.include_router(cases.router)
    app.include_router(activity.router)
    app.include_router(checkout.router)
    app.include_router(webhooks.router)
    app.include_router(admin.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/health")
    async def api_health():
        return {"status": "ok", "service": "crimelab"}

    return app


app = create_app()
