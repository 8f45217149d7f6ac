from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from .config import settings
from .database import init_db
from .routers import alerts, retention, webhooks
from .scheduler import start_scheduler, stop_scheduler
from .seeder import seed_demo_data

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Call QA API...")

    init_db()
    logger.info("Database tables created")

    if settings.auto_seed_demo:
        logger.info("Seeding demo data...")
        seed_demo_data()

    if settings.enable_retention_scheduler:
        start_scheduler(retention.get_sweeper(), settings.retention_interval_hours)

    logger.info("Call QA API started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Call QA API...")
    stop_scheduler()

def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="Call Center QA Pipeline",
        description="Automated evaluation of call center interactions",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else None
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
    app.include_router(alerts.router, prefix="/alerts", tags=["alerts"])
    app.include_router(retention.router, prefix="/retention", tags=["retention"])

    @app.get("/")
    async def root():
        return {"message": "Call Center QA Pipeline API", "version": "1.0.0"}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app

app = create_app()
