from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from loguru import logger

from pacelab.api.intelligence import router as intelligence_router
from pacelab.config.settings import settings
from pacelab.core.logger import setup_logger
from pacelab.db.session import init_db
from pacelab.services.adaptation.scheduler import register_adaptation_job


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Configure logging and storage, and start the weekly adaptation scheduler."""
    setup_logger(level=settings.log_level, log_file=settings.log_file or None, json_logs=settings.log_json)

    if not settings.openai_api_key and settings.decision_capability == "llm":
        logger.warning("OPENAI_API_KEY is not set. Daily decisions will be unavailable.")

    logger.info("Ensuring database tables exist")
    init_db()

    scheduler = None
    if settings.adaptation_scheduler_enabled:
        scheduler = BackgroundScheduler(timezone="UTC")
        register_adaptation_job(scheduler)
        scheduler.start()
        logger.info("[SCHEDULER] Started adaptation scheduler")

    yield

    if scheduler is not None:
        scheduler.shutdown()
        logger.info("[SCHEDULER] Stopped adaptation scheduler")


app = FastAPI(title="Pacelab", lifespan=lifespan)

app.include_router(intelligence_router)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests."""
    logger.debug(f"Request: {request.method} {request.url.path}")
    response = await call_next(request)
    logger.debug(f"Response: {response.status_code} for {request.method} {request.url.path}")
    return response
