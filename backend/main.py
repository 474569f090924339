from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from datetime import datetime
from contextlib import asynccontextmanager
from dotenv import load_dotenv
import uvicorn
import logging
import psutil

# Load environment variables before settings are read
load_dotenv()

from core.config import settings
from core.logging import setup_logging
from core.exceptions import (
    AppException,
    app_exception_handler,
    generic_exception_handler,
    request_validation_handler,
)
from core.middleware import setup_middleware, metrics_collector
from core.dependencies import get_container
from services.google_auth import ServiceAccountCredentials
from api.sheets_routes import router as sheets_router
from api.maintenance_routes import router as maintenance_router

setup_logging(
    level=settings.log_level,
    json_format=settings.log_json or settings.is_production,
    log_file=settings.log_file,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup/shutdown"""
    container = get_container()

    # Startup
    logger.info(f"🚀 {settings.app_name} starting ({settings.environment})")
    await container.store.connect()

    if ServiceAccountCredentials.from_settings(container.settings) is not None:
        logger.info("🔐 Google service account configured")
    elif container.settings.google_sheets_api_key:
        logger.info("🔑 Google Sheets API key configured")
    else:
        logger.info("📄 No Google credentials: imports need a per-request key or a published sheet")

    try:
        jobs = await container.config_service.start_scheduled_jobs()
        logger.info(f"⏰ Auto-refresh: {jobs} job(s) restored")
    except AppException as e:
        logger.error(f"❌ Could not restore scheduled imports: {e.message}")

    logger.info("✅ Server ready - Visit /api/docs for API documentation" if settings.debug else "✅ Server ready")

    yield

    # Shutdown
    logger.info("🛑 Shutting down gracefully...")
    await container.shutdown()


app = FastAPI(
    title="Recruitment Sheets Dashboard API",
    description="Imports recruiters, candidates, clients and performance from Google Sheets",
    version=settings.app_version,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
    lifespan=lifespan
)

app.include_router(sheets_router)
app.include_router(maintenance_router)

app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, generic_exception_handler)

setup_middleware(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,  # Cache preflight requests for 1 hour
)
logger.info(f"✅ CORS enabled for: {', '.join(settings.cors_origins_list)}")


@app.get("/api/ping")
async def ping():
    return {"message": settings.ping_message}


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    container = get_container()
    store = await container.store.health_check()

    try:
        system_info = {
            "cpu_percent": psutil.cpu_percent(interval=None),
            "memory_percent": psutil.virtual_memory().percent,
        }
    except (psutil.Error, OSError):
        system_info = {"status": "unavailable"}

    return {
        "status": "healthy" if store["status"] == "healthy" else "degraded",
        "timestamp": datetime.now().isoformat(),
        "version": settings.app_version,
        "store": store,
        "scheduler": {"jobs": container.scheduler.job_count},
        "sse_clients": container.broadcaster.client_count,
        "system": system_info,
        "requests": metrics_collector.get_metrics(),
    }


if __name__ == "__main__":
    uvicorn.run("main:app", host=settings.host, port=settings.port, reload=settings.debug)
