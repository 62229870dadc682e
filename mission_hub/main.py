# mission_hub/main.py

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import time

from .config.settings import settings
from .config.database import connect_to_mongo, close_mongo_connection, create_indexes
from .routers import missions, mission_students, mentorship_groups, mission_mentors

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info(f"🚀 Starting {settings.app_name}...")
    await connect_to_mongo()

    await create_indexes()
    logger.info("✅ Database indexes ensured")

    logger.info("=" * 60)
    logger.info("✅ APPLICATION STARTUP COMPLETE")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info(f"🛑 Shutting down {settings.app_name}...")
    await close_mongo_connection()
    logger.info("✅ Application shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Mission Hub - mission enrollment, mentorship groups and mentor workload API",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add processing time to response headers"""
    start_time = time.time()
    try:
        response = await call_next(request)
        response.headers["X-Process-Time"] = str(time.time() - start_time)
        return response
    except Exception as e:
        logger.error(f"Request failed: {request.method} {request.url} - Error: {str(e)}", exc_info=True)
        raise

@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "message": f"{settings.app_name} is running",
        "version": settings.version,
        "modules": ["missions", "mission-students", "mentorship-groups", "mission-mentors"]
    }

app.include_router(missions.router)
app.include_router(mission_students.router)
app.include_router(mentorship_groups.router)
app.include_router(mission_mentors.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "mission_hub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
