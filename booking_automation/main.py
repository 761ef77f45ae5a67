import logging
from contextlib import asynccontextmanager

from arq import create_pool
from fastapi import FastAPI

from .domain.appointments.router import router as appointments_router
from .queue import JobQueue
from .routes import reminders_router
from .worker import get_redis_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("google").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        pool = await create_pool(get_redis_settings())
    except Exception as e:
        logger.error(f"❌ Failed to connect to job queue: {e}")
        raise
    app.state.job_queue = JobQueue(pool)
    logger.info("✅ Job queue connected")

    yield

    await pool.close()
    logger.info("Application shut down")


app = FastAPI(title="Booking Automation", lifespan=lifespan)

app.include_router(appointments_router)
app.include_router(reminders_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
