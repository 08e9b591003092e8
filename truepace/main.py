from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from truepace.api.coach_chat import router as coach_chat_router
from truepace.config.settings import settings
from truepace.core.logger import setup_logger
from truepace.db.session import check_database_connection, init_db

setup_logger(level=settings.log_level, log_file=settings.log_file)

if not settings.openai_api_key:
    logger.warning("OPENAI_API_KEY is not set. Change summaries fall back to plain text.")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Check the database and create tables on startup.

    Note: FastAPI requires async for lifespan context manager,
    even if no await operations are used.
    """
    check_database_connection()
    logger.info("Ensuring database tables exist")
    init_db()
    yield
    logger.info("Shutting down")


app = FastAPI(title="TruePace Plan Mutation Engine", lifespan=lifespan)

app.include_router(coach_chat_router)


@app.get("/health")
def health():
    return {"status": "ok", "reference_timezone": settings.reference_timezone}
