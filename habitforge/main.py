import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

# Load env from the working directory's .env (tests configure env explicitly)
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

# Import after dotenv is loaded
from habitforge.core.config import settings, validate_config
from habitforge.core.logging import configure_logging
from habitforge.core.middleware.request_id import RequestIdMiddleware
from habitforge.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from habitforge.api import experience, habits, health, leaderboard, profile, streaks
from habitforge.features.engine import get_habit_engine, init_habit_engine

configure_logging(settings.ENV, settings.LOG_LEVEL, settings.LOG_FORMAT)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("habitforge")
    logger.info("Starting habitforge...")
    engine = init_habit_engine(settings)
    if engine.backend == "sql":
        from habitforge.core.database import create_all_tables

        create_all_tables()
    try:
        yield
    finally:
        completion = get_habit_engine().completion
        if len(completion.pending):
            completion.retry_pending_awards()
        pending = len(completion.pending)
        if pending:
            logger.warning("Stopping with unrecorded awards", extra={"pending_awards": pending})
        logger.info("Stopping habitforge...")


app = FastAPI(title="habitforge - Streak & Experience Engine", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(streaks.router, tags=["streaks"])
app.include_router(habits.router, tags=["habits"])
app.include_router(experience.router, tags=["experience"])
app.include_router(leaderboard.router, tags=["leaderboard"])
app.include_router(profile.router, tags=["profile"])
app.include_router(health.router)
