import logging
from dotenv import load_dotenv
from fastapi import FastAPI
from mangum import Mangum
from starlette.middleware.cors import CORSMiddleware

from squadapi import containers
from squadapi.config import settings
from squadapi.core.exception_handlers import register_exception_handlers
from squadapi.core.logging_middleware import LoggingMiddleware
from squadapi.logging_config import setup_logging
from squadapi.routers import (
    challenge_router,
    health_router,
    judge_router,
    power_router,
    star_router,
)

load_dotenv("squadapi/.env")
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL, debug=settings.DEBUG)

    app = FastAPI(title=settings.PROJECT_NAME, debug=settings.DEBUG)
    app.container = containers.Container()  # type: ignore

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    register_exception_handlers(app)

    app.include_router(health_router.router)
    app.include_router(star_router.router, prefix=settings.API_V1_STR)
    app.include_router(power_router.router, prefix=settings.API_V1_STR)
    app.include_router(challenge_router.router, prefix=settings.API_V1_STR)
    app.include_router(judge_router.router, prefix=settings.API_V1_STR)

    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
    return app


app = create_app()

handler = Mangum(app)
