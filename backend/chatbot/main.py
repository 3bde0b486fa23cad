import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from chatbot.config import get_settings
from chatbot.db import postgres
from chatbot.core.security import register_user
from chatbot.api import auth, chat, conversations, system
from chatbot.log import configure_logging

VERSION = "0.1.0"


async def seed_demo_user() -> None:
    settings = get_settings()
    if not settings.seed_user_password:
        return
    user = await register_user("demo", settings.seed_user_password)
    if user:
        logger.info("Seeded demo user (username: demo)")
    else:
        logger.info("Demo user already exists, skipping seed")


async def connect_database(attempts: int = 10, delay: float = 2.0) -> None:
    for attempt in range(attempts):
        try:
            await postgres.create_pool()
            return
        except Exception as e:
            if attempt < attempts - 1:
                logger.warning(
                    "DB connection attempt {} failed: {}. Retrying in {}s...",
                    attempt + 1,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
            else:
                logger.error("Failed to connect to database after {} attempts", attempts)
                raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting chatbot backend...")
    logger.info(
        "Connecting to PostgreSQL at {}:{}", settings.postgres_host, settings.postgres_port
    )

    await connect_database()
    await postgres.init_schema()
    await seed_demo_user()
    logger.info("Chatbot backend ready (model provider: {})", settings.model_provider)
    yield

    await postgres.close_pool()
    logger.info("Chatbot backend shut down")


def create_app(use_lifespan: bool = True) -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="Chatbot API",
        version=VERSION,
        description="Streaming LLM chat relay with persisted conversations",
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router)
    app.include_router(chat.router)
    app.include_router(conversations.router)
    app.include_router(system.router)

    @app.get("/")
    async def root():
        return {"message": "Chatbot API", "version": VERSION, "docs": "/docs"}

    return app


app = create_app()
