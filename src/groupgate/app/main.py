"""FastAPI application entry point for the groupgate bot."""

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from groupgate.app.config import get_settings
from groupgate.infra.database import create_engine, create_session_factory, init_db
from groupgate.infra.telegram_client import TelegramAPIError, TelegramClient
from groupgate.services.command_menu import register_commands
from groupgate.services.config_store import ConfigStore
from groupgate.services.update_router import (
    UpdateDispatcher,
    create_router,
    polling_loop,
    session_sweep_loop,
)

logger = logging.getLogger(__name__)


async def _configure_delivery(client: TelegramClient) -> None:
    """Point Telegram at our webhook, or clear it so getUpdates works."""
    try:
        if settings.use_polling:
            await client.delete_webhook()
        else:
            await client.set_webhook(settings.webhook_url, settings.webhook_secret)
    except TelegramAPIError as e:
        logger.warning("Failed to configure update delivery: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: wire the bot, start the worker and background jobs."""
    db_engine = create_engine(settings.database_url)
    await init_db(db_engine)

    client = TelegramClient(settings.telegram_token, settings.telegram_api_base)
    store = ConfigStore(create_session_factory(db_engine), settings.default_greeting)
    router = create_router(client, store, settings)
    dispatcher = UpdateDispatcher(router)
    app.state.dispatcher = dispatcher

    await register_commands(client, settings.group_id)
    await _configure_delivery(client)

    tasks = [
        asyncio.create_task(dispatcher.run()),
        asyncio.create_task(session_sweep_loop(router.engines, settings.session_sweep_seconds)),
    ]
    if settings.use_polling:
        tasks.append(asyncio.create_task(
            polling_loop(client, dispatcher, settings.polling_timeout_seconds)
        ))
    logger.info("Launched (%s)", "polling" if settings.use_polling else "webhook")

    yield

    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await client.close()
    await db_engine.dispose()


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="groupgate",
    lifespan=lifespan,
    debug=settings.debug,
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from groupgate.app.routes.telegram import router as telegram_router

app.include_router(telegram_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "groupgate"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "groupgate.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
