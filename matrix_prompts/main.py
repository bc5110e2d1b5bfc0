import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from matrix_prompts.bot import PromptBot
from matrix_prompts.core.config import Settings, get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger("matrix_prompts.main")


def create_app(
    settings: Optional[Settings] = None, bot: Optional[PromptBot] = None
) -> FastAPI:
    """Build the service app.

    The bot is started in the lifespan when Matrix is configured (or a bot is
    passed in); otherwise the app runs in degraded mode and only serves
    health and metrics.
    """
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application startup...")
        app.state.settings = settings
        app.state.bot = bot
        if app.state.bot is None and settings.matrix_enabled:
            app.state.bot = PromptBot.from_settings(settings)

        if app.state.bot is None:
            logger.warning(
                "Matrix is not configured; starting without the prompt bot"
            )
        else:
            try:
                await app.state.bot.start()
            except Exception:
                logger.exception("Failed to start the prompt bot")

        yield

        logger.info("Application shutdown...")
        if app.state.bot is not None:
            if app.state.bot.is_running:
                await app.state.bot.stop()
            else:
                # start may have failed after login opened the HTTP session
                await app.state.bot.connection_manager.disconnect()

    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

    @app.get("/health")
    async def health():
        running_bot = getattr(app.state, "bot", None)
        connected = bool(
            running_bot is not None
            and running_bot.connection_manager.health_check()
        )
        return {
            "status": "healthy" if connected else "degraded",
            "matrix_connected": connected,
            "room_id": settings.MATRIX_MANAGEMENT_ROOM or None,
        }

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    # Bind to 0.0.0.0 only in DEBUG mode (container/development)
    host = "0.0.0.0" if settings.DEBUG else "127.0.0.1"

    uvicorn.run(
        "matrix_prompts.main:create_app",
        factory=True,
        host=host,
        port=8000,
    )
