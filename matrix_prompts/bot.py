"""Wires the nio client, reaction handler and event listener into one bot."""

import asyncio
import logging
from typing import Optional

from nio import AsyncClient, AsyncClientConfig

from matrix_prompts.core.config import Settings
from matrix_prompts.matrix.client_platform import NioClientPlatform
from matrix_prompts.matrix.connection_manager import ConnectionManager
from matrix_prompts.matrix.listener import MatrixReactionListener
from matrix_prompts.matrix.session_manager import SessionManager
from matrix_prompts.reactions.handler import MatrixReactionHandler

logger = logging.getLogger(__name__)


class PromptBot:
    """A Matrix bot that correlates reactions in its management room.

    Applications register listeners on ``bot.handler`` before ``start`` and
    post prompts through ``bot.handler.prompts``.

    Example:
        bot = PromptBot.from_settings(get_settings())
        bot.handler.on("confirm_ban", on_confirm_ban)
        await bot.start()
    """

    def __init__(
        self,
        client: AsyncClient,
        connection_manager: ConnectionManager,
        handler: MatrixReactionHandler,
        listener: MatrixReactionListener,
        sync_timeout_ms: int = 30000,
    ):
        self.client = client
        self.connection_manager = connection_manager
        self.handler = handler
        self.listener = listener
        self.sync_timeout_ms = sync_timeout_ms
        self._sync_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "PromptBot":
        client = AsyncClient(
            settings.MATRIX_HOMESERVER_URL,
            settings.MATRIX_USER,
            config=AsyncClientConfig(store_sync_tokens=True, encryption_enabled=False),
        )
        session_manager = SessionManager(
            client=client,
            password=settings.MATRIX_PASSWORD,
            session_file=settings.MATRIX_SESSION_FILE,
            device_name=settings.MATRIX_DEVICE_NAME,
        )
        platform = NioClientPlatform(
            client,
            op_timeout_seconds=settings.MATRIX_OP_TIMEOUT_SECONDS,
            relations_page_limit=settings.MATRIX_RELATIONS_PAGE_LIMIT,
        )
        handler = MatrixReactionHandler(
            room_id=settings.MATRIX_MANAGEMENT_ROOM,
            client_user_id=settings.MATRIX_USER,
            client_platform=platform,
            annotation_key=settings.REACTION_ANNOTATION_KEY,
        )
        return cls(
            client=client,
            connection_manager=ConnectionManager(client, session_manager),
            handler=handler,
            listener=MatrixReactionListener(client, handler),
            sync_timeout_ms=settings.MATRIX_SYNC_TIMEOUT_MS,
        )

    @property
    def is_running(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    async def start(self) -> None:
        """Log in, join the management room, listen and sync in the background."""
        await self.connection_manager.connect()
        response = await self.client.join(self.handler.room_id)
        if not getattr(response, "room_id", None):
            logger.error(
                "Failed to join room %s: %s",
                self.handler.room_id,
                getattr(response, "message", "Unknown error"),
            )
        await self.listener.start_listening()
        self._sync_task = asyncio.create_task(
            self.connection_manager.sync_forever(timeout=self.sync_timeout_ms)
        )
        logger.info("Prompt bot started in %s", self.handler.room_id)

    async def stop(self) -> None:
        await self.listener.stop_listening()
        self.connection_manager.stop_sync()
        if self._sync_task is not None:
            self._sync_task.cancel()
            try:
                await self._sync_task
            except asyncio.CancelledError:
                pass
            self._sync_task = None
        await self.handler.listeners.wait_pending()
        await self.connection_manager.disconnect()
        logger.info("Prompt bot stopped")
