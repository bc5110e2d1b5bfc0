"""Matrix connection lifecycle management."""

import asyncio
import logging

from nio import AsyncClient

from matrix_prompts.matrix.metrics import matrix_connection_status
from matrix_prompts.matrix.session_manager import SessionManager

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Owns login, the sync loop and shutdown for one AsyncClient.

    Attributes:
        client: Matrix AsyncClient instance
        session_manager: SessionManager for authentication
        connected: Connection status flag
    """

    def __init__(self, client: AsyncClient, session_manager: SessionManager):
        self.client = client
        self.session_manager = session_manager
        self.connected = False
        self._sync_running = False

    async def connect(self) -> None:
        """Log in and mark the connection as established.

        Raises:
            MatrixAuthenticationError: If authentication fails
        """
        try:
            await self.session_manager.login()
        except Exception as e:
            logger.error("Matrix connection failed to %s: %s", self.client.homeserver, e)
            self.connected = False
            matrix_connection_status.set(0)
            raise
        self.connected = True
        matrix_connection_status.set(1)
        logger.info(
            "Matrix connection established to %s for %s",
            self.client.homeserver,
            self.client.user_id,
        )

    async def disconnect(self) -> None:
        """Stop syncing and close the client. The session file is kept."""
        self._sync_running = False
        await self.client.close()
        self.connected = False
        matrix_connection_status.set(0)
        logger.info("Matrix connection closed for %s", self.client.user_id)

    def stop_sync(self) -> None:
        """Signal sync loop shutdown."""
        self._sync_running = False

    async def sync_forever(
        self,
        timeout: int = 30000,
        initial_backoff_seconds: int = 5,
        max_backoff_seconds: int = 60,
    ) -> None:
        """Keep nio syncing until ``stop_sync`` is called.

        A dropped sync or a failed login is retried after a delay that doubles
        up to ``max_backoff_seconds``; a successful login resets the delay.
        """
        first_delay = max(1, initial_backoff_seconds)
        delay_cap = max(first_delay, max_backoff_seconds)
        delay = first_delay
        self._sync_running = True

        try:
            while self._sync_running:
                if not self.connected:
                    try:
                        await self.connect()
                    except Exception as e:
                        if not self._sync_running:
                            break
                        logger.warning("Matrix login failed; retrying in %ss: %s", delay, e)
                        delay = await self._wait_before_retry(delay, delay_cap)
                        continue
                    delay = first_delay

                reason = await self._sync_until_dropped(timeout)
                if not self._sync_running:
                    break
                logger.warning("Matrix sync %s; reconnecting in %ss", reason, delay)
                delay = await self._wait_before_retry(delay, delay_cap)
        except asyncio.CancelledError:
            self._sync_running = False
            raise

    async def _sync_until_dropped(self, timeout: int) -> str:
        """Run one nio sync loop and describe why it ended."""
        try:
            await self.client.sync_forever(timeout=timeout)
            reason = "loop exited unexpectedly"
        except Exception as e:
            reason = f"failed: {e}"
        self.connected = False
        matrix_connection_status.set(0)
        return reason

    @staticmethod
    async def _wait_before_retry(delay: int, delay_cap: int) -> int:
        await asyncio.sleep(delay)
        return min(delay * 2, delay_cap)

    def health_check(self) -> bool:
        """Connected, with an access token and a device."""
        return bool(
            self.connected and self.client.access_token and self.client.device_id
        )
