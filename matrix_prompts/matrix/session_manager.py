"""Matrix session management with persistent authentication."""

import json
import logging
import os
from pathlib import Path

from nio import AsyncClient, LoginResponse, WhoamiResponse

from matrix_prompts.core.exceptions import MatrixAuthenticationError
from matrix_prompts.matrix.metrics import matrix_auth_total

logger = logging.getLogger(__name__)

REQUIRED_SESSION_FIELDS = ("access_token", "device_id", "user_id")


class SessionManager:
    """Logs the bot in and keeps its session on disk.

    A saved session is restored and validated first; password login is the
    fallback. The session file is written atomically with owner-only
    permissions so a restart reuses the same device.

    Attributes:
        client: Matrix AsyncClient instance
        password: User password for authentication
        session_file: Path to session persistence file
        device_name: Device display name used for password login
    """

    def __init__(
        self,
        client: AsyncClient,
        password: str,
        session_file: str = "data/matrix_session.json",
        device_name: str = "Matrix Prompts Bot",
    ):
        self.client = client
        self.password = password
        self.session_file = Path(session_file)
        self.device_name = device_name

    async def login(self) -> None:
        """Restore the saved session or log in with the password.

        Raises:
            MatrixAuthenticationError: If password login fails
        """
        if self._load_session():
            if await self._validate_token():
                matrix_auth_total.labels(method="session_restore", result="success").inc()
                logger.info(
                    "Session restored from %s for %s",
                    self.session_file,
                    self.client.user_id,
                )
                return
            logger.warning(
                "Restored token is invalid/expired for %s, performing fresh login",
                self.client.user_id,
            )
            matrix_auth_total.labels(method="session_restore", result="failure").inc()
            self.client.access_token = ""
            self.client.device_id = None

        if not self.password:
            matrix_auth_total.labels(method="password", result="failure").inc()
            raise MatrixAuthenticationError(
                f"No valid session for {self.client.user_id} and no password configured"
            )

        resp = await self.client.login(self.password, device_name=self.device_name)
        if isinstance(resp, LoginResponse):
            self._save_session(resp)
            matrix_auth_total.labels(method="password", result="success").inc()
            logger.info("Fresh login successful for %s", resp.user_id)
            return

        matrix_auth_total.labels(method="password", result="failure").inc()
        raise MatrixAuthenticationError(f"Login failed: {resp}")

    async def _validate_token(self) -> bool:
        """Check the current access token with /account/whoami."""
        if not self.client.access_token:
            return False
        response = await self.client.whoami()
        if isinstance(response, WhoamiResponse):
            return True
        logger.warning("Token validation failed: %s", getattr(response, "message", response))
        return False

    def _load_session(self) -> bool:
        """Load credentials from the session file into the client.

        Returns:
            True if a session for the configured user was loaded
        """
        if not self.session_file.exists():
            logger.debug("Session file not found: %s", self.session_file)
            return False

        try:
            with open(self.session_file, "r") as f:
                config = json.load(f)
        except (OSError, json.JSONDecodeError):
            logger.exception("Failed to read session from %s", self.session_file)
            return False

        if not isinstance(config, dict) or not all(
            config.get(field) for field in REQUIRED_SESSION_FIELDS
        ):
            logger.warning("Session file missing required fields: %s", REQUIRED_SESSION_FIELDS)
            return False

        # A session path reused across account rotation must not log in as the old user
        if self.client.user_id and config["user_id"] != self.client.user_id:
            logger.warning(
                "Session file user_id mismatch (expected=%s, found=%s); ignoring session",
                self.client.user_id,
                config["user_id"],
            )
            return False

        self.client.restore_login(
            config["user_id"], config["device_id"], config["access_token"]
        )
        logger.debug(
            "Session loaded: user=%s, device=%s, token=%s",
            config["user_id"],
            config["device_id"],
            self._redact_token(config["access_token"]),
        )
        return True

    def _save_session(self, resp: LoginResponse) -> None:
        """Atomically save the session (temp file + rename, mode 0600)."""
        session_data = {
            "access_token": resp.access_token,
            "device_id": resp.device_id,
            "user_id": resp.user_id,
        }
        self.session_file.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.session_file.with_suffix(".tmp")
        try:
            with open(temp_file, "w") as f:
                json.dump(session_data, f, indent=2)
            os.chmod(temp_file, 0o600)
            temp_file.replace(self.session_file)
        except OSError:
            logger.exception("Failed to save session to %s", self.session_file)
            if temp_file.exists():
                temp_file.unlink()
            raise
        logger.info("Session saved to %s for %s", self.session_file, resp.user_id)

    @staticmethod
    def _redact_token(token: str) -> str:
        return f"{token[:10]}..." if len(token) > 10 else "***"
