import logging
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_REACTION_ANNOTATION_KEY = "ge.applied-langua.ge.draupnir.reaction_handler"


class Settings(BaseSettings):
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    PROJECT_NAME: str = "Matrix Prompts"

    # Matrix bot account
    MATRIX_HOMESERVER_URL: str = ""  # e.g., "https://matrix.org"
    MATRIX_USER: str = ""  # Bot user ID, e.g., "@prompt-bot:matrix.org"
    MATRIX_PASSWORD: str = ""
    MATRIX_SESSION_FILE: str = "data/matrix_session.json"
    MATRIX_DEVICE_NAME: str = "Matrix Prompts Bot"

    # The one room whose reactions are correlated (usually a management room)
    MATRIX_MANAGEMENT_ROOM: str = ""

    # Reaction prompts
    REACTION_ANNOTATION_KEY: str = DEFAULT_REACTION_ANNOTATION_KEY
    MATRIX_OP_TIMEOUT_SECONDS: float = 30.0
    MATRIX_RELATIONS_PAGE_LIMIT: int = 50
    MATRIX_SYNC_TIMEOUT_MS: int = 30000

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @property
    def matrix_enabled(self) -> bool:
        """Whether enough Matrix settings are present to run the bot."""
        return bool(
            self.MATRIX_HOMESERVER_URL and self.MATRIX_USER and self.MATRIX_MANAGEMENT_ROOM
        )

    @field_validator("MATRIX_HOMESERVER_URL")
    @classmethod
    def validate_homeserver_url(cls, v: str) -> str:
        """Normalize the homeserver URL.

        Removes trailing slashes so request paths can be appended directly.

        Args:
            v: Homeserver URL

        Returns:
            Normalized homeserver URL

        Raises:
            ValueError: If the URL has no http(s) scheme
        """
        v = v.strip()
        if not v:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("MATRIX_HOMESERVER_URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("MATRIX_MANAGEMENT_ROOM")
    @classmethod
    def validate_management_room(cls, v: str) -> str:
        v = v.strip()
        if v and not v.startswith("!"):
            raise ValueError(f"Invalid room ID format: {v}")
        return v

    @field_validator("REACTION_ANNOTATION_KEY")
    @classmethod
    def validate_annotation_key(cls, v: str) -> str:
        """Reject annotation keys that could collide with Matrix-defined content keys."""
        v = v.strip()
        if not v or "." not in v:
            raise ValueError("REACTION_ANNOTATION_KEY must be a namespaced key")
        if v.startswith("m."):
            raise ValueError("REACTION_ANNOTATION_KEY must not use the m. namespace")
        return v

    @field_validator("MATRIX_OP_TIMEOUT_SECONDS")
    @classmethod
    def validate_op_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("MATRIX_OP_TIMEOUT_SECONDS must be positive")
        return v

    @field_validator("MATRIX_RELATIONS_PAGE_LIMIT")
    @classmethod
    def validate_relations_page_limit(cls, v: int) -> int:
        if not 1 <= v <= 1000:
            raise ValueError("MATRIX_RELATIONS_PAGE_LIMIT must be between 1 and 1000")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown LOG_LEVEL: {v}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings instance with lazy initialization.

    Settings are only created once on first access, then cached for subsequent calls.
    This prevents module-level side effects and allows testing without environment variables.

    Returns:
        Settings: Application settings object
    """
    return Settings()
