from pydantic_settings import BaseSettings
from typing import List, Optional
from pathlib import Path
import json
import logging
import os

logger = logging.getLogger(__name__)

# Runtime overrides written by the settings API; GENAI_DEMO_SETTINGS_FILE relocates it.
SETTINGS_FILE = Path(
    os.getenv("GENAI_DEMO_SETTINGS_FILE", Path(__file__).parent.parent.parent / "settings.json")
)

MIB = 1024 * 1024


def load_settings_from_file() -> dict:
    """Load runtime overrides; an unreadable file is ignored with a warning."""
    if not SETTINGS_FILE.exists():
        return {}
    try:
        with open(SETTINGS_FILE) as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", SETTINGS_FILE, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring settings file %s: expected a JSON object", SETTINGS_FILE)
        return {}
    return data


def save_settings_to_file(settings: dict) -> None:
    """Persist runtime overrides, creating the parent directory if needed."""
    SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    with open(SETTINGS_FILE, "w") as f:
        json.dump(settings, f, indent=2)
    logger.info("Saved settings overrides to %s (%d keys)", SETTINGS_FILE, len(settings))

class Settings(BaseSettings):
    # Generative-AI provider
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_upload_base_url: str = "https://generativelanguage.googleapis.com/upload/v1beta"
    gemini_model: str = "gemini-2.5-flash"

    # Upload / polling
    max_upload_bytes: int = 100 * MIB
    poll_interval_seconds: float = 5.0
    poll_max_transient_errors: Optional[int] = None  # None polls until torn down
    request_timeout_seconds: float = 30.0

    # Chat
    max_message_length: int = 1000
    verify_stores_before_chat: bool = True

    # Analytics
    amplitude_api_key: str = ""
    amplitude_api_url: str = "https://api2.amplitude.com/2/httpapi"

    # Local state (persisted conversations)
    state_dir: str = "./state"

    # Server
    backend_port: int = 8000
    cors_origins: List[str] = ["http://localhost:3000"]
    debug: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True

    def __init__(self, **kwargs):
        # Precedence: explicit kwargs, then settings.json overrides, then env / .env.
        super().__init__(**{**load_settings_from_file(), **kwargs})
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")

    @property
    def has_api_key(self) -> bool:
        return bool(self.gemini_api_key)

    def get_effective_settings(self) -> dict:
        """Get current effective settings (for API response)."""
        return {
            "gemini_api_key": self._mask_key(self.gemini_api_key),
            "gemini_model": self.gemini_model,
            "poll_interval_seconds": self.poll_interval_seconds,
            "poll_max_transient_errors": self.poll_max_transient_errors,
            "request_timeout_seconds": self.request_timeout_seconds,
            "amplitude_api_key": self._mask_key(self.amplitude_api_key),
        }

    def _mask_key(self, key: str) -> str:
        """Mask a secret key for display."""
        if not key:
            return ""
        if len(key) <= 8:
            return "*" * len(key)
        return key[:4] + "*" * (len(key) - 8) + key[-4:]


def reload_settings() -> "Settings":
    """Reload settings from file and environment."""
    global settings
    settings = Settings()
    return settings


settings = Settings()
