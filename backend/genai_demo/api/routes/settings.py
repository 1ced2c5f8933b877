from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
import logging
import os

from genai_demo.api.deps import get_analytics, get_session, get_settings as current_settings
from genai_demo.core.config import (
    save_settings_to_file,
    reload_settings,
    load_settings_from_file,
)
from genai_demo.core.errors import FileSearchError
from genai_demo.services.analytics import AnalyticsTracker
from genai_demo.services.file_search_session import FileSearchSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


class SettingsUpdate(BaseModel):
    gemini_api_key: Optional[str] = None
    gemini_model: Optional[str] = None
    poll_interval_seconds: Optional[float] = None
    poll_max_transient_errors: Optional[int] = None
    request_timeout_seconds: Optional[float] = None
    amplitude_api_key: Optional[str] = None


class SettingsResponse(BaseModel):
    gemini_api_key: str  # masked
    gemini_model: str
    poll_interval_seconds: float
    poll_max_transient_errors: Optional[int] = None
    request_timeout_seconds: float
    amplitude_api_key: str  # masked


class TestConnectionResponse(BaseModel):
    gemini: bool
    errors: dict


# TODO: [SECURITY] Add authentication middleware before production deployment
# See: https://fastapi.tiangolo.com/tutorial/security/
@router.get("", response_model=SettingsResponse)
async def get_settings(settings=Depends(current_settings)):
    """Retrieve current settings with masked sensitive values."""
    return settings.get_effective_settings()


# TODO: [SECURITY] Add authentication middleware before production deployment
# See: https://fastapi.tiangolo.com/tutorial/security/
@router.post("", response_model=SettingsResponse)
async def update_settings(
    update: SettingsUpdate,
    session: FileSearchSession = Depends(get_session),
    analytics: AnalyticsTracker = Depends(get_analytics),
):
    """Update settings, save to local file and apply to the running services."""
    current = load_settings_from_file()

    if update.gemini_api_key is not None:
        current["gemini_api_key"] = update.gemini_api_key
        os.environ["GEMINI_API_KEY"] = update.gemini_api_key

    if update.gemini_model is not None:
        current["gemini_model"] = update.gemini_model
        os.environ["GEMINI_MODEL"] = update.gemini_model

    if update.poll_interval_seconds is not None:
        if update.poll_interval_seconds <= 0:
            raise HTTPException(status_code=400, detail="poll_interval_seconds must be positive")
        current["poll_interval_seconds"] = update.poll_interval_seconds

    if update.poll_max_transient_errors is not None:
        current["poll_max_transient_errors"] = update.poll_max_transient_errors

    if update.request_timeout_seconds is not None:
        current["request_timeout_seconds"] = update.request_timeout_seconds

    if update.amplitude_api_key is not None:
        current["amplitude_api_key"] = update.amplitude_api_key
        os.environ["AMPLITUDE_API_KEY"] = update.amplitude_api_key

    save_settings_to_file(current)
    new_settings = reload_settings()

    # Running pollers keep their tasks; only credentials and cadence change.
    session.client.api_key = new_settings.gemini_api_key
    session.client.model = new_settings.gemini_model
    session.poller.interval = new_settings.poll_interval_seconds
    session.poller.max_transient_errors = new_settings.poll_max_transient_errors
    analytics.api_key = new_settings.amplitude_api_key

    return new_settings.get_effective_settings()


# TODO: [SECURITY] Add authentication middleware before production deployment
# See: https://fastapi.tiangolo.com/tutorial/security/
@router.post("/test", response_model=TestConnectionResponse)
async def test_connections(session: FileSearchSession = Depends(get_session)):
    """Test the provider connection by listing stores."""
    errors = {}
    gemini_ok = False

    if not session.client.configured:
        errors["gemini"] = "No API key configured"
    else:
        try:
            await session.list_stores()
            gemini_ok = True
        except FileSearchError as e:
            logger.warning("Provider connection test failed: %s", e)
            errors["gemini"] = str(e)

    return TestConnectionResponse(gemini=gemini_ok, errors=errors)
