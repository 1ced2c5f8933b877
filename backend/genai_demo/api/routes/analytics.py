"""Pass-through event tracking for UI interactions."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from genai_demo.api.deps import get_analytics
from genai_demo.core.errors import ValidationError
from genai_demo.services.analytics import AnalyticsTracker

router = APIRouter(prefix="/analytics", tags=["analytics"])


class TrackRequest(BaseModel):
    event: str
    properties: Optional[dict] = None


@router.post("/track", status_code=202)
async def track_event(body: TrackRequest, analytics: AnalyticsTracker = Depends(get_analytics)):
    if not body.event.strip():
        raise ValidationError("Event name is required")
    analytics.track(body.event, body.properties)
    return {"status": "queued" if analytics.enabled else "disabled"}
