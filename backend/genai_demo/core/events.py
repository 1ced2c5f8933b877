from enum import Enum
from pydantic import BaseModel
from datetime import datetime
from typing import Optional
import uuid

from genai_demo.schemas.file_search import TrackedOperation


class EventType(str, Enum):
    OPERATION_STARTED = "operation_started"
    OPERATION_PROGRESS = "operation_progress"
    OPERATION_COMPLETED = "operation_completed"
    OPERATION_FAILED = "operation_failed"
    OPERATION_SNAPSHOT = "operation_snapshot"


class OperationEvent(BaseModel):
    """A change in an upload operation's lifecycle, pushed to the UI."""
    id: str
    type: EventType
    timestamp: datetime
    operation_name: str
    data: dict
    store_name: Optional[str] = None

    @classmethod
    def create(
        cls,
        event_type: EventType,
        operation_name: str,
        data: dict,
        store_name: Optional[str] = None
    ) -> "OperationEvent":
        return cls(
            id=str(uuid.uuid4()),
            type=event_type,
            timestamp=datetime.utcnow(),
            operation_name=operation_name,
            data=data,
            store_name=store_name
        )

    @classmethod
    def for_tracked(cls, event_type: EventType, tracked: TrackedOperation, data: dict) -> "OperationEvent":
        return cls.create(event_type, tracked.operation.name, data, store_name=tracked.storeName)

    @classmethod
    def snapshot(cls, tracked: TrackedOperation) -> "OperationEvent":
        """Current state of a tracked operation, sent to newly connected clients."""
        return cls.for_tracked(EventType.OPERATION_SNAPSHOT, tracked, {
            "done": tracked.operation.done,
            "displayName": tracked.displayName,
            "error": tracked.localError or (tracked.operation.error.message if tracked.operation.error else None),
        })
