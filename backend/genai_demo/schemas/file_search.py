"""Pydantic schemas for File Search stores, files and operations.

Field names follow the provider's JSON so payloads validate directly.
"""

from typing import Optional, List
from pydantic import BaseModel, Field


class StoreFile(BaseModel):
    """One ingested document inside a store."""
    name: str = Field("", description="Server-assigned document id")
    displayName: Optional[str] = Field(None, description="User-facing label, used in citations")
    mimeType: Optional[str] = None


class Store(BaseModel):
    """A named remote collection of ingested documents."""
    name: str = Field(description="Opaque server-assigned resource name")
    displayName: Optional[str] = Field(None, description="User-chosen label")
    files: List[StoreFile] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict, default_display_name: Optional[str] = None) -> "Store":
        files = payload.get("files") or payload.get("documents") or []
        return cls(
            name=payload.get("name", ""),
            displayName=payload.get("displayName") or default_display_name,
            files=[StoreFile.model_validate(f) for f in files],
        )


class OperationError(BaseModel):
    code: Optional[int] = None
    message: str = ""


class Operation(BaseModel):
    """An asynchronous remote task (a file upload being indexed)."""
    name: str
    done: bool = False
    file: Optional[StoreFile] = None
    error: Optional[OperationError] = None
    notFound: bool = False

    @property
    def succeeded(self) -> bool:
        return self.done and self.error is None

    @property
    def failed(self) -> bool:
        return self.done and self.error is not None

    @classmethod
    def from_payload(cls, payload: dict, fallback_name: str = "") -> "Operation":
        """Build an Operation from a provider operation descriptor.

        The produced file is read from ``response.file``; newer responses only
        carry ``response.documentName``, in which case a file stub is built
        from it.
        """
        response = payload.get("response") or {}
        file = None
        if response.get("file"):
            file = StoreFile.model_validate(response["file"])
        elif response.get("documentName"):
            file = StoreFile(name=response["documentName"])

        error = None
        if payload.get("error"):
            raw = payload["error"]
            if isinstance(raw, dict):
                error = OperationError(code=raw.get("code"), message=raw.get("message") or "")
            else:
                error = OperationError(message=str(raw))

        return cls(
            name=payload.get("name") or fallback_name,
            done=bool(payload.get("done", False)),
            file=file,
            error=error,
        )


class TrackedOperation(BaseModel):
    """Poller-side view of an operation, including local UI state."""
    operation: Operation
    storeName: str
    displayName: Optional[str] = None
    localError: Optional[str] = None
    transientErrors: int = 0
    completedNotified: bool = False

    @property
    def terminal(self) -> bool:
        return self.operation.done or self.localError is not None
