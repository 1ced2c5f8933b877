"""Persisted conversation turns, one JSON file per conversation key.

There is no schema versioning: a stored blob that does not parse as a list
of turns is discarded and the default conversation is returned instead.
"""

import json
import logging
import re
from pathlib import Path
from typing import List

from pydantic import ValidationError as PydanticValidationError

from genai_demo.core.errors import ValidationError
from genai_demo.schemas.chat import ChatTurn

logger = logging.getLogger(__name__)

WELCOME_TEXT = "Hello! I'm your AI assistant. How can I help you today?"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def default_conversation() -> List[ChatTurn]:
    return [ChatTurn(role="model", sender="bot", text=WELCOME_TEXT)]


class ConversationStore:
    """Load/save chat turns under ``state_dir``."""

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key or ""):
            raise ValidationError(f"Invalid conversation key: {key!r}")
        return self.state_dir / f"{key}.json"

    def load(self, key: str) -> List[ChatTurn]:
        path = self._path(key)
        if not path.exists():
            return default_conversation()
        try:
            with open(path) as f:
                raw = json.load(f)
            if not isinstance(raw, list):
                raise ValueError("conversation is not a list")
            return [ChatTurn.model_validate(item) for item in raw]
        except (json.JSONDecodeError, IOError, ValueError, PydanticValidationError) as e:
            logger.warning("Discarding malformed conversation %s: %s", key, e)
            return default_conversation()

    def save(self, key: str, turns: List[ChatTurn]) -> None:
        path = self._path(key)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump([t.model_dump(mode="json", exclude_none=True) for t in turns], f, indent=2)

    def reset(self, key: str) -> List[ChatTurn]:
        turns = default_conversation()
        self.save(key, turns)
        return turns
