"""Tests for persisted conversations."""

import pytest

from genai_demo.core.errors import ValidationError
from genai_demo.schemas.chat import ChatTurn, Citation
from genai_demo.services.conversation_store import WELCOME_TEXT, ConversationStore


class TestConversationStore:
    def test_missing_conversation_is_default(self, tmp_path):
        turns = ConversationStore(tmp_path).load("filesearch")

        assert len(turns) == 1
        assert turns[0].text == WELCOME_TEXT
        assert turns[0].protocol_role == "model"

    def test_save_and_load(self, tmp_path):
        store = ConversationStore(tmp_path)
        turns = [
            ChatTurn(sender="user", text="What is in a.txt?"),
            ChatTurn(sender="bot", text="Numbers.", citations=[Citation(index=1, source="doc://a", title="a.txt")]),
        ]

        store.save("filesearch", turns)
        loaded = store.load("filesearch")

        assert [t.text for t in loaded] == ["What is in a.txt?", "Numbers."]
        assert loaded[1].citations[0].title == "a.txt"

    @pytest.mark.parametrize("content", ["{not json", '{"turns": []}', '[{"text": 5, "citations": "x"}]'])
    def test_malformed_content_falls_back_to_default(self, tmp_path, content):
        (tmp_path / "chat.json").write_text(content)

        turns = ConversationStore(tmp_path).load("chat")

        assert [t.text for t in turns] == [WELCOME_TEXT]

    def test_reset(self, tmp_path):
        store = ConversationStore(tmp_path)
        store.save("chat", [ChatTurn(sender="user", text="hi")])

        store.reset("chat")

        assert [t.text for t in store.load("chat")] == [WELCOME_TEXT]

    @pytest.mark.parametrize("key", ["", "../etc/passwd", "a/b", "x" * 65])
    def test_invalid_key_rejected(self, tmp_path, key):
        with pytest.raises(ValidationError):
            ConversationStore(tmp_path).load(key)

    def test_state_dir_created_on_save(self, tmp_path):
        store = ConversationStore(tmp_path / "nested" / "state")
        store.save("chat", [])
        assert (tmp_path / "nested" / "state" / "chat.json").exists()
