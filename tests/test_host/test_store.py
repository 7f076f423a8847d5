"""Tests for conversation stores."""

import json

import pytest

from response_refiner.host.store import InMemoryConversationStore, JsonConversationStore
from response_refiner.models.conversation import MessageRole


class TestInMemoryConversationStore:
    """Tests for InMemoryConversationStore."""

    def test_append_assigns_positions(self):
        """Test messages are indexed in order."""
        store = InMemoryConversationStore()
        store.append("hi", MessageRole.USER)
        message = store.append("hello")

        assert message.position_index == 1
        assert message.role == MessageRole.ASSISTANT
        assert len(store.get_history()) == 2

    def test_get_message_out_of_range(self):
        """Test missing indices return None."""
        store = InMemoryConversationStore()
        assert store.get_message(0) is None
        assert store.get_message(-1) is None

    @pytest.mark.asyncio
    async def test_commit(self):
        """Test committing replaces the message text only."""
        store = InMemoryConversationStore()
        store.append("draft", "assistant")

        await store.commit(0, "final")

        message = store.get_message(0)
        assert message.text == "final"
        assert message.role == MessageRole.ASSISTANT

    @pytest.mark.asyncio
    async def test_commit_missing(self):
        """Test committing to a missing message raises."""
        with pytest.raises(IndexError):
            await InMemoryConversationStore().commit(3, "x")


class TestJsonConversationStore:
    """Tests for JsonConversationStore."""

    def test_load_list(self, tmp_path):
        """Test loading a plain list of records."""
        path = tmp_path / "chat.json"
        path.write_text(json.dumps([
            {"role": "user", "text": "Hi"},
            {"role": "assistant", "text": "Hello!"},
        ]))

        store = JsonConversationStore(path)

        assert [m.text for m in store.get_history()] == ["Hi", "Hello!"]
        assert store.get_message(1).role == MessageRole.ASSISTANT

    def test_load_wrapped_with_mes_field(self, tmp_path):
        """Test the ``messages`` wrapper and ``mes`` text field are accepted."""
        path = tmp_path / "chat.json"
        path.write_text(json.dumps({"messages": [{"role": "assistant", "mes": "Hey"}]}))

        store = JsonConversationStore(path)

        assert store.get_message(0).text == "Hey"

    @pytest.mark.asyncio
    async def test_refresh_view_persists(self, tmp_path):
        """Test refresh_view writes committed text back to disk."""
        path = tmp_path / "chat.json"
        path.write_text(json.dumps([{"role": "assistant", "text": "old"}]))
        store = JsonConversationStore(path)

        await store.commit(0, "new")
        assert json.loads(path.read_text())[0]["text"] == "old"

        await store.refresh_view()
        assert json.loads(path.read_text()) == [{"role": "assistant", "text": "new"}]

    def test_roles_from_flags(self, tmp_path):
        """Test is_user / is_system flags set the role when no role is given."""
        path = tmp_path / "chat.json"
        path.write_text(json.dumps({"messages": [
            {"is_user": True, "is_system": False, "mes": "Hi"},
            {"is_user": False, "is_system": False, "mes": "Hello"},
            {"is_user": False, "is_system": True, "mes": "Note"},
        ]}))

        store = JsonConversationStore(path)

        assert [m.role for m in store.get_history()] == [
            MessageRole.USER,
            MessageRole.ASSISTANT,
            MessageRole.SYSTEM,
        ]
        assert not store.get_message(0).is_refinable

    @pytest.mark.asyncio
    async def test_save_keeps_file_shape(self, tmp_path):
        """Test saving rewrites only the text field and keeps the wrapper and extra fields."""
        path = tmp_path / "chat.json"
        original = {
            "chat_metadata": {"title": "Foxes"},
            "messages": [
                {"name": "Alice", "is_user": True, "mes": "Hi", "send_date": "today"},
                {"name": "Bot", "is_user": False, "mes": "Hello", "swipes": ["Hello"]},
            ],
        }
        path.write_text(json.dumps(original))
        store = JsonConversationStore(path)

        await store.commit(1, "Hello there!")
        await store.refresh_view()

        saved = json.loads(path.read_text())
        assert saved["chat_metadata"] == {"title": "Foxes"}
        assert saved["messages"][0] == original["messages"][0]
        assert saved["messages"][1] == {
            "name": "Bot",
            "is_user": False,
            "mes": "Hello there!",
            "swipes": ["Hello"],
        }
        assert "role" not in saved["messages"][0]
