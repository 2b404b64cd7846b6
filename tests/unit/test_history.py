"""Tests for persisted conversation history."""
import pytest
from pydantic import ValidationError

from docqa.memory import ConversationManager


@pytest.fixture
def manager(tmp_path):
    return ConversationManager(db_path=tmp_path / "data" / "history.db", context_window_size=4)


def test_record_and_read_back(manager):
    manager.record_exchange("React", "What is JSX?", "A syntax extension.")

    assert manager.get_history("react") == {
        "history": [
            {"role": "user", "content": "What is JSX?"},
            {"role": "assistant", "content": "A syntax extension."},
        ]
    }


def test_frameworks_are_kept_apart(manager):
    manager.record_exchange("react", "q1", "a1")
    manager.record_exchange("vue", "q2", "a2")

    assert [t.content for t in manager.get_turns("vue")] == ["q2", "a2"]


def test_recent_turns_are_the_last_window_in_order(manager):
    for i in range(5):
        manager.record_exchange("react", f"q{i}", f"a{i}")

    assert [t.content for t in manager.get_recent_turns("react")] == ["q3", "a3", "q4", "a4"]


def test_clear_history(manager):
    manager.record_exchange("react", "q", "a")

    assert manager.clear_history("REACT") == 2
    assert manager.get_history("react") == {"history": []}


def test_invalid_role_rejected(manager):
    with pytest.raises(ValidationError):
        manager.add_turn("react", "system", "nope")
