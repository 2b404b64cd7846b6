"""Conversation memory manager.

Persists the per-framework chat history the UI displays and hands back to
the query endpoint as context.
"""
from pathlib import Path
from typing import List, Dict, Any, Optional
import structlog

from docqa import config, db
from docqa.rag.loader import framework_key
from docqa.schemas import ConversationTurn

logger = structlog.get_logger()


class ConversationManager:
    """Manages conversation history, one thread per framework."""

    def __init__(self, db_path: Path = None, context_window_size: int = None):
        """Initialize the conversation manager.

        Args:
            db_path: SQLite database path (default from config)
            context_window_size: Number of recent turns included in prompts
        """
        self.db_path = Path(db_path or config.HISTORY_DB_PATH)
        self.context_window_size = context_window_size or config.HISTORY_WINDOW
        db.init_database(self.db_path)

    def add_turn(self, framework: str, role: str, content: str) -> int:
        """Add one turn to a framework's history.

        Args:
            framework: Framework the conversation is about
            role: 'user' or 'assistant'
            content: The message content

        Returns:
            ID of the inserted turn
        """
        turn = ConversationTurn(role=role, content=content)
        turn_id = db.add_turn(framework_key(framework), turn.role, turn.content, self.db_path)
        logger.info(
            "conversation_turn_added",
            framework=framework,
            role=role,
            turn_id=turn_id,
        )
        return turn_id

    def record_exchange(self, framework: str, question: str, answer: str) -> None:
        """Persist a question and its answer."""
        self.add_turn(framework, "user", question)
        self.add_turn(framework, "assistant", answer)

    def get_turns(self, framework: str, limit: Optional[int] = None) -> List[ConversationTurn]:
        rows = db.get_turns(framework_key(framework), limit, self.db_path)
        return [ConversationTurn(role=row["role"], content=row["content"]) for row in rows]

    def get_recent_turns(self, framework: str) -> List[ConversationTurn]:
        """The turns that fit in the prompt's history window, oldest first."""
        return self.get_turns(framework, limit=self.context_window_size)

    def get_history(self, framework: str) -> Dict[str, Any]:
        """Full persisted history in the shape the query endpoint accepts.

        Returns:
            ``{"history": [{"role": ..., "content": ...}, ...]}``
        """
        turns = self.get_turns(framework)
        logger.info("conversation_history_retrieved", framework=framework, count=len(turns))
        return {"history": [turn.model_dump() for turn in turns]}

    def clear_history(self, framework: str) -> int:
        """Delete a framework's history, returning the number of turns removed."""
        return db.delete_turns(framework_key(framework), self.db_path)
