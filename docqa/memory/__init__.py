"""Conversation history persistence."""
from docqa.memory.manager import ConversationManager

__all__ = ["ConversationManager"]
