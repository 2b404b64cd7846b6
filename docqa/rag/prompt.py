"""Grounding prompt assembly. Pure: no I/O, no logging."""
from typing import Sequence

from docqa import config
from docqa.rag.retriever import RetrievedChunk
from docqa.schemas import ConversationTurn

# Callers match on this exact string
NOT_IN_DOCS = "Not in docs."

ROLE_LABELS = {"user": "User", "assistant": "Assistant"}

PROMPT_TEMPLATE = """You are a strict documentation assistant for {framework}.
Answer ONLY using the Documentation below.

If the answer is not present, reply exactly:
{refusal}

Conversation History:
{history}

Documentation:
{documentation}

User Question:
{question}"""


def format_history(
    history: Sequence[ConversationTurn],
    window: int = config.HISTORY_WINDOW,
) -> str:
    """Render the last ``window`` turns as ``Role: content`` lines."""
    if window <= 0:
        return ""
    return "\n".join(
        f"{ROLE_LABELS[turn.role]}: {turn.content}" for turn in list(history)[-window:]
    )


def format_documentation(results: Sequence[RetrievedChunk]) -> str:
    return "\n\n".join(result.text for result in results)


def build_prompt(
    question: str,
    framework: str,
    history: Sequence[ConversationTurn],
    results: Sequence[RetrievedChunk],
    history_window: int = config.HISTORY_WINDOW,
) -> str:
    """Assemble the grounding prompt.

    No special case for empty retrieval: the documentation section is left
    empty and the refusal instruction applies.
    """
    return PROMPT_TEMPLATE.format(
        framework=framework,
        refusal=NOT_IN_DOCS,
        history=format_history(history, history_window),
        documentation=format_documentation(results),
        question=question,
    )
