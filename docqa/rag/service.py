"""Query entry point: retrieve, assemble the prompt, generate."""
import asyncio
from typing import Any, List, Mapping, Optional, Sequence, Union
import structlog

from docqa import config
from docqa.errors import QueryTimeoutError
from docqa.rag.generator import AnswerGenerator
from docqa.rag.prompt import build_prompt
from docqa.rag.retriever import Retriever
from docqa.schemas import ConversationTurn

logger = structlog.get_logger()

TurnLike = Union[ConversationTurn, Mapping[str, Any]]


class QAService:
    """Answers framework questions strictly from indexed documentation."""

    def __init__(
        self,
        retriever: Retriever,
        generator: AnswerGenerator,
        top_k: int = None,
        timeout: float = None,
    ):
        """Initialize the service.

        Args:
            retriever: Framework-scoped retriever
            generator: Answer generator
            top_k: Chunks per prompt (default from config)
            timeout: Seconds a query may take before it is abandoned
        """
        self.retriever = retriever
        self.generator = generator
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self.timeout = timeout if timeout is not None else config.REQUEST_TIMEOUT_SECONDS

    async def search(
        self,
        question: str,
        framework: str,
        history: Optional[Sequence[TurnLike]] = None,
    ) -> str:
        """Answer ``question`` using the ``framework`` documentation.

        Args:
            question: User question
            framework: Framework whose documentation is searched
            history: Prior turns, oldest first

        Returns:
            The model's answer, possibly the literal "Not in docs."

        Raises:
            ValueError: If question or framework is blank
            NotFoundError: If no index exists for the framework
            GenerationError: If the model call fails
            QueryTimeoutError: If the query exceeds the timeout
        """
        if not framework or not framework.strip():
            raise ValueError("framework must not be empty")
        if not question or not question.strip():
            raise ValueError("question must not be empty")

        question = question.strip()
        framework = framework.strip()
        turns = [_as_turn(turn) for turn in history or []]

        logger.info(
            "search_started",
            framework=framework,
            question_length=len(question),
            history_turns=len(turns),
        )

        try:
            answer = await asyncio.wait_for(
                self._answer(question, framework, turns), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            logger.error("search_timed_out", framework=framework, timeout=self.timeout)
            raise QueryTimeoutError(
                f"Query for {framework!r} did not complete within {self.timeout}s"
            ) from e

        logger.info("search_completed", framework=framework, answer_length=len(answer))
        return answer

    async def _answer(
        self,
        question: str,
        framework: str,
        history: List[ConversationTurn],
    ) -> str:
        results = await self.retriever.retrieve(question, framework, k=self.top_k)
        prompt = build_prompt(question, framework, history, results)
        return await self.generator.generate(prompt)


def _as_turn(turn: TurnLike) -> ConversationTurn:
    if isinstance(turn, ConversationTurn):
        return turn
    return ConversationTurn.model_validate(turn)
