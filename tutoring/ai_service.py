"""
AI service module using Pydantic AI with Logfire integration.

Talks to Gemini through pydantic-ai agents: one produces the tutor's reply
from the personalized system prompt, the other reviews a learner utterance
and returns structured corrections. Agent runs are traced by logfire via
``logfire.instrument_pydantic_ai()`` in settings.
"""

import logging
from typing import Optional

from django.conf import settings
from pydantic_ai import Agent
from pydantic_ai.exceptions import AgentRunError
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.providers.google import GoogleProvider

from .analysis_models import CorrectionReport

logger = logging.getLogger(__name__)


class AIService:
    """Service class for LLM interactions with Pydantic AI and Logfire."""

    def __init__(self, model_name: Optional[str] = None) -> None:
        self.model_name = model_name or settings.GEMINI_MODEL_NAME
        self._model: Optional[GoogleModel] = None

    @property
    def model(self) -> GoogleModel:
        """Gemini model, built on first use so imports never need network access."""
        if self._model is None:
            self._model = GoogleModel(
                self.model_name,
                provider=GoogleProvider(api_key=settings.GEMINI_API_KEY),
            )
        return self._model

    def _build_history(self, conversation_history: list[dict]) -> list[ModelMessage]:
        """Convert ``[{'role': ..., 'content': ...}]`` into pydantic-ai messages."""
        messages: list[ModelMessage] = []
        for msg in conversation_history:
            if msg['role'] == 'user':
                messages.append(ModelRequest(parts=[UserPromptPart(content=msg['content'])]))
            elif msg['role'] == 'assistant':
                messages.append(ModelResponse(parts=[TextPart(content=msg['content'])]))
        return messages

    def _create_correction_agent(
        self, target_language: str, difficulty_level: str
    ) -> Agent[None, CorrectionReport]:
        system_prompt = (
            f"You are a {target_language} teacher reviewing what a {difficulty_level} "
            "level student just said in conversation. List every grammar, vocabulary, "
            "pronunciation or spelling error with the incorrect fragment, the corrected "
            "fragment and a one-sentence explanation. Be lenient with casual spoken "
            "style. If the sentence is fine, return an empty list."
        )
        return Agent(
            model=self.model,
            output_type=CorrectionReport,
            system_prompt=system_prompt,
        )

    async def generate_tutor_reply(
        self,
        system_prompt: str,
        user_message: str,
        conversation_history: list[dict] | None = None,
    ) -> str:
        """
        Generate the tutor's next turn.

        Args:
            system_prompt: Personalized prompt built for this learner
            user_message: The learner's latest utterance
            conversation_history: Previous messages in format
                [{'role': 'user', 'content': '...'}, ...]

        Returns:
            Tutor reply text

        Raises:
            AgentRunError: If the AI model fails to respond
        """
        tutor_agent = Agent(model=self.model, system_prompt=system_prompt)

        if conversation_history:
            result = await tutor_agent.run(
                user_message, message_history=self._build_history(conversation_history)
            )
        else:
            result = await tutor_agent.run(user_message)

        return str(result.output)

    async def detect_corrections(
        self, text: str, target_language: str, difficulty_level: str
    ) -> CorrectionReport:
        """
        Review a learner utterance for errors.

        A failed model run is logged and treated as "no corrections", so the
        conversation can continue.
        """
        try:
            agent = self._create_correction_agent(target_language, difficulty_level)
            result = await agent.run(f'Student said: """\n{text}\n"""')
            return result.output
        except AgentRunError as e:
            logger.warning("Correction detection failed: %s", e)
            return CorrectionReport()


# Default global AI service instance
ai_service = AIService()
