"""
LLM Service: pydantic-ai backed structured output.

One cached Agent per (output type, system prompt, retries, model). Callers
pass a Pydantic output model and get a validated instance back; pydantic-ai
re-prompts the model when validation fails.

Model selection:
  - explicit `model` argument (any pydantic-ai model or model string)
  - MOCK_MODE=true → FunctionModel with deterministic responses
  - otherwise ANNOTATION_MODEL (e.g. "openai:gpt-4o")
"""

import logging
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic_ai import Agent
from pydantic_ai.models.function import FunctionModel
from pydantic_ai.settings import ModelSettings

from ..config import get_settings
from . import mock_responses

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)


class LLMService:
    """High-level LLM service backed by pydantic-ai Agents."""

    # Cache agents by (output_type, system_prompt_hash, retries, model key) across all instances
    _agent_cache: Dict[tuple, Agent] = {}

    def __init__(self, model: Any = None, mock_mode: Optional[bool] = None):
        self.settings = get_settings()
        self.mock_mode = self.settings.mock_mode if mock_mode is None else mock_mode
        if model is not None:
            self.model = model
        elif self.mock_mode:
            self.model = FunctionModel(mock_responses.get_mock_response_for_function_model)
        else:
            self.model = self.settings.annotation_model
        model_label = self.model if isinstance(self.model, str) else type(self.model).__name__
        logger.info(f"LLM: {'MOCK' if self.mock_mode else 'ONLINE'} mode ({model_label})")

    def _model_key(self) -> Any:
        return self.model if isinstance(self.model, str) else id(self.model)

    def _get_or_create_agent(self, output_type: type, system_prompt: str, retries: int = 2) -> Agent:
        """Get or create a cached pydantic-ai Agent."""
        key = (output_type, hash(system_prompt), retries, self._model_key())
        if key not in self._agent_cache:
            self._agent_cache[key] = Agent(
                self.model,
                output_type=output_type,
                system_prompt=system_prompt,
                retries=retries,
            )
        return self._agent_cache[key]

    async def run_structured(
        self,
        prompt: str,
        system_prompt: str = "",
        output_type: Type[T] = str,  # type: ignore[assignment]
        retries: int = 2,
        temperature: Optional[float] = None,
    ) -> T:
        """Generate structured output validated by pydantic-ai.

        Errors from the model or from validation propagate; callers decide
        how to degrade.
        """
        agent = self._get_or_create_agent(output_type, system_prompt, retries)
        if temperature is None:
            temperature = self.settings.annotation_temperature
        result = await agent.run(
            prompt,
            model_settings=ModelSettings(temperature=temperature),
        )
        return result.output

    @classmethod
    def clear_cache(cls) -> None:
        cls._agent_cache.clear()
