"""Decision capabilities.

A capability turns a serialized DailyContext into a decision document. The
orchestrator validates whatever comes back; capabilities only produce.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Protocol

from loguru import logger
from pydantic import ValidationError
from pydantic_ai import Agent
from pydantic_ai.models.openai import OpenAIModel
from pydantic_ai.providers.openai import OpenAIProvider

from pacelab.coach.errors import DecisionCapabilityError
from pacelab.coach.heuristic import decide_heuristically
from pacelab.coach.schemas.decision import DecisionPayload
from pacelab.config.settings import settings

# Maximum retries for LLM calls
MAX_RETRIES = 2

PROMPTS_DIR = Path(__file__).parent / "prompts"


class DecisionCapability(Protocol):
    name: str

    async def decide(self, context: dict[str, Any]) -> dict[str, Any]: ...


def load_prompt(filename: str) -> str:
    """Load a prompt from the prompts directory.

    Raises:
        FileNotFoundError: If prompt file doesn't exist
    """
    prompt_path = PROMPTS_DIR / filename
    if not prompt_path.exists():
        raise FileNotFoundError(f"Prompt not found: {prompt_path}")
    return prompt_path.read_text(encoding="utf-8")


def get_model(model_name: str | None = None):
    """Get the configured OpenAI-compatible model.

    Raises:
        DecisionCapabilityError: If OPENAI_API_KEY is not configured
    """
    name = model_name or settings.decision_model
    if not settings.openai_api_key and not os.getenv("OPENAI_API_KEY"):
        raise DecisionCapabilityError("llm", "OPENAI_API_KEY is not configured")
    if settings.openai_base_url:
        provider = OpenAIProvider(base_url=settings.openai_base_url, api_key=settings.openai_api_key or None)
        return OpenAIModel(name, provider=provider)
    if settings.openai_api_key and not os.getenv("OPENAI_API_KEY"):
        os.environ["OPENAI_API_KEY"] = settings.openai_api_key
    return OpenAIModel(name)


class LLMDecisionCapability:
    """Daily decision via a pydantic-ai agent with structured output."""

    name = "llm"

    def __init__(self, model: Any = None) -> None:
        self._model = model
        self._agent: Agent | None = None

    def _get_agent(self) -> Agent:
        if self._agent is None:
            self._agent = Agent(
                model=self._model or get_model(),
                system_prompt=load_prompt("daily_decision.txt"),
                output_type=DecisionPayload,
                model_settings={"temperature": 0.3},
            )
        return self._agent

    async def decide(self, context: dict[str, Any]) -> dict[str, Any]:
        """Ask the model for today's decision.

        Raises:
            DecisionCapabilityError: If every attempt fails
        """
        agent = self._get_agent()
        context_str = json.dumps(context, indent=2, default=str)
        last_error: Exception | None = None

        for attempt in range(MAX_RETRIES + 1):
            try:
                logger.info(f"Generating daily decision (attempt {attempt + 1}/{MAX_RETRIES + 1})")
                result = await agent.run(f"Here is today's complete athlete data:\n{context_str}")
            except ValidationError as e:
                logger.warning(f"Daily decision parsing failed: {e}. Retrying...")
                last_error = e
                context_str = json.dumps({**context, "parsing_errors": str(e)}, indent=2, default=str)
                continue
            except Exception as e:
                logger.error(f"Error generating daily decision: {type(e).__name__}: {e}")
                last_error = e
                continue
            else:
                logger.info("Daily decision generated successfully")
                return result.output.model_dump(mode="json")

        raise DecisionCapabilityError(
            self.name,
            f"Failed to generate daily decision after {MAX_RETRIES + 1} attempts: {type(last_error).__name__}: {last_error}",
        )


class HeuristicDecisionCapability:
    """Deterministic rule-based decision. Used without a model, and in tests."""

    name = "heuristic"

    async def decide(self, context: dict[str, Any]) -> dict[str, Any]:
        return decide_heuristically(context)


def get_decision_capability() -> DecisionCapability:
    """Capability selected by DECISION_CAPABILITY."""
    if settings.decision_capability == "heuristic":
        return HeuristicDecisionCapability()
    return LLMDecisionCapability()
