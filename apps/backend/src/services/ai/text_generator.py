"""pydantic-ai backed implementation of the TextGenerator capability."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any

from pydantic_ai import Agent
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.models import Model

from core.exceptions import UpstreamGenerationError
from schemas.chat_streaming import HistoryMessage
from services.ai.interfaces import OutputT


logger = logging.getLogger(__name__)


def to_model_messages(
    history: Sequence[HistoryMessage] | None, instructions: str | None = None
) -> list[ModelMessage]:
    """Convert normalized history into pydantic-ai message objects."""
    messages: list[ModelMessage] = []
    if instructions:
        messages.append(ModelRequest(parts=[SystemPromptPart(content=instructions)]))
    for item in history or ():
        if item.role == "model":
            messages.append(ModelResponse(parts=[TextPart(content=item.content)]))
        elif item.role == "system":
            messages.append(ModelRequest(parts=[SystemPromptPart(content=item.content)]))
        else:
            messages.append(ModelRequest(parts=[UserPromptPart(content=item.content)]))
    return messages


class AgentGenerationStream:
    """A lazily started ``run_stream`` call.

    Nothing is sent to the provider until ``chunks()`` is iterated. Closing
    the iterator early exits the run context without waiting for the rest of
    the response.
    """

    def __init__(self, agent: Agent[None, str], prompt: str, history: list[ModelMessage]):
        self._agent = agent
        self._prompt = prompt
        self._history = history
        self._parts: list[str] = []
        self._final: str | None = None

    async def chunks(self) -> AsyncIterator[str]:
        try:
            async with self._agent.run_stream(
                self._prompt, message_history=self._history or None
            ) as result:
                async for delta in result.stream_text(delta=True, debounce_by=None):
                    if delta:
                        self._parts.append(delta)
                        yield delta
                self._final = await result.get_output()
        except UpstreamGenerationError:
            raise
        except Exception as exc:
            raise UpstreamGenerationError(str(exc) or exc.__class__.__name__) from exc

    async def final_text(self) -> str:
        if self._final is not None:
            return self._final
        return "".join(self._parts)


class PydanticAITextGenerator:
    """TextGenerator over pydantic-ai Agents.

    ``model`` may be a concrete Model or a zero-argument factory; factories
    are resolved on first use so importing this module never needs API keys.
    """

    def __init__(self, model: Model | Callable[[], Model]):
        self._model_source = model
        self._model: Model | None = None
        self._text_agent: Agent[None, str] | None = None
        self._structured_agents: dict[type[Any], Agent[None, Any]] = {}

    def _resolve_model(self) -> Model:
        if self._model is None:
            source = self._model_source
            self._model = source if isinstance(source, Model) else source()
        return self._model

    def _get_text_agent(self) -> Agent[None, str]:
        if self._text_agent is None:
            self._text_agent = Agent(self._resolve_model(), output_type=str)
        return self._text_agent

    def _get_structured_agent(self, output_type: type[OutputT]) -> Agent[None, OutputT]:
        agent = self._structured_agents.get(output_type)
        if agent is None:
            agent = Agent(self._resolve_model(), output_type=output_type, retries=1)
            self._structured_agents[output_type] = agent
        return agent

    async def generate(
        self, prompt: str, history: Sequence[HistoryMessage] | None = None
    ) -> str:
        try:
            result = await self._get_text_agent().run(
                prompt, message_history=to_model_messages(history) or None
            )
        except Exception as exc:
            raise UpstreamGenerationError(str(exc) or exc.__class__.__name__) from exc
        return result.output

    async def generate_structured(self, prompt: str, output_type: type[OutputT]) -> OutputT:
        try:
            result = await self._get_structured_agent(output_type).run(prompt)
        except Exception as exc:
            raise UpstreamGenerationError(str(exc) or exc.__class__.__name__) from exc
        return result.output

    def stream(
        self,
        prompt: str,
        history: Sequence[HistoryMessage] | None = None,
        *,
        instructions: str | None = None,
    ) -> AgentGenerationStream:
        return AgentGenerationStream(
            self._get_text_agent(), prompt, to_model_messages(history, instructions)
        )
