"""Tool-calling orchestration loop.

A turn alternates between asking the model for a response and executing the
tools it requested, until the model answers without calling a tool or the step
budget runs out:

    AWAITING_MODEL -> EXECUTING_TOOLS -> AWAITING_MODEL -> ... -> DONE | FAILED

Text produced by the model is streamed to the caller as it arrives. Tool calls
and their results are threaded back into the model conversation but are not
streamed.
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from toolchat.errors import UpstreamError
from toolchat.models.llm import (
    LLMMessage,
    LLMToolDefinition,
    LLMUsage,
    ModelStreamEvent,
    ModelTurn,
    TextDelta,
    ToolResultBlock,
    ToolUseBlock,
)
from toolchat.models.session import ChatMessage
from toolchat.services.background import BackgroundTaskRunner
from toolchat.services.relay import CoordinationRelay
from toolchat.services.sessions import SessionService
from toolchat.services.store import SessionStore
from toolchat.tools.base import ToolContext
from toolchat.tools.registry import ToolsRegistry
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_STEPS = 5


class LoopState(StrEnum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    FAILED = "failed"


class ModelClient(Protocol):
    """The part of the inference client the orchestrator depends on."""

    def stream_message(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
    ) -> AsyncIterator[ModelStreamEvent]: ...

    def validate_message_tokens(self, message: str) -> None: ...


@dataclass
class TurnFinished:
    """Final event of a turn."""

    state: LoopState
    steps: int
    stop_reason: str | None
    truncated: bool
    transitions: list[LoopState]
    usage: LLMUsage = field(default_factory=LLMUsage)


TurnEvent = TextDelta | TurnFinished


def to_llm_messages(messages: list[ChatMessage]) -> list[LLMMessage]:
    """Convert browser-side messages into the model-facing sequence.

    Plain-text tool messages from earlier turns are presented to the model as
    user messages, since only tool_result blocks may carry the tool role.
    """
    converted = []
    for message in messages:
        if message.role == "tool":
            converted.append(LLMMessage(role="user", content=f"Tool result: {message.content}"))
        else:
            converted.append(LLMMessage(role=message.role, content=message.content))
    return converted


class ChatOrchestrator:
    """Drives the ask model -> call tools -> feed results back loop for one turn."""

    def __init__(
        self,
        model: ModelClient,
        registry: ToolsRegistry,
        background: BackgroundTaskRunner,
        store: SessionStore | None = None,
        relay: CoordinationRelay | None = None,
        system_prompt: str = "",
        max_steps: int = DEFAULT_MAX_STEPS,
        session_ttl_seconds: int = 86400,
    ):
        self.model = model
        self.registry = registry
        self.background = background
        self.store = store
        self.relay = relay
        self.system_prompt = system_prompt
        self.max_steps = max_steps
        self.session_ttl_seconds = session_ttl_seconds

    def start_side_effects(self, session_id: str, messages: list[ChatMessage]) -> None:
        """Dispatch persistence and coordination as detached background tasks."""
        if self.store is not None:
            sessions = SessionService(self.store, self.session_ttl_seconds)
            self.background.spawn(sessions.record_turn(session_id, messages), name=f"record-turn:{session_id}")
        else:
            logger.debug(f"No session store configured, not persisting session {session_id}")

        if self.relay is not None:
            self.background.spawn(
                self.relay.notify(session_id, len(messages), "process_chat"),
                name=f"coordinate:{session_id}",
            )

    async def stream_turn(self, session_id: str, messages: list[ChatMessage]) -> AsyncIterator[TurnEvent]:
        """Run one conversation turn, yielding text deltas and a final TurnFinished.

        Args:
            session_id: Session the turn belongs to
            messages: Full prior history with the new user message appended

        Raises:
            UpstreamError: If the model call fails at any step
        """
        self.start_side_effects(session_id, messages)

        context = ToolContext(session_id=session_id, store=self.store, ttl_seconds=self.session_ttl_seconds)
        tools = self.registry.get_tool_schemas()
        current_messages = to_llm_messages(messages)

        usage = LLMUsage()
        transitions = [LoopState.AWAITING_MODEL]
        steps = 0
        response: ModelTurn | None = None

        logger.info(
            f"Starting turn for session {session_id} with {len(messages)} messages, "
            f"{len(tools)} tools, max_steps: {self.max_steps}"
        )

        while steps < self.max_steps:
            steps += 1
            logger.debug(f"Session {session_id} step {steps}/{self.max_steps}")

            try:
                response = None
                async for event in self.model.stream_message(current_messages, self.system_prompt, tools):
                    if isinstance(event, TextDelta):
                        yield event
                    else:
                        response = event
            except UpstreamError:
                transitions.append(LoopState.FAILED)
                logger.error(f"Turn for session {session_id} failed at step {steps}")
                raise

            if response is None:
                transitions.append(LoopState.FAILED)
                raise UpstreamError("Model stream ended without a final response")

            usage.add(response.usage)
            tool_calls = response.tool_calls
            if not tool_calls:
                transitions.append(LoopState.DONE)
                logger.info(f"Turn for session {session_id} completed in {steps} steps")
                yield TurnFinished(
                    state=LoopState.DONE,
                    steps=steps,
                    stop_reason=response.stop_reason,
                    truncated=False,
                    transitions=transitions,
                    usage=usage,
                )
                return

            if steps == self.max_steps:
                # No step left to feed results back, so the requested tools are not run
                logger.info(f"Skipping {len(tool_calls)} tool calls requested on the last step")
                break

            transitions.append(LoopState.EXECUTING_TOOLS)
            logger.info(f"Model requested {len(tool_calls)} tools: {[call.name for call in tool_calls]}")

            current_messages.append(LLMMessage(role="assistant", content=response.content))
            current_messages.append(LLMMessage(role="user", content=await self._execute_tools(tool_calls, context)))

            transitions.append(LoopState.AWAITING_MODEL)

        # Step budget exhausted while the model still wanted tools
        transitions.append(LoopState.DONE)
        logger.warning(f"Turn for session {session_id} reached max steps ({self.max_steps})")
        yield TurnFinished(
            state=LoopState.DONE,
            steps=steps,
            stop_reason=response.stop_reason if response else None,
            truncated=True,
            transitions=transitions,
            usage=usage,
        )

    async def _execute_tools(self, tool_calls: list[ToolUseBlock], context: ToolContext) -> list[ToolResultBlock]:
        """Dispatch all tool calls of one step concurrently."""
        results = await asyncio.gather(
            *(self.registry.dispatch(call.name, call.input, context) for call in tool_calls)
        )
        return [
            ToolResultBlock(tool_use_id=call.id, content=result.as_model_text(), is_error=result.is_error)
            for call, result in zip(tool_calls, results, strict=True)
        ]
