"""Shared test fixtures."""

import json
from collections.abc import Callable, Iterator

import pytest
from fastapi.testclient import TestClient

from toolchat.dependencies import (
    get_background_runner,
    get_coordination_relay,
    get_model_client,
    get_session_store,
)
from toolchat.errors import UpstreamError, ValidationError
from toolchat.main import app
from toolchat.models.llm import LLMMessage, LLMUsage, ModelTurn, TextBlock, TextDelta, ToolUseBlock
from toolchat.services.background import BackgroundTaskRunner
from toolchat.services.orchestrator import ChatOrchestrator
from toolchat.services.store import InMemorySessionStore
from toolchat.tools.registry import ToolsRegistry

Step = ModelTurn | Callable[[list[LLMMessage]], ModelTurn] | Exception


def text_turn(text: str) -> ModelTurn:
    return ModelTurn(
        content=[TextBlock(text=text)],
        stop_reason="end_turn",
        usage=LLMUsage(input_tokens=10, output_tokens=5, total_tokens=15),
        model="scripted",
    )


def tool_turn(name: str, tool_input: dict, tool_id: str = "toolu_1", text: str | None = None) -> ModelTurn:
    content = [TextBlock(text=text)] if text else []
    content.append(ToolUseBlock(id=tool_id, name=name, input=tool_input))
    return ModelTurn(
        content=content,
        stop_reason="tool_use",
        usage=LLMUsage(input_tokens=10, output_tokens=5, total_tokens=15),
        model="scripted",
    )


class ScriptedModel:
    """Fake model client replaying a fixed script, one entry per step.

    The last entry repeats once the script is exhausted. An entry may be a
    ModelTurn, a callable building one from the messages it receives, or an
    exception to raise.
    """

    def __init__(self, *script: Step, max_message_chars: int = 4000):
        self.script = list(script)
        self.calls: list[list[LLMMessage]] = []
        self.max_message_chars = max_message_chars

    async def stream_message(self, messages, system_prompt, tools=None):
        self.calls.append(list(messages))
        step = self.script[min(len(self.calls), len(self.script)) - 1]

        if isinstance(step, Exception):
            raise step
        turn = step if isinstance(step, ModelTurn) else step(messages)

        for block in turn.content:
            if isinstance(block, TextBlock):
                for word in block.text.split(" "):
                    yield TextDelta(text=word + " ")
        yield turn

    def validate_message_tokens(self, message: str) -> None:
        if len(message) > self.max_message_chars:
            raise ValidationError("Message exceeds token limit")


class FailingAfterTextModel(ScriptedModel):
    """Streams some text, then fails mid-response."""

    def __init__(self, error: Exception | None = None):
        super().__init__()
        self.error = error or UpstreamError("Inference provider error: overloaded")

    async def stream_message(self, messages, system_prompt, tools=None):
        self.calls.append(list(messages))
        yield TextDelta(text="Partial ")
        raise self.error


def parse_sse(body: str) -> list[dict]:
    return [json.loads(line[len("data: ") :]) for line in body.splitlines() if line.startswith("data: ")]


def streamed_text(events: list[dict]) -> str:
    return "".join(event["content"] for event in events if event["type"] == "text")


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def registry() -> ToolsRegistry:
    return ToolsRegistry()


@pytest.fixture
def runner() -> BackgroundTaskRunner:
    return BackgroundTaskRunner()


@pytest.fixture
def make_orchestrator(registry, runner, store) -> Callable[..., ChatOrchestrator]:
    def factory(model, **kwargs) -> ChatOrchestrator:
        options = {"store": store, "relay": None, "system_prompt": "test", "max_steps": 5}
        options.update(kwargs)
        return ChatOrchestrator(model=model, registry=registry, background=runner, **options)

    return factory


@pytest.fixture
def api_client(store, runner) -> Iterator[Callable[[ScriptedModel], TestClient]]:
    """TestClient factory with the model, store and relay overridden."""

    def factory(model: ScriptedModel) -> TestClient:
        app.dependency_overrides[get_model_client] = lambda: model
        app.dependency_overrides[get_session_store] = lambda: store
        app.dependency_overrides[get_coordination_relay] = lambda: None
        app.dependency_overrides[get_background_runner] = lambda: runner
        return TestClient(app)

    yield factory
    app.dependency_overrides.clear()
