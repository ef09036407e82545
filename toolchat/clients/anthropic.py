"""Anthropic API client with streaming, rate limiting and token accounting."""

import asyncio
import os
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx
import tiktoken
from anthropic import APIError, AsyncAnthropic
from limits import RateLimitItem, parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from toolchat.errors import ConfigurationError, UpstreamError, ValidationError
from toolchat.models.llm import (
    ContentBlock,
    LLMMessage,
    LLMToolDefinition,
    LLMUsage,
    ModelStreamEvent,
    ModelTurn,
    TextBlock,
    TextDelta,
    ToolUseBlock,
)
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AnthropicConfig:
    """Model, sampling and budget settings for the inference client."""

    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 1000
    temperature: float = 0.1

    # Per-message limit checked before a turn starts
    max_message_tokens: int = 2000
    # Context window budget used when dropping old history
    max_conversation_tokens: int = 200000
    token_headroom: int = 2000

    # Encoding used to approximate Claude token counts; None falls back to chars / 4
    tokenizer_model: str | None = "gpt-4"

    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000


class ModelRateLimiter:
    """Client-side moving-window throttle on requests and tokens per minute.

    Requests over the limit wait for the window to free up instead of failing.
    """

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        self.limiter = MovingWindowRateLimiter(MemoryStorage())
        self.requests = parse(f"{requests_per_minute}/minute")
        self.tokens = parse(f"{tokens_per_minute}/minute")

    async def acquire(self, estimated_tokens: int, key: str) -> None:
        """Block until one request costing estimated_tokens fits under both limits."""
        logger.debug(f"Acquiring rate limit for {estimated_tokens} tokens on {key}")

        if not self.limiter.hit(self.requests, key, "requests"):
            await self._wait(self.requests, key, "requests")

        if not self.limiter.hit(self.tokens, key, "tokens", cost=estimated_tokens):
            await self._wait(self.tokens, key, "tokens")

    async def _wait(self, limit: RateLimitItem, key: str, kind: str) -> None:
        stats = self.limiter.get_window_stats(limit, key, kind)
        wait_time = max(0.0, stats.reset_time - time.time())
        if wait_time > 0:
            logger.warning(f"Rate limit on {kind} reached for {key}, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)


class AnthropicClient:
    """Streaming Anthropic Messages API client."""

    tokenizer: tiktoken.Encoding | None = None
    client: AsyncAnthropic
    config: AnthropicConfig

    def __init__(self, api_key: str | None = None, config: AnthropicConfig | None = None):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Client configuration

        Raises:
            ConfigurationError: If no API key is available
        """
        anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not anthropic_api_key:
            raise ConfigurationError(
                "ANTHROPIC_API_KEY is not set",
                details="Set ANTHROPIC_API_KEY in the environment or .env file to enable the model.",
            )

        self.client = AsyncAnthropic(api_key=anthropic_api_key)
        self.config = config or AnthropicConfig()
        self.rate_limiter = ModelRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)

        self.tokenizer = None
        if self.config.tokenizer_model:
            try:
                # Close approximation for Claude
                self.tokenizer = tiktoken.encoding_for_model(self.config.tokenizer_model)
            except Exception as e:
                logger.warning(f"Tokenizer unavailable, falling back to character estimate: {e}")

    async def stream_message(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
    ) -> AsyncIterator[ModelStreamEvent]:
        """Stream one model response.

        Yields a TextDelta for every text chunk as it arrives, then a single
        ModelTurn describing the complete response (including tool calls).

        Raises:
            UpstreamError: If the Anthropic API call fails
        """
        truncated_messages = self.truncate_conversation(messages, system_prompt, tools)

        estimated_tokens = self._estimate_tokens(truncated_messages, system_prompt)
        await self.rate_limiter.acquire(estimated_tokens, key=self.config.model)

        request_params: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "system": system_prompt,
            "messages": [msg.model_dump() for msg in truncated_messages],
        }
        if tools:
            request_params["tools"] = [tool.model_dump() for tool in tools]

        logger.debug(
            f"Streaming message with {len(truncated_messages)} messages, {len(tools) if tools else 0} tools, "
            f"model: {self.config.model}"
        )

        try:
            async with self.client.messages.stream(**request_params) as stream:
                async for text in stream.text_stream:
                    yield TextDelta(text=text)
                final = await stream.get_final_message()
        except APIError as e:
            logger.error(f"Anthropic API call failed: {e}")
            raise UpstreamError(f"Inference provider error: {e.message}", details=type(e).__name__) from e
        except httpx.HTTPError as e:
            # Transport failures while reading the response body are not wrapped by the SDK
            logger.error(f"Anthropic stream interrupted: {e!r}")
            raise UpstreamError(f"Inference provider error: {e}", details=type(e).__name__) from e

        usage = LLMUsage()
        if final.usage:
            usage = LLMUsage(
                input_tokens=final.usage.input_tokens,
                output_tokens=final.usage.output_tokens,
                total_tokens=final.usage.input_tokens + final.usage.output_tokens,
            )

        logger.debug(f"Response received - Stop reason: {final.stop_reason}, Content blocks: {len(final.content)}")

        yield ModelTurn(
            content=self._convert_content_blocks(final.content),
            stop_reason=final.stop_reason,
            usage=usage,
            model=final.model,
        )

    def _convert_content_blocks(self, anthropic_content: list[Any]) -> list[ContentBlock]:
        """Convert Anthropic content blocks to our ContentBlock types."""
        converted_blocks: list[ContentBlock] = []
        for block in anthropic_content:
            block_dict = block.model_dump() if hasattr(block, "model_dump") else dict(block)

            if block_dict.get("type") == "text":
                converted_blocks.append(TextBlock.model_validate(block_dict))
            elif block_dict.get("type") == "tool_use":
                converted_blocks.append(ToolUseBlock.model_validate(block_dict))
            else:
                logger.warning(f"Unknown content block type: {block_dict.get('type')}")

        return converted_blocks

    def _message_text(self, message: LLMMessage) -> str:
        if isinstance(message.content, str):
            return message.content

        parts = []
        for block in message.content:
            if isinstance(block, TextBlock):
                parts.append(block.text)
            elif isinstance(block, ToolUseBlock):
                parts.append(str(block.input))
            else:
                parts.append(block.content)
        return "".join(parts)

    def _estimate_tokens(self, messages: list[LLMMessage], system_prompt: str) -> int:
        """Estimated cost of a whole request, charged against the token rate limit."""
        text_content = system_prompt + "".join(self._message_text(message) for message in messages)
        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Approximate the Claude token count of a piece of text."""
        if self.tokenizer is None:
            return len(message) // 4
        try:
            return len(self.tokenizer.encode(message))
        except Exception as e:
            logger.debug(f"Tokenizer failed, using character estimate: {e}")
            return len(message) // 4

    def validate_message_tokens(self, message: str) -> None:
        """Reject a single chat message that is too long to send.

        Raises:
            ValidationError: If the message is over max_message_tokens
        """
        token_count = self.estimate_message_tokens(message)
        if token_count > self.config.max_message_tokens:
            raise ValidationError(
                f"Message exceeds token limit: {token_count} tokens > {self.config.max_message_tokens} limit",
                details={"tokens": token_count, "limit": self.config.max_message_tokens},
            )

    def truncate_conversation(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
    ) -> list[LLMMessage]:
        """Keep the newest messages that fit in the context window.

        The budget is the context size minus response headroom, the system prompt
        and the tool schemas. The kept window always starts on a plain user
        message.
        """
        if not messages:
            return messages

        budget = self.config.max_conversation_tokens - self.config.token_headroom
        budget -= self.estimate_message_tokens(system_prompt)
        if tools:
            budget -= self.estimate_message_tokens(
                "".join(tool.name + tool.description + str(tool.input_schema) for tool in tools)
            )

        kept: list[LLMMessage] = []
        used = 0
        for message in reversed(messages):
            cost = self.estimate_message_tokens(self._message_text(message))
            if used + cost > budget:
                break
            kept.append(message)
            used += cost
        kept.reverse()

        # A leading tool_result would reference a tool_use that was cut off
        while kept and not (kept[0].role == "user" and isinstance(kept[0].content, str)):
            kept.pop(0)

        if len(kept) < len(messages):
            logger.warning(f"Dropped {len(messages) - len(kept)} of {len(messages)} messages to fit {budget} tokens")

        return kept


_anthropic_client: AnthropicClient | None = None


def get_anthropic_client(api_key: str | None = None, config: AnthropicConfig | None = None) -> AnthropicClient:
    """Return the process-wide client, creating it on first use."""
    global _anthropic_client
    if _anthropic_client is None:
        _anthropic_client = AnthropicClient(api_key=api_key, config=config)
    return _anthropic_client
