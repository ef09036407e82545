"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, model_validator

from toolchat.services.store import SessionStore


@dataclass(frozen=True)
class ToolContext:
    """Capabilities handed to a tool call: the current session and the store, if any."""

    session_id: str
    store: SessionStore | None = None
    ttl_seconds: int = 86400


ToolHandler = Callable[[BaseModel, ToolContext], Awaitable[str]]


class ToolInvocationResult(BaseModel):
    """Outcome of a tool call. Exactly one of result and error is set."""

    result: str | None = None
    error: str | None = None

    @model_validator(mode="after")
    def check_exactly_one(self) -> "ToolInvocationResult":
        if (self.result is None) == (self.error is None):
            raise ValueError("Exactly one of result or error must be set")
        return self

    @classmethod
    def ok(cls, result: str) -> "ToolInvocationResult":
        return cls(result=result)

    @classmethod
    def failed(cls, error: str) -> "ToolInvocationResult":
        return cls(error=error)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def as_model_text(self) -> str:
        """Text folded back into the model conversation."""
        return f"Error: {self.error}" if self.error is not None else str(self.result)


@dataclass
class ToolDefinition:
    """Definition of a tool available to the AI assistant."""

    name: str
    description: str
    input_schema_class: type[BaseModel]
    handler: ToolHandler

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        schema = self.input_schema_class.model_json_schema(by_alias=True)
        schema.pop("title", None)
        return schema

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)
