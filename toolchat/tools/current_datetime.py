"""Current date and time tool."""

import json

from pydantic import BaseModel, Field

from toolchat.tools.base import ToolContext, ToolDefinition
from toolchat.tools.clock import DateTimeFormat, now


class CurrentDateTimeInput(BaseModel):
    """Input schema for the getCurrentDateTime tool."""

    timezone: str | None = Field(
        default=None,
        description='Optional timezone (e.g., "UTC", "America/New_York"). Defaults to UTC if not provided.',
    )
    format: DateTimeFormat | None = Field(
        default=None,
        description='Optional format: "full" (date + time), "date" (date only), "time" (time only). Defaults to "full".',
    )


async def current_datetime_handler(params: CurrentDateTimeInput, context: ToolContext) -> str:  # noqa: RUF029
    return json.dumps(now(params.timezone, params.format))


def create_current_datetime_tool() -> ToolDefinition:
    return ToolDefinition(
        name="getCurrentDateTime",
        description=(
            "Gets the current date and time. Use this when users ask about the current date, "
            "time, day of week, or time-related questions."
        ),
        input_schema_class=CurrentDateTimeInput,
        handler=current_datetime_handler,
    )
