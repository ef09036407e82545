"""Session statistics tool."""

from pydantic import BaseModel, ConfigDict, Field

from toolchat.errors import StoreUnavailableError
from toolchat.services.sessions import SessionService
from toolchat.tools.base import ToolContext, ToolDefinition


class SessionStatsInput(BaseModel):
    """Input schema for the getSessionStats tool."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(
        default=None,
        alias="sessionId",
        description="The session ID to get stats for. Usually provided in the context.",
    )


async def session_stats_handler(params: SessionStatsInput, context: ToolContext) -> str:
    if context.store is None:
        raise StoreUnavailableError("Session storage not available")

    target_session_id = params.session_id or context.session_id
    stats = await SessionService(context.store, context.ttl_seconds).get_stats(target_session_id)
    return stats.to_json()


def create_session_stats_tool() -> ToolDefinition:
    return ToolDefinition(
        name="getSessionStats",
        description=(
            "Gets statistics about the current chat session. Use this when users ask about "
            "conversation history, message count, or session information."
        ),
        input_schema_class=SessionStatsInput,
        handler=session_stats_handler,
    )
