"""Best-effort notification of the coordinator process."""

from typing import Any

import httpx

from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

COORDINATE_PATH = "/api/chat/coordinate"


class CoordinationRelay:
    """HTTP client for the sibling coordinator service."""

    def __init__(self, base_url: str, timeout: float = 5.0, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def notify(self, session_id: str, message_count: int, action: str = "process_chat") -> dict[str, Any]:
        """Tell the coordinator about session activity.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx response
        """
        payload = {"sessionId": session_id, "messageCount": message_count, "action": action}
        logger.debug(f"Notifying coordinator for session {session_id}: {action}")

        response = await self.client.post(f"{self.base_url}{COORDINATE_PATH}", json=payload)
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        await self.client.aclose()
