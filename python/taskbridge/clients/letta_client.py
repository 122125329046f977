"""
Letta REST client.

Covers the memory-block operations the workspace manager needs and the
agent messaging endpoint used for completion notices (this class is the
bridge's IAgentNotifier).
"""

import logging
from typing import Any, Dict, List, Optional

import aiohttp

from taskbridge.exceptions import LettaAPIError, WorkspaceConflictError

logger = logging.getLogger(__name__)

LETTA_API_BASE = "http://localhost:8283"


class LettaClient:
    """Async HTTP client for the Letta agents and blocks API."""

    def __init__(
        self,
        base_url: str = LETTA_API_BASE,
        token: Optional[str] = None,
        timeout_seconds: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._session = aiohttp.ClientSession(
                base_url=self.base_url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        session = await self._get_session()
        async with session.request(method, path, json=json, params=params) as resp:
            if resp.status == 409:
                raise WorkspaceConflictError(f"Letta conflict on {method} {path}")
            if resp.status >= 400:
                body = await resp.text()
                raise LettaAPIError(
                    f"Letta {method} {path} failed: {resp.status} {body[:200]}",
                    status=resp.status,
                )
            if resp.status == 204:
                return None
            return await resp.json()

    # --- Agents ---

    async def get_agent(self, agent_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/v1/agents/{agent_id}")

    async def list_messages(self, agent_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        return await self._request(
            "GET", f"/v1/agents/{agent_id}/messages", params={"limit": str(limit)}
        )

    async def send_message(self, agent_id: str, role: str, content: str) -> Any:
        """Post a message to the agent (IAgentNotifier)."""
        payload = {
            "messages": [
                {"role": role, "content": [{"type": "text", "text": content}]}
            ]
        }
        return await self._request("POST", f"/v1/agents/{agent_id}/messages", json=payload)

    # --- Memory blocks ---

    async def create_memory_block(
        self,
        label: str,
        value: str,
        description: str = "",
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        logger.debug(f"Creating memory block {label}")
        payload: Dict[str, Any] = {"label": label, "value": value, "description": description}
        if limit is not None:
            payload["limit"] = limit
        return await self._request("POST", "/v1/blocks/", json=payload)

    async def get_memory_block(self, block_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/v1/blocks/{block_id}")

    async def update_memory_block(self, block_id: str, value: str) -> Dict[str, Any]:
        return await self._request("PATCH", f"/v1/blocks/{block_id}", json={"value": value})

    async def attach_memory_block(self, agent_id: str, block_id: str) -> None:
        await self._request(
            "PATCH", f"/v1/agents/{agent_id}/core-memory/blocks/attach/{block_id}"
        )

    async def detach_memory_block(self, agent_id: str, block_id: str) -> None:
        await self._request(
            "PATCH", f"/v1/agents/{agent_id}/core-memory/blocks/detach/{block_id}"
        )

    async def list_memory_blocks(self, agent_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/v1/agents/{agent_id}/core-memory/blocks")
