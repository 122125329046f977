"""
Matrix client-server API client.

Only the handful of endpoints the bridge needs: room creation, messaging,
membership and a long-poll ``sync`` for the message router.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from taskbridge.exceptions import MatrixAPIError

logger = logging.getLogger(__name__)

CLIENT_API = "/_matrix/client/v3"
CONTROL_MSGTYPE = "io.letta.control"
TASK_METADATA_KEY = "io.letta.task"


def _room(room_id: str) -> str:
    return f"{CLIENT_API}/rooms/{quote(room_id, safe='')}"


class MatrixClient:
    """Async HTTP client for a Matrix homeserver, authenticated as the bot user."""

    def __init__(
        self,
        homeserver_url: str,
        access_token: str,
        user_id: str,
        timeout_seconds: float = 60.0,
    ):
        self.homeserver_url = homeserver_url.rstrip("/")
        self.access_token = access_token
        self.user_id = user_id
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                base_url=self.homeserver_url,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.access_token}",
                },
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
    ) -> Dict[str, Any]:
        session = await self._get_session()
        async with session.request(method, path, json=json, params=params) as resp:
            if resp.status >= 400:
                body = await resp.text()
                raise MatrixAPIError(
                    f"Matrix {method} {path} failed: {resp.status} {body[:200]}",
                    status=resp.status,
                )
            return await resp.json()

    # --- Rooms ---

    async def create_room(
        self,
        name: str,
        topic: Optional[str] = None,
        invite: Optional[List[str]] = None,
        visibility: str = "private",
        power_level_override: Optional[Dict[str, Any]] = None,
    ) -> str:
        payload: Dict[str, Any] = {
            "name": name,
            "visibility": visibility,
            "invite": invite or [],
        }
        if topic:
            payload["topic"] = topic
        if power_level_override:
            payload["power_level_content_override"] = power_level_override
        data = await self._request("POST", f"{CLIENT_API}/createRoom", json=payload)
        return data["room_id"]

    async def join_room(self, room_id: str) -> None:
        await self._request("POST", f"{CLIENT_API}/join/{quote(room_id, safe='')}", json={})

    async def leave_room(self, room_id: str) -> None:
        await self._request("POST", f"{_room(room_id)}/leave", json={})

    async def invite_user(self, room_id: str, user_id: str) -> None:
        await self._request("POST", f"{_room(room_id)}/invite", json={"user_id": user_id})

    async def kick_user(self, room_id: str, user_id: str, reason: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"user_id": user_id}
        if reason:
            payload["reason"] = reason
        await self._request("POST", f"{_room(room_id)}/kick", json=payload)

    async def set_room_topic(self, room_id: str, topic: str) -> None:
        await self._request("PUT", f"{_room(room_id)}/state/m.room.topic/", json={"topic": topic})

    # --- Messages ---

    async def send_event(self, room_id: str, content: Dict[str, Any]) -> str:
        txn_id = uuid.uuid4().hex
        data = await self._request(
            "PUT", f"{_room(room_id)}/send/m.room.message/{txn_id}", json=content
        )
        return data.get("event_id", "")

    async def send_message(
        self, room_id: str, text: str, metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        content: Dict[str, Any] = {"msgtype": "m.text", "body": text}
        if metadata:
            content.update(metadata)
        return await self.send_event(room_id, content)

    async def send_html_message(
        self,
        room_id: str,
        text: str,
        html: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        content: Dict[str, Any] = {
            "msgtype": "m.text",
            "body": text,
            "format": "org.matrix.custom.html",
            "formatted_body": html,
        }
        if metadata:
            content.update(metadata)
        return await self.send_event(room_id, content)

    async def send_control_signal(
        self, room_id: str, task_id: str, control: str, reason: Optional[str] = None
    ) -> str:
        content = {
            "msgtype": CONTROL_MSGTYPE,
            "body": f"Control signal: {control}",
            TASK_METADATA_KEY: {"task_id": task_id, "control": control, "reason": reason},
        }
        return await self.send_event(room_id, content)

    # --- Sync ---

    async def sync(self, since: Optional[str] = None, timeout_ms: int = 30000) -> Dict[str, Any]:
        params = {"timeout": str(timeout_ms)}
        if since:
            params["since"] = since
        return await self._request("GET", f"{CLIENT_API}/sync", params=params)
