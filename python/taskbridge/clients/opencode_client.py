"""
OpenCode server client.

Sessions, prompts, aborts and file access over the server's REST API, plus
the server-sent event stream that reports session progress.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import aiohttp

from taskbridge.exceptions import OpenCodeAPIError

logger = logging.getLogger(__name__)

_COMPLETION_STATUSES = {"complete", "completed", "finished", "success", "succeeded", "done"}
_FAILURE_STATUSES = {"timeout", "cancelled", "failed"}
_STATUS_KEYS = ("status", "state", "phase", "result")


def _is_completion_keyword(kind: str) -> bool:
    if kind in ("finish", "finish-step", "done", "complete"):
        return True
    if kind.startswith(("finish:", "finish_")):
        return True
    if kind.endswith((":finish", ".finish", "_finish", ":complete", ".complete", "_complete")):
        return True
    if "complete" in kind and "incomplete" not in kind:
        return True
    if "finished" in kind and "unfinished" not in kind:
        return True
    if "success" in kind and "unsuccess" not in kind:
        return True
    return False


def normalize_event_kind(
    raw_kind: Any, properties: Optional[Dict[str, Any]] = None
) -> Tuple[str, Optional[str]]:
    """Map a server event type onto the bridge's event kinds.

    Completion keywords and completion-like status properties become
    ``complete``. Everything else keeps its original kind.

    Returns:
        (kind, mapped_from) where mapped_from is set when a mapping applied
    """
    if not isinstance(raw_kind, str):
        return "unknown", None

    if _is_completion_keyword(raw_kind.lower()):
        return "complete", raw_kind

    for key in _STATUS_KEYS:
        value = (properties or {}).get(key)
        if not isinstance(value, str) or not value.strip():
            continue
        value = value.strip().lower()
        if value in _COMPLETION_STATUSES:
            return "complete", f"{raw_kind}:{key}={value}"
        if value in _FAILURE_STATUSES:
            break
    return raw_kind, None


def event_session_id(properties: Dict[str, Any]) -> Optional[str]:
    return properties.get("sessionId") or properties.get("sessionID")


class OpenCodeClient:
    """Async HTTP client for an OpenCode server."""

    def __init__(self, base_url: str, timeout_seconds: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                base_url=self.base_url,
                headers={"Content-Type": "application/json"},
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
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with session.request(
            method, path, json=json_body, params=params, timeout=timeout
        ) as resp:
            if resp.status >= 400:
                body = await resp.text()
                raise OpenCodeAPIError(
                    f"OpenCode {method} {path} failed: {resp.status} {body[:200]}",
                    status=resp.status,
                )
            if resp.content_type == "application/json":
                return await resp.json()
            return await resp.text()

    # --- Health ---

    async def is_healthy(self) -> bool:
        try:
            await self._request("GET", "/config")
            return True
        except Exception as e:
            logger.warning(f"OpenCode health check failed: {e}")
            return False

    # --- Sessions ---

    async def create_session(self, task_id: str, agent_id: str) -> str:
        data = await self._request(
            "POST",
            "/session",
            json_body={"title": f"Task: {task_id}"},
        )
        session_id = data.get("id") if isinstance(data, dict) else None
        if not session_id:
            raise OpenCodeAPIError("Session creation failed: no ID returned")
        logger.info(f"Created OpenCode session {session_id} for task {task_id} (agent {agent_id})")
        return session_id

    async def send_prompt(self, session_id: str, text: str) -> Any:
        return await self._request(
            "POST",
            f"/session/{session_id}/message",
            json_body={"parts": [{"type": "text", "text": text}]},
        )

    async def abort_session(self, session_id: str) -> None:
        await self._request("POST", f"/session/{session_id}/abort")

    # --- Files ---

    async def list_files(self, path: Optional[str] = None) -> List[str]:
        params = {"path": path} if path and path != "/" else None
        files = await self._request("GET", "/file/status", params=params)
        return [f.get("path", "") for f in files or []]

    async def read_file(self, path: str) -> str:
        data = await self._request("GET", "/file/content", params={"path": path})
        if isinstance(data, dict):
            return data.get("content", "")
        return data

    # --- Events ---

    async def open_event_stream(self) -> aiohttp.ClientResponse:
        """Connect to the SSE endpoint. The caller owns and must release the response."""
        session = await self._get_session()
        resp = await session.get(
            "/event",
            headers={"Accept": "text/event-stream"},
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=self.timeout_seconds),
        )
        if resp.status >= 400:
            resp.release()
            raise OpenCodeAPIError(f"OpenCode event stream failed: {resp.status}", status=resp.status)
        return resp

    @staticmethod
    async def iter_events(resp: aiohttp.ClientResponse) -> AsyncIterator[Dict[str, Any]]:
        """Yield decoded ``data:`` payloads from a server-sent event stream."""
        data_lines: List[str] = []
        async for raw_line in resp.content:
            line = raw_line.decode("utf-8", errors="replace").rstrip("\r\n")
            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip())
                continue
            if line == "" and data_lines:
                payload = "\n".join(data_lines)
                data_lines = []
                try:
                    yield json.loads(payload)
                except ValueError:
                    logger.debug(f"Skipping non-JSON event payload: {payload[:100]}")
