"""
Execution backend.

Two modes:
- OpenCode server: one server session per task, progress from the server's
  event stream
- Docker: one ``docker run --rm`` container per task, output captured from
  the process
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from taskbridge.clients.opencode_client import (
    OpenCodeClient,
    event_session_id,
    normalize_event_kind,
)
from taskbridge.exceptions import ExecutionBackendError
from taskbridge.interfaces.execution_backend import EventCallback
from taskbridge.models.events import ExecutionEvent, parse_execution_event
from taskbridge.models.execution import (
    ActiveExecution,
    ExecutionRequest,
    ExecutionResult,
    ExecutionStatus,
)
from taskbridge.models.task import now_ms

logger = logging.getLogger(__name__)

OUTPUT_TAIL_CHARS = 50000
TIMEOUT_ERROR = "Task execution timed out"


@dataclass
class ExecutionConfig:
    timeout_ms: int = 300000
    image: str = "ghcr.io/anthropics/claude-code:latest"
    cpu_limit: Optional[str] = "2.0"
    memory_limit: Optional[str] = "2g"
    grace_period_ms: int = 5000
    workspace_dir: str = "/opt/stacks"


class _TailBuffer:
    """Keeps only the last ``limit`` characters written."""

    def __init__(self, limit: int = OUTPUT_TAIL_CHARS):
        self.limit = limit
        self.text = ""

    def write(self, chunk: str) -> None:
        self.text += chunk
        if len(self.text) > self.limit:
            self.text = self.text[-self.limit:]


def _event_text(data) -> str:
    if isinstance(data, dict):
        for key in ("text", "delta", "content", "message"):
            value = data.get(key)
            if isinstance(value, str):
                return value
    return str(data)


class ExecutionManager:
    """IExecutionBackend implementation (OpenCode server or docker)."""

    def __init__(self, config: ExecutionConfig, opencode: Optional[OpenCodeClient] = None):
        self.config = config
        self.opencode = opencode
        self._active: Dict[str, ActiveExecution] = {}
        mode = "OpenCode server" if opencode else "docker"
        logger.info(f"Execution manager using {mode} mode")

    async def execute(
        self,
        request: ExecutionRequest,
        on_event: Optional[EventCallback] = None,
    ) -> ExecutionResult:
        if self.opencode is not None:
            return await self._execute_with_server(request, on_event)
        return await self._execute_with_docker(request)

    # ── OpenCode server mode ─────────────────────────────────────────

    async def _execute_with_server(
        self, request: ExecutionRequest, on_event: Optional[EventCallback]
    ) -> ExecutionResult:
        started_at = now_ms()
        timeout_ms = request.timeout_ms or self.config.timeout_ms

        session_id = await self.opencode.create_session(request.task_id, request.agent_id)
        self._active[request.task_id] = ActiveExecution(
            task_id=request.task_id,
            container_id=session_id,
            started_at=started_at,
            session_id=session_id,
            server_url=self.opencode.base_url,
        )

        output: List[str] = []
        errors: List[str] = []
        done = asyncio.Event()

        def handle(event: ExecutionEvent) -> None:
            if on_event is not None:
                try:
                    on_event(event)
                except Exception as e:
                    logger.warning(f"Event callback failed for task {request.task_id}: {e}")
            if event.kind == "output":
                output.append(_event_text(event.data))
            elif event.kind == "error":
                errors.append(_event_text(event.data))
            elif event.kind == "complete":
                done.set()
            elif event.kind == "abort":
                if not errors:
                    errors.append("Task aborted")
                done.set()

        stream = None
        consumer: Optional[asyncio.Task] = None
        timed_out = False
        try:
            # Subscribe before prompting so no event is missed
            stream = await self.opencode.open_event_stream()

            async def consume() -> None:
                try:
                    async for raw in self.opencode.iter_events(stream):
                        properties = raw.get("properties") or {}
                        if event_session_id(properties) != session_id:
                            continue
                        kind, mapped_from = normalize_event_kind(raw.get("type"), properties)
                        if mapped_from:
                            logger.debug(f"Mapped {mapped_from} -> {kind} for session {session_id}")
                        handle(parse_execution_event(kind, properties, session_id))
                    errors.append("Event stream closed before completion")
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Event stream error for session {session_id}: {e}")
                    errors.append(str(e))
                finally:
                    done.set()

            consumer = asyncio.create_task(consume())
            await self.opencode.send_prompt(session_id, self._build_prompt(request))

            try:
                await asyncio.wait_for(done.wait(), timeout=timeout_ms / 1000)
            except asyncio.TimeoutError:
                timed_out = True
                logger.warning(f"Task {request.task_id} timed out after {timeout_ms}ms")
                try:
                    await self.opencode.abort_session(session_id)
                except Exception as e:
                    logger.error(f"Failed to abort session {session_id}: {e}")
        finally:
            if consumer is not None:
                consumer.cancel()
                await asyncio.gather(consumer, return_exceptions=True)
            if stream is not None:
                stream.release()
            self._active.pop(request.task_id, None)

        completed_at = now_ms()
        if timed_out:
            status, error = ExecutionStatus.TIMEOUT, TIMEOUT_ERROR
        elif errors:
            status, error = ExecutionStatus.ERROR, errors[-1]
        else:
            status, error = ExecutionStatus.SUCCESS, None
        return ExecutionResult(
            task_id=request.task_id,
            status=status,
            output="".join(output) or "Task completed",
            error=error,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=completed_at - started_at,
        )

    @staticmethod
    def _build_prompt(request: ExecutionRequest) -> str:
        return (
            f"{request.prompt}\n\n"
            "When you finish, summarize what you did, whether it succeeded, "
            "any files created and any issues encountered.\n\n"
            f"Task ID: {request.task_id}\n"
            f"Calling Agent ID: {request.agent_id}"
        )

    # ── Docker mode ──────────────────────────────────────────────────

    def _docker_args(self, request: ExecutionRequest, container_name: str) -> List[str]:
        workspace = f"{self.config.workspace_dir}/{request.task_id}"
        args = [
            "run", "--rm",
            "--name", container_name,
            "--label", f"task_id={request.task_id}",
            "--label", f"agent_id={request.agent_id}",
            "-v", f"{workspace}:/workspace",
            "-w", "/workspace",
        ]
        if self.config.cpu_limit:
            args += ["--cpus", self.config.cpu_limit]
        if self.config.memory_limit:
            args += ["--memory", self.config.memory_limit]
        args += [self.config.image, "opencode", "run", request.prompt]
        return args

    async def _execute_with_docker(self, request: ExecutionRequest) -> ExecutionResult:
        started_at = now_ms()
        timeout_ms = request.timeout_ms or self.config.timeout_ms
        container_name = f"opencode-{request.task_id}-{started_at}"
        self._active[request.task_id] = ActiveExecution(
            task_id=request.task_id, container_id=container_name, started_at=started_at
        )
        try:
            status, exit_code, output, error = await self._run_container(
                request, container_name, timeout_ms
            )
        finally:
            self._active.pop(request.task_id, None)

        completed_at = now_ms()
        return ExecutionResult(
            task_id=request.task_id,
            status=status,
            output=output,
            error=error,
            exit_code=exit_code,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=completed_at - started_at,
        )

    async def _run_container(self, request: ExecutionRequest, container_name: str, timeout_ms: int):
        try:
            proc = await asyncio.create_subprocess_exec(
                "docker",
                *self._docker_args(request, container_name),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return ExecutionStatus.ERROR, None, "", f"Failed to start container: {e}"

        stdout, stderr = _TailBuffer(), _TailBuffer()

        async def pump(reader: asyncio.StreamReader, sink: _TailBuffer) -> None:
            while True:
                chunk = await reader.read(4096)
                if not chunk:
                    break
                sink.write(chunk.decode("utf-8", errors="replace"))

        pumps = asyncio.gather(pump(proc.stdout, stdout), pump(proc.stderr, stderr))
        timed_out = False
        try:
            await asyncio.wait_for(proc.wait(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(f"Container {container_name} timed out, sending SIGTERM")
            proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), timeout=self.config.grace_period_ms / 1000)
            except asyncio.TimeoutError:
                logger.warning(f"Container {container_name} ignored SIGTERM, sending SIGKILL")
                proc.kill()
                await proc.wait()
        await pumps

        code = proc.returncode
        if timed_out:
            return ExecutionStatus.TIMEOUT, code, stdout.text or stderr.text, TIMEOUT_ERROR
        if code == 0:
            return ExecutionStatus.SUCCESS, code, stdout.text or "Task completed successfully", None
        return (
            ExecutionStatus.ERROR,
            code,
            stdout.text or stderr.text,
            stderr.text or f"Process exited with code {code}",
        )

    async def _docker(self, *args: str) -> bool:
        try:
            proc = await asyncio.create_subprocess_exec(
                "docker",
                *args,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"docker {args[0]} failed to start: {e}")
            return False
        return await proc.wait() == 0

    # ── Control ──────────────────────────────────────────────────────

    async def cancel_task(self, task_id: str) -> bool:
        active = self._active.get(task_id)
        if active is None:
            return False
        if active.session_id and self.opencode is not None:
            try:
                await self.opencode.abort_session(active.session_id)
                return True
            except Exception as e:
                logger.error(f"Failed to abort session {active.session_id}: {e}")
                return False
        return await self._docker("kill", active.container_id)

    async def pause_task(self, task_id: str) -> bool:
        active = self._active.get(task_id)
        if active is None:
            return False
        if active.session_id:
            logger.warning("Pause is not supported for OpenCode server sessions")
            return False
        return await self._docker("pause", active.container_id)

    async def resume_task(self, task_id: str) -> bool:
        active = self._active.get(task_id)
        if active is None:
            return False
        if active.session_id:
            logger.warning("Resume is not supported for OpenCode server sessions")
            return False
        return await self._docker("unpause", active.container_id)

    # ── Queries ──────────────────────────────────────────────────────

    def is_task_active(self, task_id: str) -> bool:
        return task_id in self._active

    def get_active_tasks(self) -> List[str]:
        return list(self._active)

    def get_active_execution(self, task_id: str) -> Optional[ActiveExecution]:
        return self._active.get(task_id)

    def _require_session(self, task_id: str) -> ActiveExecution:
        active = self._active.get(task_id)
        if active is None or not active.session_id or self.opencode is None:
            raise ExecutionBackendError(
                "Task not found or not using OpenCode server",
                details={"task_id": task_id},
            )
        return active

    async def get_task_files(self, task_id: str) -> List[str]:
        self._require_session(task_id)
        return await self.opencode.list_files()

    async def read_task_file(self, task_id: str, path: str) -> str:
        self._require_session(task_id)
        return await self.opencode.read_file(path)

    async def cleanup(self) -> None:
        self._active.clear()
        if self.opencode is not None:
            await self.opencode.close()
