"""Ad hoc operator shell commands, streamed with the deployment event contract.

Unlike the deployment runner there is no success inference and no error
diagnosis: the exit code is reported as-is.
"""
import asyncio
import logging
import os
import re
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from fastapi import HTTPException

from storage_console.config import settings
from storage_console.core.event_stream import EventStream, drive
from storage_console.core.process_registry import ProcessRegistry
from storage_console.modules.deployments.schemas import DeploymentEvent

logger = logging.getLogger(__name__)

BLOCKED_PATTERNS = (
    re.compile(r"rm\s+-rf\s+/"),
    re.compile(r"format\s+", re.IGNORECASE),
    re.compile(r"del\s+/s\s+/q\s+c:", re.IGNORECASE),
    re.compile(r"mkfs"),
    re.compile(r"dd\s+if="),
)


def is_blocked(command: str) -> bool:
    return any(p.search(command) for p in BLOCKED_PATTERNS)


class CommandRunner:
    def __init__(
        self,
        registry: ProcessRegistry,
        shell: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        spawn: Optional[Callable[..., Awaitable[Any]]] = None,
    ):
        self.registry = registry
        self.shell = shell or settings.shell
        self.timeout_seconds = settings.command_timeout_seconds if timeout_seconds is None else timeout_seconds
        self.spawn = spawn or asyncio.create_subprocess_exec

    def run(self, command: str, cwd: Optional[str] = None) -> AsyncIterator[DeploymentEvent]:
        if is_blocked(command):
            logger.warning(f"Blocked command: {command}")
            raise HTTPException(status_code=403, detail="Command blocked for safety")
        session_id = str(uuid.uuid4())
        return drive(lambda stream: self._execute(session_id, command, cwd, stream))

    async def _execute(self, session_id: str, command: str, cwd: Optional[str], stream: EventStream) -> None:
        stream.write(DeploymentEvent(type="session", session_id=session_id, level="info"))
        stream.write(DeploymentEvent(type="command", message=f"$ {command}", level="command"))

        try:
            process = await self.spawn(
                self.shell, "-c", command,
                cwd=cwd or os.getcwd(),
                env=os.environ.copy(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Could not start command in session {session_id}: {e}")
            stream.write(DeploymentEvent(type="error", message=str(e), level="error"))
            return

        self.registry.register(session_id, process)
        try:
            try:
                exit_code = await asyncio.wait_for(self._pump(process, stream), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning(f"Session {session_id} timed out after {self.timeout_seconds}s, killing")
                stream.write(DeploymentEvent(
                    type="stderr", message=f"Command timed out after {self.timeout_seconds:g}s", level="warn",
                ))
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                exit_code = await process.wait()
        finally:
            self.registry.unregister(session_id)

        stream.write(DeploymentEvent(
            type="exit",
            message=f"Process exited with code {exit_code}",
            level="success" if exit_code == 0 else "error",
            exit_code=exit_code,
        ))

    async def _pump(self, process, stream: EventStream) -> Optional[int]:
        async def read(reader, channel: str, level: str):
            if reader is None:
                return
            async for raw in reader:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if line.strip():
                    stream.write(DeploymentEvent(type=channel, message=line, level=level))

        await asyncio.gather(read(process.stdout, "stdout", "info"), read(process.stderr, "stderr", "warn"))
        return await process.wait()
