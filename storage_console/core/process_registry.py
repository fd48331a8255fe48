"""Registry of session_id -> running asyncio subprocess, for hard cancel."""
import asyncio
import logging
import threading
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class ProcessRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._registry: Dict[str, Any] = {}

    def register(self, session_id: str, process) -> None:
        with self._lock:
            self._registry[session_id] = process
        logger.debug(f"Registered process for session {session_id}")

    def unregister(self, session_id: str) -> None:
        with self._lock:
            self._registry.pop(session_id, None)
        logger.debug(f"Unregistered session {session_id}")

    def get_process(self, session_id: str):
        with self._lock:
            return self._registry.get(session_id)

    def sessions(self) -> List[str]:
        with self._lock:
            return list(self._registry)

    async def terminate(self, session_id: str, wait_seconds: float = 3.0) -> bool:
        """Terminate the process for session_id. Returns True if a process was found."""
        process = self.get_process(session_id)
        if process is None:
            return False
        try:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=wait_seconds)
            except asyncio.TimeoutError:
                logger.warning(f"Session {session_id} ignored SIGTERM, killing")
                process.kill()
                await process.wait()
        except ProcessLookupError:
            pass
        finally:
            self.unregister(session_id)
        logger.info(f"Terminated session {session_id}")
        return True

    async def terminate_all(self, wait_seconds: float = 3.0) -> None:
        for session_id in self.sessions():
            await self.terminate(session_id, wait_seconds)
