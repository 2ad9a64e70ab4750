import asyncio
from typing import Any, Dict, List, Optional

from backend import RedisBackend
from errors import PersistenceFailure
from logging_config import get_logger

logger = get_logger(__name__)

STOP_TIMEOUT_SECONDS = 5.0


class SnapshotWriter:
    """Writes room snapshots to Redis in the background.

    ``schedule`` is called after every mutation and never blocks: it keeps
    only the newest snapshot and wakes the writer task, which hands the
    blocking Redis call to the default executor. A failed write is logged
    and dropped; the next mutation schedules a fresh snapshot.
    """

    def __init__(self, backend: RedisBackend):
        self.backend = backend
        self._pending: Optional[List[Dict[str, Any]]] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._stopping = False

    @property
    def pending(self) -> Optional[List[Dict[str, Any]]]:
        return self._pending

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, snapshot: List[Dict[str, Any]]) -> None:
        self._pending = snapshot
        if self._wakeup is not None:
            self._wakeup.set()

    async def load(self) -> List[Dict[str, Any]]:
        """Read the stored snapshot. Any failure means starting with no rooms."""
        loop = asyncio.get_running_loop()
        try:
            records = await loop.run_in_executor(None, self.backend.load_rooms)
        except PersistenceFailure as e:
            logger.error(f"Error loading rooms from Redis: {e}")
            return []
        except Exception as e:
            logger.error(f"Unexpected error loading rooms from Redis: {e}", exc_info=True)
            return []
        if records is None:
            logger.info("No rooms found in Redis, starting fresh")
            return []
        logger.info(f"Loaded {len(records)} room records from Redis")
        return records

    def start(self) -> None:
        if self.running:
            return
        self._stopping = False
        self._wakeup = asyncio.Event()
        if self._pending is not None:
            self._wakeup.set()
        self._task = asyncio.create_task(self._run())
        logger.debug("Snapshot writer started")

    async def _run(self) -> None:
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            await self.flush()
            if self._stopping and self._pending is None:
                return

    async def flush(self) -> bool:
        """Write the pending snapshot now, if any. Returns False when the write failed."""
        snapshot = self._pending
        if snapshot is None:
            return True
        self._pending = None
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.backend.save_rooms, snapshot)
        except PersistenceFailure as e:
            logger.error(f"Rooms snapshot not saved: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error saving rooms snapshot: {e}", exc_info=True)
            return False
        logger.debug(f"Rooms snapshot saved ({len(snapshot)} rooms)")
        return True

    async def stop(self, timeout: float = STOP_TIMEOUT_SECONDS) -> None:
        """Let the writer finish the write in progress and the pending snapshot, then end it."""
        if self.running:
            self._stopping = True
            self._wakeup.set()
            try:
                await asyncio.wait_for(self._task, timeout)
            except asyncio.TimeoutError:
                logger.warning("Snapshot writer did not finish in time, last snapshot may be lost")
        else:
            await self.flush()
        self._task = None
        self._wakeup = None
        logger.debug("Snapshot writer stopped")
