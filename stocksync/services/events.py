# stocksync/services/events.py
"""
In-process notification sink for job and inventory events.

The engine never waits on delivery: coroutine listeners are scheduled as
tasks and listener failures are logged and dropped.
"""
import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Set

from pydantic import BaseModel, Field

from stocksync.core.utils import utcnow

logger = logging.getLogger(__name__)

JOB_STARTED = "job.started"
JOB_COMPLETED = "job.completed"
JOB_FAILED = "job.failed"
JOB_CANCELLED = "job.cancelled"
ITEM_PROCESSED = "item.processed"
INVENTORY_ADJUSTED = "inventory.adjusted"


class SyncEvent(BaseModel):
    name: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


Listener = Callable[[SyncEvent], Any]


class EventBus:

    def __init__(self):
        self._listeners: List[Listener] = []
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, name: str, **payload) -> SyncEvent:
        event = SyncEvent(name=name, payload=payload)
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(self._task_done)
            except Exception as e:
                logger.error(f"Event listener failed for {name}: {e}")
        return event

    def _task_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Async event listener failed: {task.exception()}")

    async def drain(self):
        """Wait for scheduled async listeners. Used at shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
