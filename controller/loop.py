"""Controller event loop — reconciles LPD8 input with OBS notifications.

Two producers feed the loop through queues:

    LPD8 callback thread ──(bounded queue)──┐
                                             ├──> EventLoop.run()  (one event at a time)
    OBS reader thread ────(unbounded queue)─┘

The loop is the only owner of the scene cache and the dispatcher.  It awaits
one event, handles it completely (including OBS round-trips), then awaits
the next, so a scene refresh never interleaves with an action that reads the
scene snapshot.

Failure containment
───────────────────
A failed dispatch or scene refresh is logged and counted; the loop moves on.
The loop only stops when a producer enqueues :class:`SourceClosed`, and it
returns that marker so the owner can decide how to exit.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from controller.dispatcher import ActionDispatcher
from controller.scene_cache import SceneStateCache
from core.lpd8.inputs import Lpd8Message, ProgramChange
from core.mappings.table import MappingTable
from core.obs.types import CurrentProgramSceneChanged, RemoteEvent
from infrastructure.metrics import (
    LatencyTimer,
    record_dispatch,
    record_event,
    record_scene_refresh,
)

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


@dataclass(frozen=True)
class SourceClosed:
    """Enqueued by a producer that will never deliver again."""

    source: str  # "device" or "obs"
    reason: str = ""

    def __str__(self) -> str:
        suffix = f": {self.reason}" if self.reason else ""
        return f"{self.source} closed{suffix}"


DeviceItem = Lpd8Message | SourceClosed
NotificationItem = RemoteEvent | SourceClosed


def notification_sink(
    loop: asyncio.AbstractEventLoop,
    queue: asyncio.Queue[NotificationItem],
) -> Callable[[RemoteEvent | None], None]:
    """Build a thread-safe callback that forwards OBS events into ``queue``.

    ``None`` means the connection dropped and becomes ``SourceClosed("obs")``.
    """

    def _sink(event: RemoteEvent | None) -> None:
        item: NotificationItem = SourceClosed("obs", "connection lost") if event is None else event
        loop.call_soon_threadsafe(queue.put_nowait, item)

    return _sink


class EventLoop:
    """Routes LPD8 messages to the dispatcher and scene changes to the cache."""

    def __init__(
        self,
        table: MappingTable,
        dispatcher: ActionDispatcher,
        cache: SceneStateCache,
        device_events: asyncio.Queue[DeviceItem],
        notifications: asyncio.Queue[NotificationItem],
    ) -> None:
        self._table = table
        self._dispatcher = dispatcher
        self._cache = cache
        self._device_events = device_events
        self._notifications = notifications

    async def run(self) -> SourceClosed:
        """Process events until a source closes.

        Returns:
            The :class:`SourceClosed` marker that ended the loop.
        """
        device_get: asyncio.Task[DeviceItem] | None = None
        notification_get: asyncio.Task[NotificationItem] | None = None
        try:
            while True:
                if device_get is None:
                    device_get = asyncio.ensure_future(self._device_events.get())
                if notification_get is None:
                    notification_get = asyncio.ensure_future(self._notifications.get())

                done, _ = await asyncio.wait(
                    {device_get, notification_get},
                    return_when=asyncio.FIRST_COMPLETED,
                )

                # both getters can finish in one wakeup; handle what was dequeued, then stop
                closed: SourceClosed | None = None

                if device_get in done:
                    item = device_get.result()
                    device_get = None
                    if isinstance(item, SourceClosed):
                        closed = item
                    else:
                        await self.handle_device_message(item)

                if notification_get in done:
                    event = notification_get.result()
                    notification_get = None
                    if isinstance(event, SourceClosed):
                        closed = closed or event
                    else:
                        await self.handle_notification(event)

                if closed is not None:
                    logger.warning("Stopping: %s", closed)
                    return closed
        finally:
            for task in (device_get, notification_get):
                if task is not None:
                    task.cancel()

    async def handle_device_message(self, message: Lpd8Message) -> None:
        """Resolve and dispatch one LPD8 message.  Never raises on remote failure."""
        kind = "program_change" if isinstance(message, ProgramChange) else "control_change"
        resolution = self._table.resolve(message)
        if resolution is None:
            logger.debug("No mapping for %s", message)
            record_event(kind=kind, outcome="unmapped")
            return

        action = resolution.action
        snapshot = self._cache.current()
        try:
            with LatencyTimer() as timer:
                sent = await self._dispatcher.dispatch(action, resolution.value, snapshot)
        except Exception as exc:
            logger.error("Unable to execute action %s: %s", action, exc)
            record_event(kind=kind, outcome="error")
            return

        record_dispatch(action=type(action).__name__, latency_seconds=timer.elapsed)
        record_event(kind=kind, outcome="dispatched" if sent else "unresolved")

    async def handle_notification(self, event: RemoteEvent) -> None:
        """Refresh the scene cache on program scene changes; ignore the rest."""
        if not isinstance(event, CurrentProgramSceneChanged):
            record_event(kind="obs_event", outcome="ignored")
            return

        try:
            await self._cache.replace(event.scene)
        except Exception as exc:
            logger.error("Error while gathering items for scene %s: %s", event.scene.name, exc)
            record_scene_refresh(ok=False)
            record_event(kind="obs_event", outcome="error")
            return

        record_scene_refresh(ok=True)
        record_event(kind="obs_event", outcome="dispatched")
