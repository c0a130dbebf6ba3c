"""
ingestion/lpd8_device.py — Akai LPD8 MIDI input via mido.

The MIDI backend (python-rtmidi) calls our callback on its own thread for
every incoming message.  The callback decodes the bytes with
:func:`core.lpd8.inputs.normalize` and hands the result to the asyncio loop
through a bounded queue:

    rtmidi thread ── normalize() ── run_coroutine_threadsafe(queue.put) ──> EventLoop

A full queue blocks the callback until the loop drains it; no message is
dropped.  A put still waiting after ``put_warn_after`` seconds is logged
once.  Waiting stops only when the device is closed or the event loop is.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import CancelledError, Future
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any

import mido

from controller.loop import DeviceItem, SourceClosed
from core.lpd8.inputs import normalize

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_NAME = "LPD8"
_DEFAULT_PUT_WARN_AFTER = 1.0  # seconds


class DeviceNotFoundError(LookupError):
    """No MIDI input port matches the requested device name."""


def find_port(device_name: str = DEFAULT_DEVICE_NAME) -> str:
    """Return the first MIDI input port whose name contains ``device_name``.

    Raises:
        DeviceNotFoundError: If no port matches.
    """
    names = mido.get_input_names()
    for name in names:
        if device_name in name:
            return name
    available = ", ".join(names) or "none"
    raise DeviceNotFoundError(f"No {device_name} found (MIDI inputs: {available})")


class Lpd8Device:
    """An open LPD8 input port feeding an asyncio queue.

    Usage::

        device = Lpd8Device.open(loop, queue)
        ...
        device.close()
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        queue: asyncio.Queue[DeviceItem],
        *,
        put_warn_after: float = _DEFAULT_PUT_WARN_AFTER,
    ) -> None:
        self._loop = loop
        self._queue = queue
        self._put_warn_after = put_warn_after
        self._port: Any = None
        self._lock = threading.Lock()
        self._closing = False
        self._pending: set[Future[None]] = set()

    @classmethod
    def open(
        cls,
        loop: asyncio.AbstractEventLoop,
        queue: asyncio.Queue[DeviceItem],
        *,
        device_name: str = DEFAULT_DEVICE_NAME,
        put_warn_after: float = _DEFAULT_PUT_WARN_AFTER,
    ) -> Lpd8Device:
        """Find the LPD8 port and start listening.

        Raises:
            DeviceNotFoundError: If no matching port exists.
            OSError: If the backend cannot open the port.
        """
        port_name = find_port(device_name)
        device = cls(loop, queue, put_warn_after=put_warn_after)
        device._port = mido.open_input(port_name, callback=device.on_message)
        logger.info("Listening to %s", port_name)
        return device

    @property
    def port_name(self) -> str | None:
        return None if self._port is None else self._port.name

    def on_message(self, message: mido.Message) -> None:
        """Backend callback: decode and enqueue.  Runs on the MIDI thread."""
        event = normalize(message.bytes())
        if event is None:
            return
        self._put(event)

    def _put(self, item: DeviceItem) -> None:
        with self._lock:
            if self._closing:
                return
            try:
                future = asyncio.run_coroutine_threadsafe(self._queue.put(item), self._loop)
            except RuntimeError as exc:
                # event loop already closed during shutdown
                logger.error("Cannot send message to channel: %s", exc)
                return
            self._pending.add(future)

        try:
            self._wait(future, item)
        finally:
            with self._lock:
                self._pending.discard(future)

    def _wait(self, future: Future[None], item: DeviceItem) -> None:
        warned = False
        while True:
            try:
                future.result(timeout=self._put_warn_after)
                return
            except CancelledError:
                logger.info("Device closing, %s not delivered", item)
                return
            except FuturesTimeoutError:
                if self._loop.is_closed():
                    future.cancel()
                    logger.error("Cannot send message to channel: event loop closed")
                    return
                if not warned:
                    logger.warning("Event queue full, waiting to deliver %s", item)
                    warned = True

    def close(self) -> None:
        """Close the port and tell the event loop the device is gone.

        A callback blocked on a full queue is released first.
        """
        with self._lock:
            if self._port is None:
                return
            port, self._port = self._port, None
            self._closing = True
            pending = list(self._pending)
        for future in pending:
            future.cancel()
        port.close()
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._enqueue_closed)

    def _enqueue_closed(self) -> None:
        try:
            self._queue.put_nowait(SourceClosed("device", "port closed"))
        except asyncio.QueueFull:
            logger.warning("Event queue full, device close marker not delivered")
