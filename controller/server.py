"""
LPD8 → OBS controller — entrypoint.

This is the main entrypoint for the controller. It:
    1. Configures logging (stderr only)
    2. Loads and compiles the mapping file (fails fast on bad mappings)
    3. Connects to OBS and snapshots scenes, inputs and the live scene
    4. Opens the LPD8 and runs the event loop until ENTER or a source closes

Running:
    python -m controller.server -c lpd8-mappings.toml

    # with authentication, OBS on another machine
    OBS_PASSWORD=secret python -m controller.server -H 192.168.1.20

Environment variables read (also from a local .env):
    OBS_HOST      — default: localhost
    OBS_PORT      — default: 4455
    OBS_PASSWORD  — default: none
    LPD8_DEVICE   — MIDI port name substring, default: LPD8
    LOG_LEVEL     — default: INFO
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import threading
from collections.abc import Sequence

from dotenv import load_dotenv

from controller.config import BridgeSettings, ConfigError, load_mappings
from controller.dispatcher import ActionDispatcher, Catalog
from controller.logs import configure_logging
from controller.loop import DeviceItem, EventLoop, NotificationItem, notification_sink
from controller.scene_cache import SceneStateCache
from core.mappings.table import MappingConfigError, MappingTable
from infrastructure.metrics import start_metrics_server
from ingestion.lpd8_device import DeviceNotFoundError, Lpd8Device
from ingestion.obs_bridge import ObsBridge, ObsRequestError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SOURCE_CLOSED = 1
EXIT_CONFIG_ERROR = 2
EXIT_STARTUP_ERROR = 3


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="lpd8-obs",
        description="Control OBS Studio scenes, volumes and sources from an Akai LPD8.",
    )
    parser.add_argument(
        "-c",
        "--config-path",
        default="lpd8-mappings.toml",
        metavar="PATH",
        help="Mapping file (.toml or .yaml). Default: lpd8-mappings.toml",
    )
    parser.add_argument(
        "-H",
        "--host",
        default=os.getenv("OBS_HOST", "localhost"),
        help="OBS websocket host (env OBS_HOST).",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=os.getenv("OBS_PORT", "4455"),
        help="OBS websocket port (env OBS_PORT).",
    )
    parser.add_argument(
        "-P",
        "--password",
        default=os.getenv("OBS_PASSWORD"),
        help="OBS websocket password (env OBS_PASSWORD).",
    )
    parser.add_argument(
        "--device",
        default=os.getenv("LPD8_DEVICE", "LPD8"),
        help="Substring of the MIDI input port name (env LPD8_DEVICE).",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="DEBUG, INFO, WARNING or ERROR (env LOG_LEVEL).",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        metavar="PORT",
        help="Expose Prometheus metrics on this port.",
    )
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> BridgeSettings:
    return BridgeSettings(
        host=args.host,
        port=args.port,
        password=args.password or None,
        mappings_path=args.config_path,
        device_name=args.device,
    )


def load_table(path: str) -> MappingTable:
    """Load and compile the mapping file.

    Raises:
        ConfigError: If the file is unreadable or invalid.
        MappingConfigError: If it defines a trigger twice.
    """
    table = load_mappings(path).to_table()
    logger.info("Loaded %d mappings from %s", table.entry_count, path)
    return table


def _watch_stdin(loop: asyncio.AbstractEventLoop, quit_requested: asyncio.Event) -> None:
    """Set ``quit_requested`` when a line (ENTER) arrives on stdin.

    Runs in a daemon thread so a pending read never blocks interpreter exit.
    """

    def _read() -> None:
        sys.stdin.readline()
        try:
            loop.call_soon_threadsafe(quit_requested.set)
        except RuntimeError:
            pass  # loop already closed

    threading.Thread(target=_read, name="stdin-quit", daemon=True).start()


async def run(settings: BridgeSettings, table: MappingTable) -> int:
    """Connect everything and process events until ENTER or a source closes.

    Returns:
        Process exit code.
    """
    loop = asyncio.get_running_loop()
    device_events: asyncio.Queue[DeviceItem] = asyncio.Queue(maxsize=settings.queue_size)
    notifications: asyncio.Queue[NotificationItem] = asyncio.Queue()

    logger.info("Connecting to OBS at %s", settings.ws_url)
    bridge = await asyncio.to_thread(
        ObsBridge.connect,
        settings.host,
        settings.port,
        settings.password,
        request_timeout=settings.request_timeout,
    )
    device: Lpd8Device | None = None
    try:
        bridge.subscribe(notification_sink(loop, notifications))
        catalog = await Catalog.load(bridge)
        cache = await SceneStateCache.create(bridge)
        device = Lpd8Device.open(
            loop,
            device_events,
            device_name=settings.device_name,
            put_warn_after=settings.put_warn_after,
        )

        event_loop = EventLoop(
            table, ActionDispatcher(bridge, catalog), cache, device_events, notifications
        )
        processing = asyncio.create_task(event_loop.run(), name="lpd8-event-loop")
        quit_event = asyncio.Event()
        _watch_stdin(loop, quit_event)
        quit_requested = asyncio.create_task(quit_event.wait(), name="quit")

        print("OBS Controller is up and running, press [ENTER] to quit.", flush=True)
        done, _ = await asyncio.wait(
            {processing, quit_requested}, return_when=asyncio.FIRST_COMPLETED
        )

        if processing in done:
            quit_requested.cancel()
            closed = processing.result()
            logger.error("Controller stopped: %s", closed)
            return EXIT_SOURCE_CLOSED

        processing.cancel()
        logger.info("Bye bye")
        return EXIT_OK
    finally:
        if device is not None:
            device.close()
        bridge.close()


def main(argv: Sequence[str] | None = None) -> int:
    """Console entrypoint (``lpd8-obs``)."""
    load_dotenv()
    args = _parse_args(argv)
    try:
        configure_logging(args.log_level)
        settings = build_settings(args)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        table = load_table(settings.mappings_path)
    except (ConfigError, MappingConfigError) as exc:
        logger.error("Invalid mappings: %s", exc)
        return EXIT_CONFIG_ERROR

    if args.metrics_port is not None:
        start_metrics_server(args.metrics_port)

    try:
        return asyncio.run(run(settings, table))
    except (OSError, DeviceNotFoundError, ObsRequestError) as exc:
        logger.error("Startup failed: %s", exc)
        return EXIT_STARTUP_ERROR
    except KeyboardInterrupt:
        logger.info("Bye bye")
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
