"""ingestion/obs_bridge.py — obs-websocket v5 client for the LPD8 controller.

This module is the I/O boundary between the controller and OBS Studio.
All network calls live here; core/ stays pure.

Architecture
────────────
::

    OBS Studio
        └── obs-websocket (port 4455)
                │   WebSocket (ws://localhost:4455), JSON frames
                ▼
    ingestion/obs_bridge.py (this module)
        │
        ├── reader thread  → RequestResponse (op 7) → pending Future
        │                  → Event (op 5)           → subscriber callbacks
        └── request()      → Request (op 6)         → awaits its Future

Connection model
────────────────
Unlike a request-per-connection bridge, OBS pushes events, so ``ObsBridge``
keeps one long-lived connection.  A daemon thread owns ``recv()``; requests
are sent from the asyncio loop and matched to responses by ``requestId``.
When the socket closes, pending requests fail with ``ConnectionError`` and
subscribers receive ``None``.

Handshake
─────────
``Hello`` (op 0) → ``Identify`` (op 1) → ``Identified`` (op 2).  When OBS asks
for authentication the response is::

    base64(sha256(base64(sha256(password + salt)) + challenge))

Error handling
──────────────
``ConnectionError`` for transport problems, :class:`ObsAuthError` for a
missing or rejected password, :class:`ObsRequestError` when OBS answers a
request with ``requestStatus.result = false``.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import json
import logging
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import Future, InvalidStateError
from typing import Any

import websocket

from core.obs.types import (
    InputRef,
    RemoteEvent,
    SceneItem,
    SceneRef,
    parse_event,
    parse_input,
    parse_scene,
    parse_scene_item,
)
from infrastructure.retry import with_retry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_DEFAULT_HOST: str = "localhost"
_DEFAULT_PORT: int = 4455
_CONNECT_TIMEOUT: float = 5.0  # seconds
_REQUEST_TIMEOUT: float = 10.0  # seconds
_READER_JOIN_TIMEOUT: float = 2.0  # seconds

_RPC_VERSION = 1
_EVENT_SUBSCRIPTION_ALL = 0x7FF  # every non high-volume category

_OP_HELLO = 0
_OP_IDENTIFY = 1
_OP_IDENTIFIED = 2
_OP_EVENT = 5
_OP_REQUEST = 6
_OP_REQUEST_RESPONSE = 7

EventCallback = Callable[[RemoteEvent | None], None]


class ObsRequestError(RuntimeError):
    """OBS rejected a request (``requestStatus.result`` is false)."""

    def __init__(self, request_type: str, code: int, comment: str = "") -> None:
        detail = f": {comment}" if comment else ""
        super().__init__(f"{request_type} failed with code {code}{detail}")
        self.request_type = request_type
        self.code = code
        self.comment = comment


class ObsAuthError(ConnectionError):
    """OBS requires a password and none, or a wrong one, was given."""


# ---------------------------------------------------------------------------
# Wire helpers
# ---------------------------------------------------------------------------


def auth_response(password: str, salt: str, challenge: str) -> str:
    """Compute the ``Identify.authentication`` string for obs-websocket v5."""
    secret = base64.b64encode(hashlib.sha256((password + salt).encode()).digest())
    return base64.b64encode(hashlib.sha256(secret + challenge.encode()).digest()).decode()


def _recv_frame(ws: Any) -> dict[str, Any]:
    """Receive and parse the next JSON frame.

    Raises:
        ConnectionError: On timeout, socket error, close, or malformed JSON.
    """
    try:
        raw = ws.recv()
    except websocket.WebSocketTimeoutException as exc:
        raise ConnectionError("OBS did not respond in time") from exc
    except (websocket.WebSocketException, OSError) as exc:
        raise ConnectionError(f"WebSocket read error: {exc}") from exc
    if not raw:
        raise ConnectionError("OBS closed the connection")
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConnectionError(f"Malformed frame from OBS: {exc}") from exc
    if not isinstance(frame, dict):
        raise ConnectionError(f"Malformed frame from OBS: {raw!r}")
    return frame


@with_retry(max_attempts=3, base_seconds=1.0, exceptions=(OSError, websocket.WebSocketException))
def _open_socket(url: str, timeout: float) -> Any:
    """Open the raw WebSocket.  Retried while OBS is not accepting connections yet."""
    ws = websocket.WebSocket()
    ws.settimeout(timeout)
    ws.connect(url)
    return ws


def _identify(ws: Any, password: str | None) -> int:
    """Run the Hello → Identify → Identified handshake.

    Returns:
        The negotiated RPC version.

    Raises:
        ObsAuthError: If a password is required but missing, or was rejected.
        ConnectionError: On any other handshake failure.
    """
    hello = _recv_frame(ws)
    if hello.get("op") != _OP_HELLO:
        raise ConnectionError(f"Expected Hello from OBS, got op {hello.get('op')!r}")
    hello_data = hello.get("d") or {}
    logger.info("obs-websocket %s", hello_data.get("obsWebSocketVersion", "unknown version"))

    identify: dict[str, Any] = {
        "rpcVersion": _RPC_VERSION,
        "eventSubscriptions": _EVENT_SUBSCRIPTION_ALL,
    }
    auth = hello_data.get("authentication")
    if auth:
        if not password:
            raise ObsAuthError("OBS requires a password (use --password or OBS_PASSWORD)")
        identify["authentication"] = auth_response(password, auth["salt"], auth["challenge"])

    ws.send(json.dumps({"op": _OP_IDENTIFY, "d": identify}))
    try:
        reply = _recv_frame(ws)
    except ConnectionError as exc:
        if auth:
            raise ObsAuthError(f"OBS refused identification, check the password ({exc})") from exc
        raise
    if reply.get("op") != _OP_IDENTIFIED:
        raise ConnectionError(f"Expected Identified from OBS, got op {reply.get('op')!r}")
    return int((reply.get("d") or {}).get("negotiatedRpcVersion", _RPC_VERSION))


def _scene_selector(scene: SceneRef) -> dict[str, str]:
    return {"sceneUuid": scene.uuid} if scene.uuid else {"sceneName": scene.name}


def _input_selector(input_: InputRef) -> dict[str, str]:
    return {"inputUuid": input_.uuid} if input_.uuid else {"inputName": input_.name}


# ---------------------------------------------------------------------------
# ObsBridge
# ---------------------------------------------------------------------------


class ObsBridge:
    """Long-lived obs-websocket connection implementing ``RemoteSession``.

    Usage::

        bridge = ObsBridge.connect("localhost", 4455, password="secret")
        bridge.subscribe(lambda event: print(event))
        scenes = await bridge.list_scenes()
        await bridge.set_current_program_scene(scenes[0])
        bridge.close()
    """

    def __init__(self, ws: Any, *, request_timeout: float = _REQUEST_TIMEOUT) -> None:
        self._ws = ws
        self._request_timeout = request_timeout
        self._pending: dict[str, Future[dict[str, Any]]] = {}
        self._subscribers: list[EventCallback] = []
        self._lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._closing = False
        self._closed = False
        self._reader = threading.Thread(target=self._read_loop, name="obs-reader", daemon=True)

    @classmethod
    def connect(
        cls,
        host: str = _DEFAULT_HOST,
        port: int = _DEFAULT_PORT,
        password: str | None = None,
        *,
        connect_timeout: float = _CONNECT_TIMEOUT,
        request_timeout: float = _REQUEST_TIMEOUT,
    ) -> ObsBridge:
        """Connect, identify and start the reader thread.  Blocking.

        Raises:
            ObsAuthError: On a missing or wrong password.
            ConnectionError: If OBS is unreachable after retries.
        """
        url = f"ws://{host}:{port}"
        try:
            ws = _open_socket(url, connect_timeout)
        except (OSError, websocket.WebSocketException) as exc:
            raise ConnectionError(
                f"Cannot connect to OBS at {url}. "
                "Make sure OBS is running and the WebSocket server is enabled. "
                f"({exc})"
            ) from exc

        try:
            rpc_version = _identify(ws, password)
        except BaseException:
            ws.close()
            raise
        logger.info("Connected to OBS at %s (rpc v%d)", url, rpc_version)

        ws.settimeout(None)
        bridge = cls(ws, request_timeout=request_timeout)
        bridge.start()
        return bridge

    def start(self) -> None:
        self._reader.start()

    def subscribe(self, callback: EventCallback) -> None:
        """Register ``callback`` for every event; ``None`` signals disconnection.

        Callbacks run on the reader thread and must not block.
        """
        self._subscribers.append(callback)

    def close(self) -> None:
        """Close the connection and wait briefly for the reader to finish."""
        with self._lock:
            self._closing = True
        try:
            self._ws.close()
        except (websocket.WebSocketException, OSError) as exc:
            logger.debug("Error while closing OBS socket: %s", exc)
        if self._reader.is_alive() and self._reader is not threading.current_thread():
            self._reader.join(_READER_JOIN_TIMEOUT)

    # ── Reader thread ───────────────────────────────────────────────────────

    def _read_loop(self) -> None:
        reason = "connection closed"
        try:
            while True:
                self._handle_frame(_recv_frame(self._ws))
        except ConnectionError as exc:
            reason = str(exc)
        finally:
            self._shutdown(reason)

    def _handle_frame(self, frame: dict[str, Any]) -> None:
        op = frame.get("op")
        data = frame.get("d") or {}
        if op == _OP_REQUEST_RESPONSE:
            self._resolve(data)
        elif op == _OP_EVENT:
            event = parse_event(str(data.get("eventType", "")), data.get("eventData"))
            self._notify(event)
        else:
            logger.debug("Ignoring OBS frame with op %r", op)

    def _resolve(self, data: dict[str, Any]) -> None:
        with self._lock:
            future = self._pending.pop(str(data.get("requestId", "")), None)
        if future is None:
            logger.debug("Response for unknown request %r", data.get("requestId"))
            return

        status = data.get("requestStatus") or {}
        try:
            if status.get("result"):
                future.set_result(data.get("responseData") or {})
            else:
                future.set_exception(
                    ObsRequestError(
                        str(data.get("requestType", "")),
                        int(status.get("code", 0)),
                        str(status.get("comment", "")),
                    )
                )
        except InvalidStateError:
            # caller timed out or was cancelled
            pass

    def _notify(self, event: RemoteEvent | None) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("OBS event subscriber failed on %s", event)

    def _shutdown(self, reason: str) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._pending.values())
            self._pending.clear()
            closing = self._closing

        if closing:
            logger.info("OBS connection closed")
        else:
            logger.warning("OBS connection lost: %s", reason)
        for future in pending:
            if not future.done():
                future.set_exception(ConnectionError(f"OBS connection lost: {reason}"))
        self._notify(None)

    # ── Requests ────────────────────────────────────────────────────────────

    def _send(self, payload: dict[str, Any]) -> None:
        try:
            with self._send_lock:
                self._ws.send(json.dumps(payload))
        except (websocket.WebSocketException, OSError) as exc:
            raise ConnectionError(f"WebSocket send error: {exc}") from exc

    async def request(
        self, request_type: str, data: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Send one obs-websocket request and await its response data.

        Raises:
            ObsRequestError: If OBS rejects the request.
            ConnectionError: If the connection is closed or drops meanwhile.
            TimeoutError: If OBS does not answer within ``request_timeout``.
        """
        request_id = uuid.uuid4().hex
        future: Future[dict[str, Any]] = Future()
        with self._lock:
            if self._closed or self._closing:
                raise ConnectionError("OBS connection is closed")
            self._pending[request_id] = future

        body: dict[str, Any] = {"requestType": request_type, "requestId": request_id}
        if data:
            body["requestData"] = data
        try:
            self._send({"op": _OP_REQUEST, "d": body})
            return await asyncio.wait_for(asyncio.wrap_future(future), self._request_timeout)
        except TimeoutError as exc:
            raise TimeoutError(
                f"OBS did not answer {request_type} within {self._request_timeout}s"
            ) from exc
        finally:
            with self._lock:
                self._pending.pop(request_id, None)

    # ── RemoteSession ───────────────────────────────────────────────────────

    async def list_scenes(self) -> list[SceneRef]:
        data = await self.request("GetSceneList")
        return [parse_scene(s) for s in data.get("scenes", [])]

    async def list_inputs(self) -> list[InputRef]:
        data = await self.request("GetInputList")
        return [parse_input(i) for i in data.get("inputs", [])]

    async def list_scene_items(self, scene: SceneRef) -> list[SceneItem]:
        data = await self.request("GetSceneItemList", _scene_selector(scene))
        return [parse_scene_item(i) for i in data.get("sceneItems", [])]

    async def current_program_scene(self) -> SceneRef:
        data = await self.request("GetCurrentProgramScene")
        # obs-websocket < 5.5 only sends the currentProgramScene* fields
        name = data.get("sceneName") or data.get("currentProgramSceneName")
        if not name:
            raise ObsRequestError("GetCurrentProgramScene", 0, "response carries no scene name")
        uuid_ = data.get("sceneUuid") or data.get("currentProgramSceneUuid") or ""
        return SceneRef(name=str(name), uuid=str(uuid_))

    async def set_current_program_scene(self, scene: SceneRef) -> None:
        await self.request("SetCurrentProgramScene", _scene_selector(scene))

    async def set_input_volume(self, input_: InputRef, ratio: float) -> None:
        await self.request("SetInputVolume", {**_input_selector(input_), "inputVolumeMul": ratio})

    async def toggle_input_mute(self, input_: InputRef) -> bool:
        data = await self.request("ToggleInputMute", _input_selector(input_))
        return bool(data.get("inputMuted", False))

    async def get_scene_item_enabled(self, scene: SceneRef, item_id: int) -> bool:
        data = await self.request(
            "GetSceneItemEnabled", {**_scene_selector(scene), "sceneItemId": item_id}
        )
        return bool(data.get("sceneItemEnabled", False))

    async def set_scene_item_enabled(self, scene: SceneRef, item_id: int, enabled: bool) -> None:
        await self.request(
            "SetSceneItemEnabled",
            {**_scene_selector(scene), "sceneItemId": item_id, "sceneItemEnabled": enabled},
        )
