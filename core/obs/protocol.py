"""
Remote session protocol for the LPD8 controller.

Defines what the controller needs from a running OBS instance.
This module is pure — no I/O, no network calls, no side effects.
The obs-websocket implementation lives outside core/.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.obs.types import InputRef, SceneItem, SceneRef


@runtime_checkable
class RemoteSession(Protocol):
    """
    Protocol for remote OBS sessions.

    All methods are coroutines.  Failures surface as exceptions
    (``ConnectionError`` for transport problems, a ``RuntimeError`` subclass
    for rejected requests); callers decide whether they are fatal.
    """

    async def list_scenes(self) -> list[SceneRef]:
        """All scenes of the current scene collection."""
        ...

    async def list_inputs(self) -> list[InputRef]:
        """All inputs, regardless of kind."""
        ...

    async def list_scene_items(self, scene: SceneRef) -> list[SceneItem]:
        """Items of ``scene``, top level only."""
        ...

    async def current_program_scene(self) -> SceneRef:
        """The scene currently live on program output."""
        ...

    async def set_current_program_scene(self, scene: SceneRef) -> None:
        ...

    async def set_input_volume(self, input_: InputRef, ratio: float) -> None:
        """Set volume as a multiplier (0.0 = silent, 1.0 = unity)."""
        ...

    async def toggle_input_mute(self, input_: InputRef) -> bool:
        """Flip mute state.  Returns the new muted state."""
        ...

    async def get_scene_item_enabled(self, scene: SceneRef, item_id: int) -> bool:
        ...

    async def set_scene_item_enabled(self, scene: SceneRef, item_id: int, enabled: bool) -> None:
        ...
