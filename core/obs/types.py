"""core/obs/types.py — Immutable value objects for an OBS session.

Scenes and inputs are identified by name and, on obs-websocket v5, by a
stable UUID.  Scene items are identified by an integer id that is only
meaningful inside the scene it belongs to.

Every type is a frozen dataclass.  No I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SceneRef:
    """A scene as reported by ``GetSceneList`` / ``GetCurrentProgramScene``."""

    name: str
    uuid: str = ""


@dataclass(frozen=True)
class InputRef:
    """An input (audio or video source) as reported by ``GetInputList``."""

    name: str
    uuid: str = ""
    kind: str = ""


@dataclass(frozen=True)
class SceneItem:
    """One entry of ``GetSceneItemList`` for a given scene."""

    source_name: str
    item_id: int
    enabled: bool = True


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ObsEvent:
    """Any obs-websocket event we do not model explicitly."""

    event_type: str
    data: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class CurrentProgramSceneChanged:
    """The program (live) scene switched, from the LPD8 or from elsewhere."""

    scene: SceneRef


RemoteEvent = CurrentProgramSceneChanged | ObsEvent


def parse_event(event_type: str, data: dict[str, Any] | None) -> RemoteEvent:
    """Turn an ``Event`` (op 5) payload into a typed event.

    Args:
        event_type: ``d.eventType`` of the frame.
        data: ``d.eventData`` of the frame (may be absent).

    Returns:
        :class:`CurrentProgramSceneChanged` when it carries a scene name,
        :class:`ObsEvent` otherwise.
    """
    data = data or {}
    if event_type == "CurrentProgramSceneChanged" and "sceneName" in data:
        return CurrentProgramSceneChanged(
            SceneRef(name=str(data["sceneName"]), uuid=str(data.get("sceneUuid", "")))
        )
    return ObsEvent(event_type=event_type, data=data)


def parse_scene(data: dict[str, Any]) -> SceneRef:
    """Deserialise one scene dict (``sceneName`` / ``sceneUuid``)."""
    return SceneRef(name=str(data["sceneName"]), uuid=str(data.get("sceneUuid", "")))


def parse_input(data: dict[str, Any]) -> InputRef:
    """Deserialise one input dict from ``GetInputList``."""
    return InputRef(
        name=str(data["inputName"]),
        uuid=str(data.get("inputUuid", "")),
        kind=str(data.get("inputKind", "")),
    )


def parse_scene_item(data: dict[str, Any]) -> SceneItem:
    """Deserialise one scene item dict from ``GetSceneItemList``."""
    return SceneItem(
        source_name=str(data["sourceName"]),
        item_id=int(data["sceneItemId"]),
        enabled=bool(data.get("sceneItemEnabled", True)),
    )
