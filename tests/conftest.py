"""
Shared fixtures for the test suite.

Centralizes the in-memory OBS session so individual test files
don't need to repeat mock boilerplate.  No network, no MIDI hardware.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from controller.dispatcher import ActionDispatcher, Catalog
from controller.scene_cache import SceneSnapshot, SceneStateCache
from core.obs.types import InputRef, SceneItem, SceneRef

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CAMERA_A = SceneRef("Camera A", "uuid-camera-a")
CAMERA_B = SceneRef("Camera B", "uuid-camera-b")
MIC = InputRef("Mic", "uuid-mic", "pulse_input_capture")
MUSIC = InputRef("Music", "uuid-music", "ffmpeg_source")

DEFAULT_ITEMS: dict[str, list[SceneItem]] = {
    CAMERA_A.name: [SceneItem("Webcam", 1), SceneItem("Overlay", 2, enabled=False)],
    CAMERA_B.name: [SceneItem("Webcam", 7), SceneItem("Lower third", 8)],
}


# ---------------------------------------------------------------------------
# Fake remote session
# ---------------------------------------------------------------------------


@dataclass
class FakeRemoteSession:
    """In-memory ``RemoteSession`` that records every command it receives.

    ``calls`` holds ``(method_name, args)`` tuples in call order.  Put an
    exception in ``failures[method_name]`` to make that method raise.
    """

    scenes: list[SceneRef] = field(default_factory=lambda: [CAMERA_A, CAMERA_B])
    inputs: list[InputRef] = field(default_factory=lambda: [MIC, MUSIC])
    items: dict[str, list[SceneItem]] = field(default_factory=lambda: dict(DEFAULT_ITEMS))
    program_scene: SceneRef = CAMERA_A
    muted: dict[str, bool] = field(default_factory=dict)
    enabled: dict[tuple[str, int], bool] = field(default_factory=dict)
    failures: dict[str, Exception] = field(default_factory=dict)
    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)
    item_list_delay: float = 0.0

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        if method in self.failures:
            raise self.failures[method]

    def commands(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]

    async def list_scenes(self) -> list[SceneRef]:
        self._record("list_scenes")
        return list(self.scenes)

    async def list_inputs(self) -> list[InputRef]:
        self._record("list_inputs")
        return list(self.inputs)

    async def list_scene_items(self, scene: SceneRef) -> list[SceneItem]:
        self._record("list_scene_items", scene)
        if self.item_list_delay:
            await asyncio.sleep(self.item_list_delay)
        return list(self.items.get(scene.name, []))

    async def current_program_scene(self) -> SceneRef:
        self._record("current_program_scene")
        return self.program_scene

    async def set_current_program_scene(self, scene: SceneRef) -> None:
        self._record("set_current_program_scene", scene)
        self.program_scene = scene

    async def set_input_volume(self, input_: InputRef, ratio: float) -> None:
        self._record("set_input_volume", input_, ratio)

    async def toggle_input_mute(self, input_: InputRef) -> bool:
        self._record("toggle_input_mute", input_)
        self.muted[input_.name] = not self.muted.get(input_.name, False)
        return self.muted[input_.name]

    async def get_scene_item_enabled(self, scene: SceneRef, item_id: int) -> bool:
        self._record("get_scene_item_enabled", scene, item_id)
        return self.enabled.get((scene.name, item_id), True)

    async def set_scene_item_enabled(self, scene: SceneRef, item_id: int, enabled: bool) -> None:
        self._record("set_scene_item_enabled", scene, item_id, enabled)
        self.enabled[(scene.name, item_id)] = enabled


def make_snapshot(scene: SceneRef = CAMERA_A, items: dict[str, int] | None = None) -> SceneSnapshot:
    """Build a scene snapshot without going through a remote session."""
    if items is None:
        items = {i.source_name: i.item_id for i in DEFAULT_ITEMS.get(scene.name, [])}
    return SceneSnapshot(scene=scene, items=items)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def remote() -> FakeRemoteSession:
    return FakeRemoteSession()


@pytest.fixture()
def catalog() -> Catalog:
    return Catalog(
        scenes={s.name: s for s in (CAMERA_A, CAMERA_B)},
        inputs={i.name: i for i in (MIC, MUSIC)},
    )


@pytest.fixture()
def dispatcher(remote: FakeRemoteSession, catalog: Catalog) -> ActionDispatcher:
    return ActionDispatcher(remote, catalog)


@pytest.fixture()
def cache(remote: FakeRemoteSession) -> SceneStateCache:
    return SceneStateCache(remote, make_snapshot())
