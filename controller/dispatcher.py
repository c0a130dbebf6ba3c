"""Action dispatcher — turns a resolved :data:`~core.mappings.actions.Action`
into OBS requests.

Name resolution
───────────────
``SetScene``, ``SetVolume`` and ``ToggleInputMute`` look names up in the
:class:`Catalog` snapshotted at connect time.  The scene item actions look
names up in the *current* scene snapshot and address the item inside that
scene.  A name that does not resolve is logged and skipped; it is not an error.

Remote failures propagate to the caller (the event loop), which logs them
and carries on with the next event.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import assert_never

from controller.scene_cache import SceneSnapshot
from core.mappings.actions import (
    Action,
    DisableSceneItem,
    EnableSceneItem,
    SetScene,
    SetVolume,
    ToggleInputMute,
    ToggleSceneItem,
    volume_ratio,
)
from core.obs.protocol import RemoteSession
from core.obs.types import InputRef, SceneRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Catalog:
    """Scene and input names known to OBS when the controller connected.

    Not refreshed afterwards: scenes or inputs created or renamed later are
    unknown to the name-based actions until restart.
    """

    scenes: Mapping[str, SceneRef] = field(default_factory=dict)
    inputs: Mapping[str, InputRef] = field(default_factory=dict)

    @classmethod
    async def load(cls, remote: RemoteSession) -> Catalog:
        scenes = await remote.list_scenes()
        inputs = await remote.list_inputs()
        logger.info("Found %d scenes and %d inputs", len(scenes), len(inputs))
        return cls(
            scenes=MappingProxyType({s.name: s for s in scenes}),
            inputs=MappingProxyType({i.name: i for i in inputs}),
        )


class ActionDispatcher:
    """Executes actions against a :class:`~core.obs.protocol.RemoteSession`."""

    def __init__(self, remote: RemoteSession, catalog: Catalog) -> None:
        self._remote = remote
        self._catalog = catalog

    async def dispatch(self, action: Action, value: int, snapshot: SceneSnapshot) -> bool:
        """Issue the OBS request(s) for ``action``.

        Args:
            action: Action resolved from the mapping table.
            value: Raw control value (0-127) that triggered it.
            snapshot: Current scene snapshot, used for scene item actions.

        Returns:
            True if a request was sent, False if the target name did not resolve.

        Raises:
            Exception: Any failure raised by the remote session.
        """
        match action:
            case SetScene(name=name):
                scene = self._catalog.scenes.get(name)
                if scene is None:
                    return self._unresolved("scene", name)
                await self._remote.set_current_program_scene(scene)

            case SetVolume(name=name, value=volume):
                input_ = self._catalog.inputs.get(name)
                if input_ is None:
                    return self._unresolved("input", name)
                await self._remote.set_input_volume(input_, volume_ratio(volume, value))

            case ToggleInputMute(name=name):
                input_ = self._catalog.inputs.get(name)
                if input_ is None:
                    return self._unresolved("input", name)
                muted = await self._remote.toggle_input_mute(input_)
                logger.debug("%s is now %s", name, "muted" if muted else "unmuted")

            case EnableSceneItem(name=name) | DisableSceneItem(name=name):
                item_id = snapshot.items.get(name)
                if item_id is None:
                    return self._unresolved_item(name, snapshot)
                enabled = isinstance(action, EnableSceneItem)
                await self._remote.set_scene_item_enabled(snapshot.scene, item_id, enabled)

            case ToggleSceneItem(name=name):
                item_id = snapshot.items.get(name)
                if item_id is None:
                    return self._unresolved_item(name, snapshot)
                enabled = await self._remote.get_scene_item_enabled(snapshot.scene, item_id)
                await self._remote.set_scene_item_enabled(snapshot.scene, item_id, not enabled)

            case _:
                assert_never(action)

        return True

    @staticmethod
    def _unresolved(kind: str, name: str) -> bool:
        logger.info("Unknown %s %r, ignoring", kind, name)
        return False

    @staticmethod
    def _unresolved_item(name: str, snapshot: SceneSnapshot) -> bool:
        logger.info("Scene %r has no item %r, ignoring", snapshot.scene.name, name)
        return False
