"""Scene state cache — which scene is live and what items it holds.

Scene item ids are scoped to their scene, so the dispatcher must always pair
an item id with the scene it came from.  The cache therefore stores both in a
single frozen :class:`SceneSnapshot` and swaps the whole object on refresh;
a reader holding a snapshot never sees a new scene with old items.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from core.obs.protocol import RemoteSession
from core.obs.types import SceneRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SceneSnapshot:
    """Point-in-time view of one scene: its reference and ``item name → item id``."""

    scene: SceneRef
    items: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))


async def fetch_snapshot(remote: RemoteSession, scene: SceneRef) -> SceneSnapshot:
    """Query ``remote`` for the items of ``scene`` and build a snapshot."""
    items = await remote.list_scene_items(scene)
    return SceneSnapshot(
        scene=scene,
        items=MappingProxyType({item.source_name: item.item_id for item in items}),
    )


class SceneStateCache:
    """Holds the current :class:`SceneSnapshot`.

    Only the event loop calls :meth:`replace`; everything else reads
    :meth:`current`.
    """

    def __init__(self, remote: RemoteSession, snapshot: SceneSnapshot) -> None:
        self._remote = remote
        self._snapshot = snapshot

    @classmethod
    async def create(cls, remote: RemoteSession) -> SceneStateCache:
        """Build the cache from the scene that is live right now."""
        scene = await remote.current_program_scene()
        snapshot = await fetch_snapshot(remote, scene)
        logger.info("Current scene is %s (%d items)", scene.name, len(snapshot.items))
        return cls(remote, snapshot)

    def current(self) -> SceneSnapshot:
        return self._snapshot

    async def replace(self, scene: SceneRef) -> SceneSnapshot:
        """Re-read ``scene``'s items and install them as the new snapshot.

        Raises:
            Exception: Whatever the remote query raised.  The previous
                snapshot stays installed in that case.
        """
        snapshot = await fetch_snapshot(self._remote, scene)
        self._snapshot = snapshot
        logger.info("Scene changed to %s (%d items)", scene.name, len(snapshot.items))
        return snapshot
