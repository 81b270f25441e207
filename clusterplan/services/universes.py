from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Tuple
from uuid import UUID

from clusterplan.config import Settings
from clusterplan.errors import ClusterPlanError, UniverseNotFound, VersionConflict
from clusterplan.logger import get_logger
from clusterplan.metrics import record_universe_update
from clusterplan.schemas.intent import UserIntent
from clusterplan.schemas.universe import TopologyDiff, Universe
from clusterplan.services.placement import ZoneInventory
from clusterplan.services.topology import update_universe_definition

_logger = get_logger("services.universes")

UniverseUpdater = Callable[[Universe], Universe]


class UniverseStore:
    """In-memory universe snapshots with one exclusive section per universe.

    Writers hand in a pure ``Universe -> Universe`` function; it runs against
    a private copy while the universe's lock is held and its result becomes
    the next snapshot.
    """

    def __init__(self) -> None:
        self._universes: Dict[UUID, Universe] = {}
        self._locks: Dict[UUID, asyncio.Lock] = {}

    def create(self, universe: Universe) -> Universe:
        if universe.universe_uuid in self._universes:
            raise VersionConflict(
                "universe.create",
                f"Universe {universe.universe_uuid} already exists.",
            )
        stored = universe.model_copy(deep=True)
        self._universes[stored.universe_uuid] = stored
        self._locks[stored.universe_uuid] = asyncio.Lock()
        _logger.info("universe.create", "Created universe", universe_uuid=str(stored.universe_uuid))
        return stored.model_copy(deep=True)

    def get(self, universe_uuid: UUID) -> Universe:
        universe = self._universes.get(universe_uuid)
        if universe is None:
            raise UniverseNotFound("universe.get", f"Universe {universe_uuid} not found.")
        return universe.model_copy(deep=True)

    def list_universes(self) -> List[Universe]:
        return [universe.model_copy(deep=True) for universe in self._universes.values()]

    def lock(self, universe_uuid: UUID) -> asyncio.Lock:
        lock = self._locks.get(universe_uuid)
        if lock is None:
            raise UniverseNotFound("universe.lock", f"Universe {universe_uuid} not found.")
        return lock

    def write_locked(
        self,
        universe_uuid: UUID,
        updater: UniverseUpdater,
        expected_version: Optional[int],
    ) -> Universe:
        current = self.get(universe_uuid)
        if expected_version is not None and current.version != expected_version:
            raise VersionConflict(
                "universe.save",
                f"Universe {universe_uuid} is at version {current.version}, "
                f"expected {expected_version}.",
            )
        updated = updater(current)
        if updated.universe_uuid != universe_uuid:
            raise VersionConflict("universe.save", "Updater changed the universe identity.")
        updated.version = current.version + 1
        self._universes[universe_uuid] = updated.model_copy(deep=True)
        return updated

    async def save_details(
        self,
        universe_uuid: UUID,
        updater: UniverseUpdater,
        expected_version: Optional[int] = None,
    ) -> Universe:
        async with self.lock(universe_uuid):
            try:
                updated = self.write_locked(universe_uuid, updater, expected_version)
            except ClusterPlanError:
                record_universe_update(ok=False)
                raise
        record_universe_update(ok=True)
        _logger.info(
            "universe.save",
            "Saved universe snapshot",
            universe_uuid=str(universe_uuid),
            version=updated.version,
        )
        return updated


async def update_universe(
    store: UniverseStore,
    universe_uuid: UUID,
    intent: UserIntent,
    inventory: ZoneInventory,
    settings: Optional[Settings] = None,
) -> Tuple[Universe, TopologyDiff]:
    """Plan ``intent`` against the stored universe and persist the result.

    The read, the planning pass and the write all happen while the
    universe's lock is held. A failed pass leaves the stored snapshot as it
    was.
    """
    async with _logger.operation(
        "universe.update",
        "Applying intent to universe",
        expected=(ClusterPlanError,),
        universe_uuid=str(universe_uuid),
        num_nodes=intent.num_nodes,
    ) as op:
        async with store.lock(universe_uuid):
            current = store.get(universe_uuid)
            details = current.universe_details.model_copy(deep=True)
            details.user_intent = intent.clone()
            diff = update_universe_definition(details, inventory, settings)
            op.step("topology.update", "Planned universe definition", empty=diff.is_empty)

            try:
                updated = store.write_locked(
                    universe_uuid,
                    lambda universe: universe.model_copy(update={"universe_details": details}),
                    current.version,
                )
            except ClusterPlanError:
                record_universe_update(ok=False)
                raise
        record_universe_update(ok=True)
        op.step("universe.save", "Saved universe snapshot", version=updated.version)
        return updated, diff
