from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from clusterplan.config import Settings, get_settings
from clusterplan.errors import InvalidIntent
from clusterplan.logger import get_logger
from clusterplan.schemas.intent import UserIntent
from clusterplan.schemas.nodes import NodeDetails
from clusterplan.schemas.placement import (
    AvailabilityZone,
    PlacementAZ,
    PlacementCloud,
    PlacementInfo,
    PlacementRegion,
    ZoneKey,
)
from clusterplan.services.az_balancer import balance

_logger = get_logger("services.placement")


class ZoneInventory(Protocol):
    def list_zones(self, region: str) -> List[AvailabilityZone]:
        ...


class InMemoryZoneInventory:
    """Zone inventory backed by a plain region -> zones registry."""

    def __init__(self, regions: Optional[Mapping[str, Sequence[AvailabilityZone]]] = None) -> None:
        self._regions: Dict[str, List[AvailabilityZone]] = {}
        self._region_names: Dict[str, str] = {}
        for region, zones in (regions or {}).items():
            for zone in zones:
                self.add_zone(region, zone)

    def add_region(self, code: str, name: str = "") -> None:
        self._regions.setdefault(code, [])
        self._region_names[code] = name or code

    def add_zone(self, region: str, zone: AvailabilityZone) -> None:
        self.add_region(region, self._region_names.get(region, ""))
        zones = self._regions[region]
        if any(existing.code == zone.code for existing in zones):
            raise ValueError(f"Zone {zone.code} already registered in region {region}")
        zones.append(zone)

    def region_name(self, region: str) -> str:
        return self._region_names.get(region, region)

    def list_zones(self, region: str) -> List[AvailabilityZone]:
        return [
            zone.model_copy()
            for zone in self._regions.get(region, [])
            if zone.capacity is None or zone.capacity > 0
        ]


def validate_intent(intent: UserIntent, settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    allowed = settings.allowed_replication_factors
    factor = intent.replication_factor
    if factor < 1 or factor not in allowed:
        raise InvalidIntent(
            "intent.validate",
            f"Replication factor {factor} not allowed, must be one of {allowed}.",
        )
    if intent.num_nodes < factor:
        raise InvalidIntent(
            "intent.validate",
            f"Number of nodes cannot be less than the replication factor "
            f"({intent.num_nodes} < {factor}).",
        )
    if not intent.region_list:
        raise InvalidIntent("intent.validate", "Region list cannot be empty.")
    if len(set(intent.region_list)) != len(intent.region_list):
        raise InvalidIntent("intent.validate", "Region list contains duplicate regions.")


def _region_from_inventory(
    region: str,
    intent: UserIntent,
    inventory: ZoneInventory,
) -> PlacementRegion:
    zones = inventory.list_zones(region)
    if not intent.is_multi_az:
        zones = zones[:1]
    if not zones:
        raise InvalidIntent(
            "placement.plan",
            f"Region {region} has no availability zones available for placement.",
        )
    name_lookup = getattr(inventory, "region_name", None)
    return PlacementRegion(
        code=region,
        name=name_lookup(region) if callable(name_lookup) else region,
        az_list=[PlacementAZ(code=zone.code, name=zone.name, subnet=zone.subnet) for zone in zones],
    )


def plan(
    intent: UserIntent,
    previous: Optional[PlacementInfo],
    inventory: ZoneInventory,
    settings: Optional[Settings] = None,
) -> PlacementInfo:
    """Compute the target cloud -> region -> zone tree for ``intent``.

    With a previous placement the zones already present keep their entries
    and counts as the balancing baseline; regions added to the intent are
    looked up in the inventory and regions removed from it are dropped.
    ``previous`` is never modified.
    """
    validate_intent(intent, settings)
    cloud_code = intent.provider_type.value

    with _logger.operation(
        "placement.plan",
        "Planning zone placement",
        expected=(InvalidIntent,),
        universe=intent.universe_name,
        num_nodes=intent.num_nodes,
        regions=len(intent.region_list),
        edit=previous is not None and not previous.is_empty(),
    ) as op:
        placement = previous.model_copy(deep=True) if previous is not None else PlacementInfo()
        cloud = placement.find_cloud(cloud_code)
        if cloud is None:
            cloud = PlacementCloud(code=cloud_code)
            placement.cloud_list.append(cloud)
        # Only the intent's provider takes part in a pass.
        placement.cloud_list = [cloud]

        by_code = {region.code: region for region in cloud.region_list}
        regions: List[PlacementRegion] = []
        for region_code in intent.region_list:
            region = by_code.get(region_code)
            if region is None or not region.az_list:
                region = _region_from_inventory(region_code, intent, inventory)
                op.child(
                    "region.add",
                    f"region.{region_code}",
                    "Added region from zone inventory",
                    zones=len(region.az_list),
                )
            regions.append(region)
        dropped = [code for code in by_code if code not in intent.region_list]
        if dropped:
            op.step("region.drop", "Dropped regions no longer in intent", regions=dropped)
        cloud.region_list = regions

        zone_keys = placement.zone_keys()
        existing = {key: az.num_nodes_in_az for key, az in placement.iter_zones()}
        targets = balance(zone_keys, intent.num_nodes, existing)
        for key, az in placement.iter_zones():
            az.num_nodes_in_az = targets[key]
        op.step(
            "zone.balance",
            "Assigned per-zone node targets",
            zones=len(zone_keys),
            placed=placement.node_count(),
        )
        return placement


def get_node_count_in_placement(placement: PlacementInfo) -> int:
    return placement.node_count()


def get_zone_to_num_nodes(nodes: Iterable[NodeDetails]) -> Dict[ZoneKey, int]:
    counts: Dict[ZoneKey, int] = {}
    for node in nodes:
        if not node.is_active:
            continue
        counts[node.zone_key] = counts.get(node.zone_key, 0) + 1
    return counts
