from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from clusterplan.logger import get_logger
from clusterplan.schemas.nodes import NodeDetails
from clusterplan.schemas.placement import ZoneKey

_logger = get_logger("services.masters")


def _order_key(node: NodeDetails) -> Tuple[ZoneKey, int, str]:
    """Zone, then node index, then name, so ``n10`` sorts after ``n9``."""
    return (node.zone_key, node.node_idx, node.node_name)


def get_num_masters(nodes: Iterable[NodeDetails]) -> int:
    return sum(1 for node in nodes if node.is_master and node.is_active)


def select_masters(nodes: Iterable[NodeDetails], replication_factor: int) -> List[NodeDetails]:
    """Mark exactly ``replication_factor`` active nodes as masters.

    Active masters are kept. Extra masters are demoted from the zones that
    hold the most of them, and missing masters are taken one per zone per
    round, starting with the zones that hold the fewest. Zones are visited in
    sorted order and nodes by index then name, so the result is stable. With
    fewer active nodes than the factor every active node becomes a master.
    Decommissioning nodes are left untouched.
    """
    candidates = sorted((node for node in nodes if node.is_active), key=_order_key)
    zone_order: Dict[ZoneKey, int] = {}
    for node in candidates:
        zone_order.setdefault(node.zone_key, len(zone_order))

    masters: Dict[ZoneKey, List[NodeDetails]] = {zone: [] for zone in zone_order}
    spare: Dict[ZoneKey, List[NodeDetails]] = {zone: [] for zone in zone_order}
    for node in candidates:
        (masters if node.is_master else spare)[node.zone_key].append(node)

    chosen = sum(len(group) for group in masters.values())
    demoted = 0
    while chosen > replication_factor:
        zone = max(
            (zone for zone in zone_order if masters[zone]),
            key=lambda key: (len(masters[key]), zone_order[key]),
        )
        node = masters[zone].pop()
        node.is_master = False
        chosen -= 1
        demoted += 1

    promoted = 0
    while chosen < replication_factor:
        open_zones = [zone for zone in zone_order if spare[zone]]
        if not open_zones:
            break
        zone = min(open_zones, key=lambda key: (len(masters[key]), zone_order[key]))
        node = spare[zone].pop(0)
        node.is_master = True
        masters[zone].append(node)
        chosen += 1
        promoted += 1

    if chosen < replication_factor:
        _logger.warning(
            "masters.select",
            "Not enough active nodes to satisfy replication factor",
            replication_factor=replication_factor,
            masters=chosen,
        )
    _logger.debug(
        "masters.select",
        "Selected masters",
        replication_factor=replication_factor,
        promoted=promoted,
        demoted=demoted,
        zones=len(zone_order),
    )
    return candidates
