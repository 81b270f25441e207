from __future__ import annotations

from typing import Dict, Hashable, Mapping, Sequence, TypeVar

from clusterplan.errors import InconsistentState, InvalidIntent
from clusterplan.logger import get_logger

_logger = get_logger("services.az_balancer")

Zone = TypeVar("Zone", bound=Hashable)


def _lowest(zones: Sequence[Zone], counts: Dict[Zone, int]) -> Zone:
    # min() keeps the first zone on ties, so iteration order breaks them.
    return min(zones, key=lambda zone: counts[zone])


def _highest(zones: Sequence[Zone], counts: Dict[Zone, int]) -> Zone:
    return max(zones, key=lambda zone: counts[zone])


def balance(
    zones: Sequence[Zone],
    total_nodes: int,
    existing_counts: Mapping[Zone, int],
) -> Dict[Zone, int]:
    """Spread ``total_nodes`` over ``zones`` so no two zones differ by more than one.

    Counts move one node at a time starting from ``existing_counts``: growth
    goes to the emptiest zone, shrinkage comes from the fullest, and any
    leftover spread is closed by moving single nodes from the fullest zone to
    the emptiest. Zones already inside the band are not touched.
    """
    if total_nodes < 0:
        raise InvalidIntent("placement.balance", f"Node count {total_nodes} cannot be negative.")
    ordered = list(dict.fromkeys(zones))
    if not ordered:
        if total_nodes > 0:
            raise InvalidIntent(
                "placement.balance",
                f"Cannot place {total_nodes} nodes without any availability zones.",
            )
        return {}

    counts: Dict[Zone, int] = {}
    for zone in ordered:
        current = int(existing_counts.get(zone, 0))
        if current < 0:
            raise InconsistentState(
                "placement.balance",
                f"Zone {zone} has a negative node count {current}.",
            )
        counts[zone] = current

    assigned = sum(counts.values())
    while assigned < total_nodes:
        counts[_lowest(ordered, counts)] += 1
        assigned += 1
    while assigned > total_nodes:
        counts[_highest(ordered, counts)] -= 1
        assigned -= 1

    moves = 0
    while True:
        source = _highest(ordered, counts)
        target = _lowest(ordered, counts)
        if counts[source] - counts[target] <= 1:
            break
        counts[source] -= 1
        counts[target] += 1
        moves += 1

    _logger.debug(
        "placement.balance",
        "Balanced nodes across zones",
        zones=len(ordered),
        total_nodes=total_nodes,
        previous_total=sum(int(existing_counts.get(zone, 0)) for zone in ordered),
        moves=moves,
    )
    return counts
