from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from clusterplan.config import Settings, get_settings
from clusterplan.errors import ClusterPlanError, InconsistentState, InvalidIntent
from clusterplan.logger import Operation, get_logger
from clusterplan.metrics import record_node_actions, record_planning_pass
from clusterplan.schemas.intent import UserIntent
from clusterplan.schemas.nodes import CloudInfo, NodeDetails, NodeState
from clusterplan.schemas.placement import PlacementAZ, PlacementInfo, ZoneKey
from clusterplan.schemas.universe import TopologyDiff, UniverseDefinitionTaskParams
from clusterplan.services.masters import get_num_masters, select_masters
from clusterplan.services.placement import ZoneInventory, plan, validate_intent

_logger = get_logger("services.topology")


@dataclass
class _Baseline:
    """What the node set looked like before a pass touched it."""

    masters: Set[str]
    pending: Set[str]
    removing: Set[str]

    @classmethod
    def capture(cls, nodes: Iterable[NodeDetails]) -> "_Baseline":
        masters: Set[str] = set()
        pending: Set[str] = set()
        removing: Set[str] = set()
        for node in nodes:
            if not node.is_active:
                removing.add(node.node_name)
                continue
            if node.is_master:
                masters.add(node.node_name)
            if node.state == NodeState.ToBeAdded:
                pending.add(node.node_name)
        return cls(masters=masters, pending=pending, removing=removing)


@dataclass
class _WorkingSet:
    nodes: List[NodeDetails]
    prefix: str
    dropped: Set[str] = field(default_factory=set)
    retyped: Set[str] = field(default_factory=set)
    next_idx: int = 1

    def __post_init__(self) -> None:
        self.next_idx = max((node.node_idx for node in self.nodes), default=0) + 1

    def retire(self, node: NodeDetails) -> None:
        # Placeholders were never provisioned, so they simply leave the set.
        if node.state == NodeState.ToBeAdded:
            remove_node_by_name(node.node_name, self.nodes)
            self.dropped.add(node.node_name)
            return
        node.state = NodeState.ToBeDecommissioned

    def add(self, key: ZoneKey, az: PlacementAZ, instance_type: str) -> NodeDetails:
        names = {node.node_name for node in self.nodes}
        while f"{self.prefix}-n{self.next_idx}" in names:
            self.next_idx += 1
        cloud, region, zone = key
        node = NodeDetails(
            node_name=f"{self.prefix}-n{self.next_idx}",
            node_idx=self.next_idx,
            cloud_info=CloudInfo(
                cloud=cloud,
                region=region,
                az=zone,
                subnet_id=az.subnet,
                instance_type=instance_type,
            ),
            is_master=False,
            is_tserver=True,
            state=NodeState.ToBeAdded,
        )
        self.next_idx += 1
        self.nodes.append(node)
        return node


def _removal_rank(node: NodeDetails) -> tuple[int, int, int]:
    return (
        0 if node.state == NodeState.ToBeAdded else 1,
        1 if node.is_master else 0,
        -node.node_idx,
    )


def _node_prefix(params: UniverseDefinitionTaskParams, intent: UserIntent, settings: Settings) -> str:
    if params.node_prefix:
        return params.node_prefix
    if intent.universe_name:
        return f"{settings.default_node_prefix}-{intent.universe_name}"
    return settings.default_node_prefix


def _check_names(nodes: List[NodeDetails]) -> None:
    seen: Set[str] = set()
    for node in nodes:
        if node.node_name in seen:
            raise InconsistentState(
                "topology.update",
                f"Node name {node.node_name} appears more than once in the node set.",
            )
        seen.add(node.node_name)


def _check_recorded_zones(nodes: List[NodeDetails], previous: Optional[PlacementInfo]) -> None:
    if previous is None or previous.is_empty():
        return
    known = set(previous.zone_keys())
    for node in nodes:
        if node.is_active and node.zone_key not in known:
            cloud, region, zone = node.zone_key
            raise InconsistentState(
                "topology.update",
                f"Node {node.node_name} is placed in {cloud}/{region}/{zone}, "
                "which is not part of the universe placement.",
            )


def _zone_set_changed(nodes: List[NodeDetails], placement: PlacementInfo) -> bool:
    """True when live nodes would gain a zone or lose one that left the placement."""
    live = {node.zone_key for node in nodes if node.is_active}
    if not live:
        return False
    planned = {key for key, az in placement.iter_zones() if az.num_nodes_in_az > 0}
    return bool(planned - live) or bool(live - set(placement.zone_keys()))


def _reconcile_zones(
    working: _WorkingSet,
    placement: PlacementInfo,
    intent: UserIntent,
    full_move: bool,
    op: Operation,
) -> None:
    active = [node for node in working.nodes if node.is_active]

    if full_move:
        for node in active:
            working.retire(node)
        op.step("nodes.replace", "Zone set changed, replacing every node", nodes=len(active))
        active = []

    kept: Dict[ZoneKey, List[NodeDetails]] = {}
    for node in active:
        if node.cloud_info.instance_type != intent.instance_type:
            if node.state == NodeState.ToBeAdded:
                node.cloud_info.instance_type = intent.instance_type
                working.retyped.add(node.node_name)
            else:
                working.retire(node)
                op.child(
                    "nodes.replace",
                    f"node.{node.node_name}",
                    "Instance type changed, replacing node",
                    old_type=node.cloud_info.instance_type,
                    new_type=intent.instance_type,
                )
                continue
        kept.setdefault(node.zone_key, []).append(node)

    targets = dict(placement.iter_zones())
    for key, members in kept.items():
        if key not in targets:
            for node in members:
                working.retire(node)

    for key, az in placement.iter_zones():
        members = sorted(kept.get(key, []), key=_removal_rank)
        excess = len(members) - az.num_nodes_in_az
        for node in members[: max(0, excess)]:
            working.retire(node)
        for _ in range(max(0, -excess)):
            working.add(key, az, intent.instance_type)
        if excess:
            op.child(
                "zone.reconcile",
                f"zone.{key[2]}",
                "Adjusted zone node count",
                current=len(members),
                target=az.num_nodes_in_az,
            )


def _derive_diff(nodes: List[NodeDetails], baseline: _Baseline, working: _WorkingSet) -> TopologyDiff:
    masters_after = {node.node_name for node in nodes if node.is_active and node.is_master}
    pending_after = {node.node_name for node in nodes if node.state == NodeState.ToBeAdded}
    removing_after = {node.node_name for node in nodes if node.state == NodeState.ToBeDecommissioned}

    masters_to_provision = (masters_after - baseline.masters) | (masters_after & working.retyped)
    masters_to_be_removed = baseline.masters - masters_after - working.dropped
    tservers_to_provision = (pending_after - baseline.pending) | (pending_after & working.retyped)
    tservers_to_be_removed = removing_after - baseline.removing

    return TopologyDiff(
        masters_to_provision=sorted(masters_to_provision),
        masters_to_be_removed=sorted(masters_to_be_removed),
        tservers_to_provision=sorted(tservers_to_provision),
        tservers_to_be_removed=sorted(tservers_to_be_removed),
    )


def _verify(nodes: List[NodeDetails], intent: UserIntent) -> None:
    active = [node for node in nodes if node.is_active]
    if len(active) != intent.num_nodes:
        raise InconsistentState(
            "topology.verify",
            f"Planned {len(active)} active nodes but the intent asks for {intent.num_nodes}.",
        )
    expected_masters = min(intent.replication_factor, len(active))
    if get_num_masters(active) != expected_masters:
        raise InconsistentState(
            "topology.verify",
            f"Planned {get_num_masters(active)} masters, expected {expected_masters}.",
        )


def update_universe_definition(
    params: UniverseDefinitionTaskParams,
    inventory: ZoneInventory,
    settings: Optional[Settings] = None,
) -> TopologyDiff:
    """Run one planning pass and commit it onto ``params``.

    The pass re-plans the placement from the current intent, retires and adds
    nodes so each zone meets its target, re-selects masters and returns the
    actions relative to the node set it started from. Work happens on copies;
    ``params`` only changes when the whole pass succeeds.
    """
    settings = settings or get_settings()
    intent = params.user_intent.clone()

    try:
        with _logger.operation(
            "topology.update",
            "Updating universe definition",
            expected=(InvalidIntent, InconsistentState),
            universe_uuid=str(params.universe_uuid),
            num_nodes=intent.num_nodes,
            replication_factor=intent.replication_factor,
            instance_type=intent.instance_type,
        ) as op:
            validate_intent(intent, settings)
            nodes = [node.model_copy(deep=True) for node in params.node_details_set]
            _check_names(nodes)
            previous = params.placement_info
            _check_recorded_zones(nodes, previous)

            placement = plan(intent, previous, inventory, settings)
            op.step("placement.plan", "Planned placement", zones=len(placement.zone_keys()))

            baseline = _Baseline.capture(nodes)
            working = _WorkingSet(nodes=nodes, prefix=_node_prefix(params, intent, settings))
            full_move = _zone_set_changed(nodes, placement)
            _reconcile_zones(working, placement, intent, full_move, op)

            select_masters(working.nodes, intent.replication_factor)
            _verify(working.nodes, intent)

            diff = _derive_diff(working.nodes, baseline, working)
            op.step(
                "diff.derive",
                "Derived node actions",
                masters_to_provision=len(diff.masters_to_provision),
                masters_to_be_removed=len(diff.masters_to_be_removed),
                tservers_to_provision=len(diff.tservers_to_provision),
                tservers_to_be_removed=len(diff.tservers_to_be_removed),
            )
    except ClusterPlanError:
        record_planning_pass(ok=False)
        raise

    params.placement_info = placement
    params.node_details_set = working.nodes
    if not params.node_prefix:
        params.node_prefix = working.prefix

    record_planning_pass(ok=True)
    record_node_actions(action="master_provision", count=len(diff.masters_to_provision))
    record_node_actions(action="master_remove", count=len(diff.masters_to_be_removed))
    record_node_actions(action="tserver_provision", count=len(diff.tservers_to_provision))
    record_node_actions(action="tserver_remove", count=len(diff.tservers_to_be_removed))
    return diff


def remove_node_by_name(node_name: str, nodes: List[NodeDetails]) -> bool:
    for index, node in enumerate(nodes):
        if node.node_name == node_name:
            del nodes[index]
            return True
    return False


def get_masters_to_provision(nodes: Iterable[NodeDetails]) -> List[NodeDetails]:
    return [node for node in nodes if node.state == NodeState.ToBeAdded and node.is_master]


def get_masters_to_be_removed(nodes: Iterable[NodeDetails]) -> List[NodeDetails]:
    return [node for node in nodes if node.state == NodeState.ToBeDecommissioned and node.is_master]


def get_tservers_to_provision(nodes: Iterable[NodeDetails]) -> List[NodeDetails]:
    return [node for node in nodes if node.state == NodeState.ToBeAdded and node.is_tserver]


def get_tservers_to_be_removed(nodes: Iterable[NodeDetails]) -> List[NodeDetails]:
    return [
        node for node in nodes if node.state == NodeState.ToBeDecommissioned and node.is_tserver
    ]
