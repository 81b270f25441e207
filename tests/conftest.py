from __future__ import annotations

from typing import List

import pytest

from clusterplan.config import Settings
from clusterplan.schemas.intent import CloudType, UserIntent
from clusterplan.schemas.nodes import NodeDetails, NodeState
from clusterplan.schemas.placement import AvailabilityZone
from clusterplan.schemas.universe import UniverseDefinitionTaskParams
from clusterplan.services.placement import InMemoryZoneInventory
from clusterplan.services.topology import remove_node_by_name, update_universe_definition

REPLICATION_FACTOR = 3
INITIAL_NUM_NODES = REPLICATION_FACTOR * 3


def make_intent(
    replication_factor: int = REPLICATION_FACTOR,
    num_nodes: int = INITIAL_NUM_NODES,
    regions: List[str] | None = None,
) -> UserIntent:
    return UserIntent(
        universe_name="test-universe",
        provider_type=CloudType.aws,
        provider="aws",
        region_list=list(regions or ["region-1", "region-2"]),
        preferred_region="region-1",
        instance_type="m3.medium",
        num_nodes=num_nodes,
        replication_factor=replication_factor,
        software_version="0.0.1",
        access_key_code="akc",
    )


def provision(nodes: List[NodeDetails]) -> None:
    """Play the provisioning layer: bring placeholders up, finish removals."""
    for node in list(nodes):
        if node.state == NodeState.ToBeAdded:
            node.state = NodeState.Running
            node.cloud_info.private_ip = f"10.255.{node.cloud_info.az[-1]}.{node.node_idx}"
        elif node.state == NodeState.ToBeDecommissioned:
            remove_node_by_name(node.node_name, nodes)


def zone_counts(nodes: List[NodeDetails]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for node in nodes:
        if node.is_active:
            counts[node.cloud_info.az] = counts.get(node.cloud_info.az, 0) + 1
    return counts


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def inventory() -> InMemoryZoneInventory:
    inventory = InMemoryZoneInventory()
    inventory.add_region("region-1", "Region 1")
    inventory.add_region("region-2", "Region 2")
    inventory.add_region("region-3", "Region 3")
    inventory.add_zone("region-1", AvailabilityZone(code="az-1", name="PlacementAZ 1", subnet="subnet-1"))
    inventory.add_zone("region-1", AvailabilityZone(code="az-2", name="PlacementAZ 2", subnet="subnet-2"))
    inventory.add_zone("region-2", AvailabilityZone(code="az-3", name="PlacementAZ 3", subnet="subnet-3"))
    inventory.add_zone("region-3", AvailabilityZone(code="az-4", name="PlacementAZ 4", subnet="subnet-4"))
    return inventory


@pytest.fixture
def running_universe(inventory: InMemoryZoneInventory, settings: Settings) -> UniverseDefinitionTaskParams:
    """Nine running nodes, three per zone, one master per zone."""
    params = UniverseDefinitionTaskParams(user_intent=make_intent())
    update_universe_definition(params, inventory, settings)
    provision(params.node_details_set)
    return params
