"""Tests for intent validation and the cloud/region/zone placement planner."""

import pytest

from clusterplan.config import Settings
from clusterplan.errors import InvalidIntent
from clusterplan.schemas.intent import CloudType
from clusterplan.schemas.nodes import CloudInfo, NodeDetails, NodeState
from clusterplan.schemas.placement import AvailabilityZone
from clusterplan.services.placement import (
    InMemoryZoneInventory,
    get_node_count_in_placement,
    get_zone_to_num_nodes,
    plan,
    validate_intent,
)

from conftest import make_intent


def _counts(placement):
    return {key[2]: az.num_nodes_in_az for key, az in placement.iter_zones()}


class TestValidateIntent:
    def test_even_replication_factor_is_rejected(self, settings):
        with pytest.raises(InvalidIntent) as excinfo:
            validate_intent(make_intent(replication_factor=4, num_nodes=10), settings)
        assert "Replication factor 4 not allowed" in str(excinfo.value)

    def test_zero_replication_factor_is_rejected(self, settings):
        with pytest.raises(InvalidIntent, match="Replication factor 0 not allowed"):
            validate_intent(make_intent(replication_factor=0, num_nodes=3), settings)

    def test_fewer_nodes_than_replication_factor(self, settings):
        with pytest.raises(InvalidIntent) as excinfo:
            validate_intent(make_intent(replication_factor=7, num_nodes=3), settings)
        assert "nodes cannot be less than the replication factor" in str(excinfo.value)

    def test_empty_region_list(self, settings):
        with pytest.raises(InvalidIntent, match="Region list cannot be empty"):
            validate_intent(make_intent(regions=[]).model_copy(update={"region_list": []}), settings)

    def test_duplicate_regions(self, settings):
        with pytest.raises(InvalidIntent, match="duplicate"):
            validate_intent(make_intent(regions=["region-1", "region-1"]), settings)

    def test_allowed_factors_come_from_settings(self):
        restricted = Settings(allowed_replication_factors=[1, 3])
        with pytest.raises(InvalidIntent, match="Replication factor 5 not allowed"):
            validate_intent(make_intent(replication_factor=5, num_nodes=5), restricted)

    @pytest.mark.parametrize("factor,nodes", [(1, 1), (3, 3), (5, 10), (7, 7)])
    def test_valid_intents_pass(self, settings, factor, nodes):
        validate_intent(make_intent(replication_factor=factor, num_nodes=nodes), settings)


class TestPlanCreate:
    def test_zones_come_from_inventory(self, inventory, settings):
        placement = plan(make_intent(), None, inventory, settings)
        assert [cloud.code for cloud in placement.cloud_list] == [CloudType.aws.value]
        regions = placement.cloud_list[0].region_list
        assert [region.code for region in regions] == ["region-1", "region-2"]
        assert regions[0].name == "Region 1"
        assert _counts(placement) == {"az-1": 3, "az-2": 3, "az-3": 3}
        assert get_node_count_in_placement(placement) == 9

    def test_single_zone_per_region_without_multi_az(self, inventory, settings):
        intent = make_intent(replication_factor=3, num_nodes=3)
        intent.is_multi_az = False
        placement = plan(intent, None, inventory, settings)
        assert _counts(placement) == {"az-1": 2, "az-3": 1}

    def test_region_without_zones_is_rejected(self, inventory, settings):
        inventory.add_region("region-empty")
        with pytest.raises(InvalidIntent, match="region-empty"):
            plan(make_intent(regions=["region-empty"]), None, inventory, settings)

    def test_zones_without_free_capacity_are_skipped(self, settings):
        onprem = InMemoryZoneInventory(
            {
                "region-1": [
                    AvailabilityZone(code="az-1", capacity=3),
                    AvailabilityZone(code="az-2", capacity=0),
                    AvailabilityZone(code="az-3", capacity=0),
                ]
            }
        )
        intent = make_intent(num_nodes=3, regions=["region-1"])
        intent.provider_type = CloudType.onprem
        placement = plan(intent, None, onprem, settings)
        assert _counts(placement) == {"az-1": 3}

    def test_duplicate_zone_registration_fails(self, inventory):
        with pytest.raises(ValueError):
            inventory.add_zone("region-1", AvailabilityZone(code="az-1"))


class TestPlanEdit:
    def test_sum_always_matches_intent(self, inventory, settings):
        previous = plan(make_intent(), None, inventory, settings)
        for num_nodes in range(3, 20):
            placement = plan(make_intent(num_nodes=num_nodes), previous, inventory, settings)
            assert get_node_count_in_placement(placement) == num_nodes
            previous = placement

    def test_new_region_is_added_and_rebalanced(self, inventory, settings):
        previous = plan(make_intent(), None, inventory, settings)
        intent = make_intent(regions=["region-1", "region-2", "region-3"])
        placement = plan(intent, previous, inventory, settings)
        assert _counts(placement) == {"az-1": 2, "az-2": 2, "az-3": 3, "az-4": 2}
        assert _counts(previous) == {"az-1": 3, "az-2": 3, "az-3": 3}

    def test_manual_zone_counts_are_the_baseline(self, inventory, settings):
        previous = plan(make_intent(), None, inventory, settings)
        for _, az in previous.iter_zones():
            az.num_nodes_in_az += 1
        placement = plan(make_intent(num_nodes=12), previous, inventory, settings)
        assert _counts(placement) == {"az-1": 4, "az-2": 4, "az-3": 4}

    def test_removed_region_is_dropped(self, inventory, settings):
        previous = plan(make_intent(), None, inventory, settings)
        placement = plan(make_intent(regions=["region-1"]), previous, inventory, settings)
        assert _counts(placement) == {"az-1": 5, "az-2": 4}

    def test_existing_zones_survive_inventory_changes(self, inventory, settings):
        previous = plan(make_intent(), None, inventory, settings)
        inventory.add_zone("region-1", AvailabilityZone(code="az-5"))
        placement = plan(make_intent(num_nodes=10), previous, inventory, settings)
        assert _counts(placement) == {"az-1": 4, "az-2": 3, "az-3": 3}


def test_zone_counts_skip_nodes_being_removed():
    nodes = [
        NodeDetails(node_name="n1", cloud_info=CloudInfo(cloud="aws", region="r", az="a"), state=NodeState.Running),
        NodeDetails(node_name="n2", cloud_info=CloudInfo(cloud="aws", region="r", az="a"), state=NodeState.ToBeAdded),
        NodeDetails(
            node_name="n3",
            cloud_info=CloudInfo(cloud="aws", region="r", az="b"),
            state=NodeState.ToBeDecommissioned,
        ),
    ]
    assert get_zone_to_num_nodes(nodes) == {("aws", "r", "a"): 2}
