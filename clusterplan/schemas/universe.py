from __future__ import annotations

from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from clusterplan.schemas.intent import UserIntent
from clusterplan.schemas.nodes import NodeDetails
from clusterplan.schemas.placement import PlacementInfo


class UniverseDefinitionTaskParams(BaseModel):
    universe_uuid: UUID = Field(default_factory=uuid4)
    user_intent: UserIntent = Field(default_factory=UserIntent)
    placement_info: Optional[PlacementInfo] = None
    node_details_set: List[NodeDetails] = Field(default_factory=list)
    node_prefix: str = ""

    def get_node(self, node_name: str) -> Optional[NodeDetails]:
        for node in self.node_details_set:
            if node.node_name == node_name:
                return node
        return None

    def masters(self) -> List[NodeDetails]:
        return [node for node in self.node_details_set if node.is_master and node.is_active]


class Universe(BaseModel):
    universe_uuid: UUID = Field(default_factory=uuid4)
    name: str
    version: int = 1
    universe_details: UniverseDefinitionTaskParams = Field(
        default_factory=UniverseDefinitionTaskParams
    )

    def get_nodes(self) -> List[NodeDetails]:
        return list(self.universe_details.node_details_set)

    def get_masters(self) -> List[NodeDetails]:
        return self.universe_details.masters()


class TopologyDiff(BaseModel):
    masters_to_provision: List[str] = Field(default_factory=list)
    masters_to_be_removed: List[str] = Field(default_factory=list)
    tservers_to_provision: List[str] = Field(default_factory=list)
    tservers_to_be_removed: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.masters_to_provision
            or self.masters_to_be_removed
            or self.tservers_to_provision
            or self.tservers_to_be_removed
        )
