from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from clusterplan.schemas.placement import ZoneKey


class NodeState(str, Enum):
    ToBeAdded = "ToBeAdded"
    Provisioning = "Provisioning"
    SoftwareInstalled = "SoftwareInstalled"
    UpgradeSoftware = "UpgradeSoftware"
    UpdateGFlags = "UpdateGFlags"
    Running = "Running"
    ToBeDecommissioned = "ToBeDecommissioned"
    BeingDecommissioned = "BeingDecommissioned"
    Decommissioned = "Decommissioned"
    Unreachable = "Unreachable"
    Stopped = "Stopped"


REMOVAL_STATES = frozenset(
    {
        NodeState.ToBeDecommissioned,
        NodeState.BeingDecommissioned,
        NodeState.Decommissioned,
    }
)


class CloudInfo(BaseModel):
    cloud: str = ""
    region: str = ""
    az: str = ""
    subnet_id: str = ""
    instance_type: str = ""
    private_ip: Optional[str] = None
    public_ip: Optional[str] = None
    private_dns: Optional[str] = None
    public_dns: Optional[str] = None


class NodeDetails(BaseModel):
    node_name: str
    node_idx: int = 0
    cloud_info: CloudInfo = Field(default_factory=CloudInfo)
    is_master: bool = False
    is_tserver: bool = True
    state: NodeState = NodeState.ToBeAdded

    @property
    def zone_key(self) -> ZoneKey:
        return (self.cloud_info.cloud, self.cloud_info.region, self.cloud_info.az)

    @property
    def is_active(self) -> bool:
        return self.state not in REMOVAL_STATES
