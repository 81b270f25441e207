from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CloudType(str, Enum):
    aws = "aws"
    gcp = "gcp"
    azu = "azu"
    docker = "docker"
    onprem = "onprem"
    kubernetes = "kubernetes"


class DeviceInfo(BaseModel):
    num_volumes: int = Field(default=1, ge=0)
    volume_size: int = Field(default=0, ge=0)
    mount_points: Optional[str] = None


class UserIntent(BaseModel):
    """Operator-declared target shape of a universe.

    Planning passes work on ``clone()`` copies so the intent recorded on a
    stored universe only changes when a pass commits.
    """

    universe_name: str = ""
    provider_type: CloudType = CloudType.aws
    provider: str = ""
    region_list: List[str] = Field(default_factory=list)
    preferred_region: Optional[str] = None
    instance_type: str = ""
    num_nodes: int = 0
    replication_factor: int = 3
    is_multi_az: bool = True
    software_version: str = ""
    access_key_code: str = ""
    device_info: DeviceInfo = Field(default_factory=DeviceInfo)
    master_gflags: Dict[str, str] = Field(default_factory=dict)
    tserver_gflags: Dict[str, str] = Field(default_factory=dict)

    def clone(self) -> "UserIntent":
        return self.model_copy(deep=True)
