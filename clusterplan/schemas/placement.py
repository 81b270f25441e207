from __future__ import annotations

from typing import Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field

ZoneKey = Tuple[str, str, str]


class AvailabilityZone(BaseModel):
    code: str
    name: str = ""
    subnet: str = ""
    # Free instances for capacity-bound providers such as on-prem; None means unbounded.
    capacity: Optional[int] = None


class PlacementAZ(BaseModel):
    code: str
    name: str = ""
    subnet: str = ""
    num_nodes_in_az: int = 0


class PlacementRegion(BaseModel):
    code: str
    name: str = ""
    az_list: List[PlacementAZ] = Field(default_factory=list)


class PlacementCloud(BaseModel):
    code: str
    region_list: List[PlacementRegion] = Field(default_factory=list)


class PlacementInfo(BaseModel):
    cloud_list: List[PlacementCloud] = Field(default_factory=list)

    def iter_zones(self) -> Iterator[Tuple[ZoneKey, PlacementAZ]]:
        for cloud in self.cloud_list:
            for region in cloud.region_list:
                for az in region.az_list:
                    yield (cloud.code, region.code, az.code), az

    def zone_keys(self) -> List[ZoneKey]:
        return [key for key, _ in self.iter_zones()]

    def find_zone(self, key: ZoneKey) -> Optional[PlacementAZ]:
        for zone_key, az in self.iter_zones():
            if zone_key == key:
                return az
        return None

    def find_cloud(self, code: str) -> Optional[PlacementCloud]:
        for cloud in self.cloud_list:
            if cloud.code == code:
                return cloud
        return None

    def node_count(self) -> int:
        return sum(az.num_nodes_in_az for _, az in self.iter_zones())

    def is_empty(self) -> bool:
        return not self.zone_keys()
