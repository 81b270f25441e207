from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class InstanceTypeSpec(BaseModel):
    provider: str
    code: str
    num_cores: float
    mem_size_gb: float


class UniverseResourceDetails(BaseModel):
    num_cores: float = 0.0
    mem_size_gb: float = 0.0
    volume_count: int = 0
    volume_size_gb: int = 0
    azs: List[str] = Field(default_factory=list)

    def add_az(self, code: str) -> None:
        if code not in self.azs:
            self.azs.append(code)
