from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from clusterplan.errors import UpstreamQueryError


class NodeStatus(str, Enum):
    Running = "Running"
    Unreachable = "Unreachable"


class MetricSeries(BaseModel):
    name: str
    y: List[Union[str, float, int, None]] = Field(default_factory=list)


class NodeHealth(BaseModel):
    tserver_alive: bool
    master_alive: bool
    node_status: NodeStatus


class UniverseHealth(BaseModel):
    universe_uuid: Optional[UUID] = None
    universe_alive: bool = False
    nodes: Dict[str, NodeHealth] = Field(default_factory=dict)
    error: Optional[str] = None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise UpstreamQueryError("metrics.query", self.error)
