from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

from clusterplan.errors import UnknownInstanceType
from clusterplan.logger import get_logger
from clusterplan.schemas.resources import InstanceTypeSpec, UniverseResourceDetails
from clusterplan.schemas.universe import UniverseDefinitionTaskParams

_logger = get_logger("services.resources")


class InstanceTypeCatalog:
    def __init__(self, specs: Iterable[InstanceTypeSpec] = ()) -> None:
        self._specs: Dict[Tuple[str, str], InstanceTypeSpec] = {}
        for spec in specs:
            self.upsert(spec)

    def upsert(self, spec: InstanceTypeSpec) -> None:
        self._specs[(spec.provider, spec.code)] = spec

    def get(self, provider: str, code: str) -> Optional[InstanceTypeSpec]:
        return self._specs.get((provider, code))


def get_resource_details(
    params: UniverseDefinitionTaskParams,
    catalog: InstanceTypeCatalog,
) -> UniverseResourceDetails:
    """Sum the compute and storage footprint of the universe's active nodes."""
    provider = params.user_intent.provider_type.value
    device = params.user_intent.device_info
    details = UniverseResourceDetails()
    for node in params.node_details_set:
        if not node.is_active:
            continue
        code = node.cloud_info.instance_type
        spec = catalog.get(provider, code)
        if spec is None:
            _logger.error(
                "resources.lookup",
                "Unknown instance type",
                provider=provider,
                instance_type=code,
            )
            raise UnknownInstanceType(
                "resources.lookup",
                f"Couldn't find instance type {code} for provider {provider}.",
            )
        details.num_cores += spec.num_cores
        details.mem_size_gb += spec.mem_size_gb
        details.volume_count += device.num_volumes
        details.volume_size_gb += device.volume_size * device.num_volumes
        details.add_az(node.cloud_info.az)
    return details
