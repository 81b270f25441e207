from __future__ import annotations

from typing import Any, Callable, Dict, FrozenSet, Mapping

from clusterplan.errors import HostNotFound, InconsistentState
from clusterplan.logger import get_logger
from clusterplan.schemas.nodes import CloudInfo, NodeDetails, NodeState

_logger = get_logger("services.nodes")

_S = NodeState
_RETIRABLE = frozenset({_S.ToBeDecommissioned})

ALLOWED_TRANSITIONS: Dict[NodeState, FrozenSet[NodeState]] = {
    _S.ToBeAdded: frozenset({_S.Provisioning}),
    _S.Provisioning: frozenset({_S.SoftwareInstalled}) | _RETIRABLE,
    _S.SoftwareInstalled: frozenset({_S.Running}) | _RETIRABLE,
    _S.Running: frozenset({_S.UpgradeSoftware, _S.UpdateGFlags, _S.Unreachable, _S.Stopped})
    | _RETIRABLE,
    _S.UpgradeSoftware: frozenset({_S.Running}),
    _S.UpdateGFlags: frozenset({_S.Running}),
    _S.Unreachable: frozenset({_S.Running}) | _RETIRABLE,
    _S.Stopped: frozenset({_S.Running}) | _RETIRABLE,
    _S.ToBeDecommissioned: frozenset({_S.BeingDecommissioned}),
    _S.BeingDecommissioned: frozenset({_S.Decommissioned}),
    _S.Decommissioned: frozenset(),
}


def _set_cloud_field(name: str) -> Callable[[CloudInfo, Any], None]:
    def _setter(cloud_info: CloudInfo, value: Any) -> None:
        setattr(cloud_info, name, None if value is None else str(value))

    return _setter


# Keys reported by the provisioning layer that map onto node fields.
NODE_INFO_FIELDS: Dict[str, Callable[[CloudInfo, Any], None]] = {
    "private_ip": _set_cloud_field("private_ip"),
    "public_ip": _set_cloud_field("public_ip"),
    "private_dns": _set_cloud_field("private_dns"),
    "public_dns": _set_cloud_field("public_dns"),
    "subnet_id": _set_cloud_field("subnet_id"),
}


def can_transition(current: NodeState, target: NodeState) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def transition_node_state(node: NodeDetails, new_state: NodeState) -> NodeDetails:
    if not can_transition(node.state, new_state):
        raise InconsistentState(
            "node.transition",
            f"Node {node.node_name} cannot move from {node.state.value} to {new_state.value}.",
        )
    updated = node.model_copy(deep=True)
    updated.state = new_state
    _logger.info(
        "node.transition",
        "Node state changed",
        node=node.node_name,
        previous=node.state.value,
        state=new_state.value,
    )
    return updated


def _is_false(value: Any) -> bool:
    if isinstance(value, bool):
        return not value
    return str(value).strip().lower() == "false"


def apply_node_info(node: NodeDetails, payload: Mapping[str, Any]) -> NodeDetails:
    """Return a copy of ``node`` with host details reported by the provisioner.

    Only keys listed in ``NODE_INFO_FIELDS`` are applied; anything else is
    logged and skipped. A ``host_found`` value of false means the host is gone.
    """
    if "host_found" in payload and _is_false(payload["host_found"]):
        raise HostNotFound("node.info", f"Host {node.node_name} not found.")

    updated = node.model_copy(deep=True)
    applied = 0
    for key, value in payload.items():
        if key == "host_found":
            continue
        setter = NODE_INFO_FIELDS.get(key)
        if setter is None:
            _logger.warning(
                "node.info",
                "Skipping unknown node field",
                node=node.node_name,
                field=key,
            )
            continue
        setter(updated.cloud_info, value)
        applied += 1

    _logger.debug("node.info", "Applied node info", node=node.node_name, applied=applied)
    return updated
