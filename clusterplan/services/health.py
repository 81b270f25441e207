from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence
from uuid import UUID

from pydantic import ValidationError

from clusterplan.config import Settings, get_settings
from clusterplan.errors import UpstreamQueryError
from clusterplan.logger import get_logger
from clusterplan.metrics import record_health_aggregation
from clusterplan.schemas.health import MetricSeries, NodeHealth, NodeStatus, UniverseHealth
from clusterplan.schemas.nodes import NodeDetails
from clusterplan.schemas.universe import Universe

_logger = get_logger("services.health")


class MetricsQuery(Protocol):
    def query(self, metrics: List[str], params: Mapping[str, str]) -> Mapping[str, Any]:
        ...


def _latest_value(samples: Sequence[Any]) -> float:
    if not samples:
        return 0.0
    latest = samples[-1]
    if latest is None:
        return 0.0
    try:
        value = float(latest)
    except (TypeError, ValueError):
        return 0.0
    # Stale samples come back as NaN.
    return 0.0 if math.isnan(value) else value


def _latest_by_series(snapshot: Mapping[str, Any], metric: str) -> Dict[str, float]:
    block = snapshot.get(metric)
    data = block.get("data", []) if isinstance(block, Mapping) else []
    latest: Dict[str, float] = {}
    for raw in data:
        try:
            series = MetricSeries.model_validate(raw)
        except ValidationError as exc:
            raise UpstreamQueryError(
                "health.aggregate",
                f"Malformed {metric} series: {exc.errors()[0]['msg']}.",
            ) from exc
        latest[series.name] = _latest_value(series.y)
    return latest


def _alive(latest: Mapping[str, float], ip: Optional[str], port: int) -> bool:
    if not ip:
        return False
    return latest.get(f"{ip}:{port}", 0.0) != 0.0


def aggregate(
    universe_uuid: Optional[UUID],
    nodes: Iterable[NodeDetails],
    snapshot: Mapping[str, Any],
    settings: Optional[Settings] = None,
) -> UniverseHealth:
    """Classify every node from a liveness snapshot.

    A series is alive when its most recent sample is a nonzero number; a missing
    or stale (NaN) series counts as dead and a malformed one raises
    ``UpstreamQueryError``. The universe is alive only when every tserver and
    node series, and the master series of every master, is alive. An
    upstream ``error`` is returned as-is with no per-node entries.
    """
    settings = settings or get_settings()
    error = snapshot.get("error")
    if error is not None:
        _logger.warning(
            "health.aggregate",
            "Metrics query reported an error",
            universe_uuid=str(universe_uuid),
            error=error,
        )
        record_health_aggregation(result="upstream_error")
        return UniverseHealth(universe_uuid=universe_uuid, error=str(error))

    latest = _latest_by_series(snapshot, settings.universe_alive_metric)
    result = UniverseHealth(universe_uuid=universe_uuid, universe_alive=True)
    for node in nodes:
        ip = node.cloud_info.private_ip
        tserver_alive = _alive(latest, ip, settings.tserver_http_port)
        master_alive = _alive(latest, ip, settings.master_http_port)
        node_alive = _alive(latest, ip, settings.node_exporter_port)
        result.nodes[node.node_name] = NodeHealth(
            tserver_alive=tserver_alive,
            master_alive=master_alive,
            node_status=NodeStatus.Running if node_alive else NodeStatus.Unreachable,
        )
        expected = [node_alive]
        if node.is_tserver:
            expected.append(tserver_alive)
        if node.is_master:
            expected.append(master_alive)
        if not all(expected):
            result.universe_alive = False
    if not result.nodes:
        result.universe_alive = False

    dead = sorted(
        name
        for name, health in result.nodes.items()
        if health.node_status == NodeStatus.Unreachable
    )
    _logger.debug(
        "health.aggregate",
        "Aggregated node liveness",
        universe_uuid=str(universe_uuid),
        nodes=len(result.nodes),
        series=len(latest),
        unreachable=dead,
        universe_alive=result.universe_alive,
    )
    record_health_aggregation(result="alive" if result.universe_alive else "degraded")
    return result


def get_universe_alive_status(
    universe: Universe,
    metrics_query: MetricsQuery,
    settings: Optional[Settings] = None,
) -> UniverseHealth:
    settings = settings or get_settings()
    snapshot = metrics_query.query(
        [settings.universe_alive_metric],
        {"universe_uuid": str(universe.universe_uuid)},
    )
    return aggregate(universe.universe_uuid, universe.get_nodes(), snapshot, settings)
