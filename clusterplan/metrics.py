from __future__ import annotations

from prometheus_client import Counter, generate_latest

_PLANNING_PASSES = Counter(
    "clusterplan_planning_passes_total",
    "Topology planning passes",
    labelnames=("result",),
)
_NODE_ACTIONS = Counter(
    "clusterplan_node_actions_total",
    "Node actions emitted by planning passes",
    labelnames=("action",),
)
_HEALTH_AGGREGATIONS = Counter(
    "clusterplan_health_aggregations_total",
    "Universe health aggregations",
    labelnames=("result",),
)
_UNIVERSE_UPDATES = Counter(
    "clusterplan_universe_updates_total",
    "Universe snapshot writes",
    labelnames=("result",),
)


def record_planning_pass(*, ok: bool) -> None:
    _PLANNING_PASSES.labels(result="ok" if ok else "error").inc()


def record_node_actions(*, action: str, count: int) -> None:
    if count > 0:
        _NODE_ACTIONS.labels(action=action).inc(count)


def record_health_aggregation(*, result: str) -> None:
    _HEALTH_AGGREGATIONS.labels(result=result).inc()


def record_universe_update(*, ok: bool) -> None:
    _UNIVERSE_UPDATES.labels(result="ok" if ok else "error").inc()


def render_metrics() -> bytes:
    return generate_latest()
