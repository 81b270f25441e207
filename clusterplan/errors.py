from __future__ import annotations


class ClusterPlanError(RuntimeError):
    def __init__(self, action: str, detail: str) -> None:
        super().__init__(f"{action}: {detail}")
        self.action = action
        self.detail = detail


class InvalidIntent(ClusterPlanError):
    pass


class InconsistentState(ClusterPlanError):
    pass


class UpstreamQueryError(ClusterPlanError):
    pass


class HostNotFound(ClusterPlanError):
    pass


class UnknownInstanceType(ClusterPlanError):
    pass


class UniverseNotFound(ClusterPlanError):
    pass


class VersionConflict(ClusterPlanError):
    pass
