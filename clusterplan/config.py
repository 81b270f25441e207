from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_REPLICATION_FACTORS = [1, 3, 5, 7]


class Settings(BaseSettings):
    log_level: str = Field(default="INFO")
    log_file: str = Field(default="")

    allowed_replication_factors: List[int] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_REPLICATION_FACTORS)
    )
    default_node_prefix: str = Field(default="yb")

    master_http_port: int = Field(default=7000)
    tserver_http_port: int = Field(default=9000)
    node_exporter_port: int = Field(default=9300)
    universe_alive_metric: str = Field(default="node_up")

    model_config = SettingsConfigDict(
        env_prefix="CLUSTERPLAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_placement_settings(self) -> "Settings":
        issues: list[str] = []
        if not self.allowed_replication_factors:
            issues.append("ALLOWED_REPLICATION_FACTORS must not be empty.")
        for factor in self.allowed_replication_factors:
            if factor < 1:
                issues.append(f"Replication factor {factor} must be positive.")
            elif factor % 2 == 0:
                issues.append(f"Replication factor {factor} must be odd.")
        for name in ("master_http_port", "tserver_http_port", "node_exporter_port"):
            port = getattr(self, name)
            if port <= 0 or port > 65535:
                issues.append(f"{name.upper()} must be between 1 and 65535.")
        if not self.default_node_prefix.strip():
            issues.append("DEFAULT_NODE_PREFIX must not be blank.")
        if issues:
            raise ValueError(" ".join(issues))
        self.allowed_replication_factors = sorted(set(self.allowed_replication_factors))
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
