"""Dispatch and fulfillment settings, read from the environment."""

import os

from pydantic import BaseModel, Field


class DispatchConfig(BaseModel):
    max_distance_meters: float = Field(default=5000.0, gt=0)
    candidate_limit: int = Field(default=10, ge=1)
    average_speed_kmh: float = Field(default=30.0, gt=0)
    default_eta_minutes: float = Field(default=30.0, ge=0)
    max_redispatches: int = Field(default=1, ge=0)

    @classmethod
    def from_env(cls) -> "DispatchConfig":
        """Build the config from ``DISPATCH_*`` variables, falling back to defaults."""
        env_map = {
            "max_distance_meters": "DISPATCH_MAX_DISTANCE_METERS",
            "candidate_limit": "DISPATCH_CANDIDATE_LIMIT",
            "average_speed_kmh": "DISPATCH_AVERAGE_SPEED_KMH",
            "default_eta_minutes": "DISPATCH_DEFAULT_ETA_MINUTES",
            "max_redispatches": "DISPATCH_MAX_REDISPATCHES",
        }
        values = {field: os.environ[var] for field, var in env_map.items() if os.environ.get(var)}
        return cls(**values)
