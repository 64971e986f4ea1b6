"""Deployment environment profiles (dev / stage / prod)."""

from typing import List
from pydantic import BaseModel, Field

from pipesmith.utils.exceptions import ConfigurationError


HEALTH_ENDPOINTS = [
    "/actuator/health",
    "/actuator/health/liveness",
    "/actuator/health/readiness",
]

_ALIASES = {
    "dev": "dev",
    "development": "dev",
    "stage": "stage",
    "staging": "stage",
    "prod": "prod",
    "production": "prod",
}


class EnvironmentProfile(BaseModel):
    """Defaults applied when the deploy settings leave a value unset."""

    name: str
    namespace: str
    rollout_timeout: str
    smoke_tests: bool
    smoke_endpoints: List[str] = Field(default_factory=lambda: list(HEALTH_ENDPOINTS))
    requires_approval: bool = False


PROFILES = {
    "dev": EnvironmentProfile(
        name="dev",
        namespace="dev",
        rollout_timeout="10m",
        smoke_tests=False,
    ),
    "stage": EnvironmentProfile(
        name="stage",
        namespace="staging",
        rollout_timeout="15m",
        smoke_tests=True,
    ),
    "prod": EnvironmentProfile(
        name="prod",
        namespace="production",
        rollout_timeout="20m",
        smoke_tests=True,
        smoke_endpoints=HEALTH_ENDPOINTS + ["/actuator/prometheus"],
        requires_approval=True,
    ),
}


def normalize_environment(value: str | None) -> str:
    """
    Map an ENVIRONMENT value onto dev / stage / prod.

    Raises:
        ConfigurationError: If the value is empty or not a known alias.
    """
    if not value or not value.strip():
        raise ConfigurationError("ENVIRONMENT is required (dev, stage, prod)", "ENVIRONMENT")

    key = value.strip().lower()
    if key not in _ALIASES:
        raise ConfigurationError(
            f"Invalid ENVIRONMENT: {value}. Must be dev, stage, or prod",
            "ENVIRONMENT",
            value,
        )
    return _ALIASES[key]


def get_profile(environment: str) -> EnvironmentProfile:
    """Return the profile for a raw or normalised environment name."""
    return PROFILES[normalize_environment(environment)]
