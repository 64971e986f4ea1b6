"""Configuration package."""

from .settings import (
    PipesmithSettings,
    DeploySettings,
    HelmSettings,
    SecuritySettings,
    DockerSettings,
    BuildSettings,
    TestingSettings,
    QualitySettings,
    SlackSettings,
    settings,
)

__all__ = [
    "PipesmithSettings", "DeploySettings", "HelmSettings", "SecuritySettings",
    "DockerSettings", "BuildSettings", "TestingSettings", "QualitySettings",
    "SlackSettings", "settings",
]
