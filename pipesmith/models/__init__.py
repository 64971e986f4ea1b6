"""Data models package."""

from .reports import (
    CommandResult,
    SecurityFinding,
    ScanOutcome,
    SecurityReport,
    SmokeCheck,
    SmokeTestReport,
    DeployResult,
    ChartInfo,
    ImageInfo,
    BuildRun,
    TestRun,
    CoverageReport,
    QualityReport,
)
from .environments import EnvironmentProfile, normalize_environment, get_profile

__all__ = [
    "CommandResult", "SecurityFinding", "ScanOutcome", "SecurityReport",
    "SmokeCheck", "SmokeTestReport", "DeployResult", "ChartInfo", "ImageInfo",
    "BuildRun", "TestRun", "CoverageReport", "QualityReport",
    "EnvironmentProfile", "normalize_environment", "get_profile",
]
