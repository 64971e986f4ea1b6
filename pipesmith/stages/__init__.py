"""Stages package — one entry point per pipe."""

from .deployer import deploy_result_from_state
from .chart_publisher import publish_chart
from .security_sentinel import run_security_scan
from .image_builder import build_image
from .build_runner import run_build, run_tests
from .quality_gate import run_quality
from .notifier import send_slack_notification

__all__ = [
    "deploy_result_from_state",
    "publish_chart",
    "run_security_scan",
    "build_image",
    "run_build",
    "run_tests",
    "run_quality",
    "send_slack_notification",
]
