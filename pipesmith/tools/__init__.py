"""Tools package — wrappers for external CLIs and HTTP APIs."""

from .shell import run, tool_available
from .build_info import write_build_info, read_build_info, tag_from_image
from .git_tools import get_git_info
from .kube_tools import Kubectl, install_kubeconfig
from .helm_tools import Helm, build_upgrade_args, read_chart, push_chartmuseum
from .smoke_tools import run_smoke_tests
from .security_tools import evaluate_gate, write_security_summary
from .build_tools import detect_build_tool, build_commands
from .test_tools import detect_test_framework, framework_commands
from .quality_tools import parse_jacoco, coverage_commands, lint_commands, sonar_command
from .slack_tools import build_payload, post_webhook

__all__ = [
    "run", "tool_available",
    "write_build_info", "read_build_info", "tag_from_image",
    "get_git_info",
    "Kubectl", "install_kubeconfig",
    "Helm", "build_upgrade_args", "read_chart", "push_chartmuseum",
    "run_smoke_tests",
    "evaluate_gate", "write_security_summary",
    "detect_build_tool", "build_commands",
    "detect_test_framework", "framework_commands",
    "parse_jacoco", "coverage_commands", "lint_commands", "sonar_command",
    "build_payload", "post_webhook",
]
