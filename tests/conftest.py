"""Shared fixtures: every test runs in its own directory with a clean pipe environment."""

import base64

import pytest

from pipesmith.config import settings
from pipesmith.models.reports import CommandResult


PIPE_VARIABLES = (
    "ENVIRONMENT", "NAMESPACE", "KUBECONFIG", "RELEASE_NAME", "HELM_CHART_PATH", "VALUES_FILE",
    "IMAGE_TAG", "DRY_RUN", "AUTO_APPROVE", "SMOKE_TESTS", "SMOKE_ENDPOINTS", "CANARY_ENABLED",
    "DOCKER_REGISTRY", "DOCKER_REPOSITORY", "BUILD_TOOL", "BUILD_COMMAND", "TEST_TOOL", "TEST_COMMAND",
    "SLACK_WEBHOOK_URL", "SONAR_TOKEN", "SONAR_ENABLED", "HELM_REGISTRY", "CHART_VERSION",
    "BITBUCKET_COMMIT", "BITBUCKET_BRANCH",
)

SAMPLE_KUBECONFIG = """apiVersion: v1
kind: Config
current-context: test
"""


@pytest.fixture(autouse=True)
def isolated_workspace(tmp_path, monkeypatch):
    """Run in tmp_path with no pipe variables leaking in from the host."""
    for name in PIPE_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(settings, "WORKING_DIR", str(tmp_path))
    monkeypatch.setattr(settings, "VERBOSE", False)
    monkeypatch.setattr(settings, "BITBUCKET_COMMIT", None)
    monkeypatch.setattr(settings, "BITBUCKET_BRANCH", None)
    return tmp_path


@pytest.fixture
def kubeconfig_b64():
    return base64.b64encode(SAMPLE_KUBECONFIG.encode()).decode()


def ok(stdout: str = "", args=None) -> CommandResult:
    return CommandResult(args=args or [], returncode=0, stdout=stdout)


def failed(stderr: str = "boom", returncode: int = 1, stdout: str = "") -> CommandResult:
    return CommandResult(returncode=returncode, stdout=stdout, stderr=stderr)
