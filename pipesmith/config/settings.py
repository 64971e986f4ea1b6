"""pipesmith settings — Pydantic BaseSettings driven by environment variables.

Variable names follow the pipe contract (no prefix), so a pipeline step that
used to export ``NAMESPACE`` or ``HELM_CHART_PATH`` for a shell pipe can call
the matching pipesmith command unchanged.
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


_ENV_CONFIG = SettingsConfigDict(
    env_file=".env",
    case_sensitive=False,
    extra="ignore",
)


class PipesmithSettings(BaseSettings):
    """Knobs shared by every pipe."""

    DEBUG: bool = False
    VERBOSE: bool = False

    WORKING_DIR: str = "."
    """Directory every pipe runs in."""

    BUILD_INFO_DIR: str = "build-info"
    """Where KEY=VALUE hand-off files between pipes are written."""

    REPORTS_DIR: str = "security-reports"

    COMMAND_TIMEOUT_SECONDS: int = 1800
    """Upper bound for any single external command."""

    # ===== CI metadata (Bitbucket) =====
    BITBUCKET_COMMIT: Optional[str] = None
    BITBUCKET_BRANCH: Optional[str] = None
    BITBUCKET_TAG: Optional[str] = None
    BITBUCKET_WORKSPACE: Optional[str] = None
    BITBUCKET_REPO_SLUG: Optional[str] = None
    BITBUCKET_BUILD_NUMBER: Optional[str] = None
    BITBUCKET_COMMIT_AUTHOR_DISPLAYNAME: Optional[str] = None

    model_config = _ENV_CONFIG


class DeploySettings(BaseSettings):
    """Deploy pipe: Helm release into a Kubernetes namespace."""

    ENVIRONMENT: Optional[str] = None
    """dev | stage | prod (aliases: development, staging, production)."""

    NAMESPACE: Optional[str] = None
    """Defaults per environment: dev, staging, production."""

    KUBECONFIG: Optional[str] = None
    """Base64-encoded kubeconfig content, or a path to an existing kubeconfig."""

    KUBECONFIG_PATH: str = "~/.kube/config"
    """Where a decoded kubeconfig is written."""

    RELEASE_NAME: str = "app"
    HELM_CHART_PATH: str = "./helm-chart"
    VALUES_FILE: Optional[str] = None
    IMAGE_TAG: Optional[str] = None

    WAIT_FOR_ROLLOUT: bool = True
    ROLLOUT_TIMEOUT: Optional[str] = None
    """Helm / rollout timeout, e.g. '10m'. Defaults per environment."""

    ROLLBACK_TIMEOUT: str = "10m"
    DRY_RUN: bool = False

    # ===== Smoke tests =====
    SMOKE_TESTS: Optional[bool] = None
    """Defaults per environment: off for dev, on for stage/prod."""

    SMOKE_ENDPOINTS: Optional[str] = None
    """Comma-separated endpoint paths; defaults to the actuator health probes."""

    LOCAL_PORT: int = 8080
    PORT_FORWARD_WAIT_SECONDS: float = 5.0
    SMOKE_TIMEOUT_SECONDS: float = 10.0

    # ===== Canary =====
    CANARY_ENABLED: bool = False
    CANARY_WEIGHT: int = 10

    AUTO_APPROVE: bool = False
    """Skip the interactive confirmation for production deploys."""

    model_config = _ENV_CONFIG


class HelmSettings(BaseSettings):
    """Helm pipe: lint, template, package and push a chart."""

    HELM_CHART_PATH: Optional[str] = None
    CHART_VERSION: Optional[str] = None
    LINT_CHART: bool = True
    PACKAGE_CHART: bool = True
    PUSH_CHART: bool = True
    PACKAGE_DIR: str = "helm-packages"

    HELM_REGISTRY: Optional[str] = None
    """oci://host/path for OCI registries, otherwise a ChartMuseum base URL."""

    HELM_REGISTRY_USERNAME: Optional[str] = None
    HELM_REGISTRY_PASSWORD: Optional[str] = None
    DEFAULT_REPO_URL: str = "http://charts.example.com"

    model_config = _ENV_CONFIG


class SecuritySettings(BaseSettings):
    """Security pipe: secrets, SCA, SAST, SBOM, IaC, Dockerfile and image scans."""

    SECRETS_SCAN: bool = True
    SCA_SCAN: bool = True
    SAST_SCAN: bool = False
    SBOM_GENERATE: bool = True
    IAC_SCAN: bool = False
    DOCKERFILE_SCAN: bool = False
    CONTAINER_SCAN: bool = False
    CONTAINER_IMAGE: Optional[str] = None

    FAIL_ON_HIGH: bool = False
    FAIL_ON_CRITICAL: bool = True

    HELM_CHART_PATH: str = "./helm-chart"
    DOCKERFILE_PATH: str = "./Dockerfile"

    model_config = _ENV_CONFIG


class DockerSettings(BaseSettings):
    """Docker pipe: build, scan and push an image."""

    DOCKER_REGISTRY: Optional[str] = None
    DOCKER_REPOSITORY: Optional[str] = None
    DOCKER_USERNAME: Optional[str] = None
    DOCKER_PASSWORD: Optional[str] = None
    DOCKERFILE_PATH: str = "./Dockerfile"
    IMAGE_TAG: Optional[str] = None

    BUILD_ARGS: Optional[str] = None
    """Comma-separated KEY=VALUE build args."""

    SCAN_IMAGE: bool = True
    PUSH_IMAGE: bool = True
    TRIVY_SEVERITY: str = "CRITICAL,HIGH,MEDIUM"
    TRIVY_EXIT_CODE: int = 0

    model_config = _ENV_CONFIG


class BuildSettings(BaseSettings):
    """Build pipe."""

    BUILD_TOOL: Optional[str] = None
    BUILD_COMMAND: Optional[str] = None
    BUILD_ARGS: Optional[str] = None

    model_config = _ENV_CONFIG


class TestingSettings(BaseSettings):
    """Test pipe: unit and integration tests."""

    TEST_TOOL: Optional[str] = None
    TEST_COMMAND: Optional[str] = None
    TEST_ARGS: Optional[str] = None
    INTEGRATION_TESTS: bool = False
    SKIP_TESTS: bool = False
    COVERAGE_ENABLED: bool = False
    DOCKER_REQUIRED: bool = False

    model_config = _ENV_CONFIG


class QualitySettings(BaseSettings):
    """Quality pipe: coverage gate, linting and SonarQube."""

    QUALITY_COMMAND: Optional[str] = None
    COVERAGE_ENABLED: bool = True
    COVERAGE_THRESHOLD: float = 80.0
    FAIL_ON_LOW_COVERAGE: bool = False
    LINT_ENABLED: bool = True

    SONAR_ENABLED: bool = False
    SONAR_TOKEN: Optional[str] = None
    SONAR_HOST_URL: str = "https://sonarcloud.io"
    SONAR_PROJECT_KEY: Optional[str] = None
    SONAR_ORGANIZATION: Optional[str] = None

    model_config = _ENV_CONFIG


class SlackSettings(BaseSettings):
    """Slack notification pipe."""

    SLACK_WEBHOOK_URL: Optional[str] = None
    MESSAGE: str = "Pipeline completed successfully"
    TITLE: str = "Bitbucket Pipeline"
    STATUS: str = "success"
    """success | warning | error | failure | info."""

    NOTIFICATION_COLOR: Optional[str] = None
    MENTION_CHANNEL: Optional[str] = None
    """'channel' or 'here'."""

    MENTION_USERS: Optional[str] = None
    """Comma-separated Slack user ids."""

    INCLUDE_COMMIT_INFO: bool = True
    INCLUDE_BUILD_INFO: bool = True
    ENVIRONMENT: Optional[str] = None

    CUSTOM_FIELDS: Optional[str] = None
    """JSON object rendered as extra fields."""

    THREAD_TS: Optional[str] = None

    model_config = _ENV_CONFIG


# Singleton instance, import this everywhere
settings = PipesmithSettings()
