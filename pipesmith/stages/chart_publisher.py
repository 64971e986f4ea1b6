"""Chart Publisher — lints, renders, packages and pushes a Helm chart."""

import os
from typing import Optional

from loguru import logger

from pipesmith.config import HelmSettings, settings
from pipesmith.models.reports import ChartInfo
from pipesmith.tools import shell
from pipesmith.tools.build_info import utc_timestamp, write_build_info
from pipesmith.tools.git_tools import get_git_info
from pipesmith.tools.helm_tools import Helm, oci_host, push_chartmuseum, read_chart, set_chart_version
from pipesmith.utils.exceptions import ChartError, ConfigurationError


VALUES_ENVIRONMENTS = ("dev", "stage", "staging", "prod", "production")


def _require_ok(result, message: str, step: str) -> None:
    if not result.ok:
        raise ChartError(f"{message}:\n{shell.tail(result.output, 30)}", step=step, returncode=result.returncode)


def publish_chart(helm_settings: Optional[HelmSettings] = None, working_dir: Optional[str] = None) -> ChartInfo:
    """
    Run the helm pipe: validate, render, package and push a chart.

    Steps:
    1. Read Chart.yaml (rewriting `version:` when CHART_VERSION is set)
    2. `helm lint` (when LINT_CHART)
    3. `helm template` with default values and every values-<env>.yaml present
    4. `helm dependency update` when the chart declares dependencies
    5. `helm package` + `helm repo index` (when PACKAGE_CHART)
    6. Push to an OCI registry or ChartMuseum (when PUSH_CHART and HELM_REGISTRY)
    7. Write build-info/helm-chart.txt

    Raises:
        ConfigurationError: If HELM_CHART_PATH is missing.
        ChartError: If any mandatory step fails.
    """
    hs = helm_settings or HelmSettings()
    cwd = os.path.abspath(working_dir or settings.WORKING_DIR)

    if not hs.HELM_CHART_PATH:
        raise ConfigurationError("HELM_CHART_PATH is required", "HELM_CHART_PATH")

    chart_path = hs.HELM_CHART_PATH
    chart_dir = os.path.join(cwd, chart_path)
    if not os.path.isdir(chart_dir):
        raise ChartError(f"Helm chart directory not found: {chart_path}", step="validate")

    chart = read_chart(chart_dir)
    if hs.CHART_VERSION:
        set_chart_version(chart_dir, hs.CHART_VERSION)
        chart["version"] = hs.CHART_VERSION

    info = ChartInfo(
        path=chart_path,
        name=str(chart["name"]),
        version=str(chart["version"]),
        app_version=str(chart["appVersion"]) if chart.get("appVersion") is not None else None,
        registry=hs.HELM_REGISTRY,
    )
    logger.info("⎈ Helm chart {} {} (app {})", info.name, info.version, info.app_version or "-")

    helm = Helm(cwd=cwd)

    # ── Lint ──
    if hs.LINT_CHART:
        _require_ok(helm.lint(chart_path), "Helm chart lint failed", "lint")
        logger.info("✓ Helm chart lint passed")
    else:
        logger.warning("Chart linting disabled - set LINT_CHART=true to enable")

    # ── Template ──
    _require_ok(helm.template(chart_path), "Default values validation failed", "template")
    logger.info("✓ Default values validation passed")
    for env in VALUES_ENVIRONMENTS:
        values_file = os.path.join(chart_path, f"values-{env}.yaml")
        if os.path.isfile(os.path.join(cwd, values_file)):
            _require_ok(helm.template(chart_path, values_file), f"{env} values validation failed", "template")
            logger.info("✓ {} values validation passed", env)

    # ── Dependencies ──
    if chart.get("dependencies"):
        _require_ok(helm.dependency_update(chart_path), "helm dependency update failed", "dependencies")
        logger.info("✓ Dependencies updated")

    # ── Package ──
    if hs.PACKAGE_CHART:
        os.makedirs(os.path.join(cwd, hs.PACKAGE_DIR), exist_ok=True)
        _require_ok(helm.package(chart_path, hs.PACKAGE_DIR), "helm package failed", "package")

        package = os.path.join(hs.PACKAGE_DIR, f"{info.name}-{info.version}.tgz")
        if not os.path.isfile(os.path.join(cwd, package)):
            raise ChartError(f"Chart package not found: {package}", step="package")
        info.package = package
        logger.info("✓ Chart packaged successfully: {}", package)

        repo_url = hs.HELM_REGISTRY or hs.DEFAULT_REPO_URL
        _require_ok(helm.repo_index(hs.PACKAGE_DIR, repo_url), "helm repo index failed", "package")
        logger.info("✓ Repository index generated")
    else:
        logger.warning("Chart packaging disabled - set PACKAGE_CHART=true to enable")

    # ── Push ──
    if hs.PUSH_CHART:
        if not hs.HELM_REGISTRY:
            logger.warning("HELM_REGISTRY not set - skipping push")
        else:
            _push(helm, hs, info, cwd)
    else:
        logger.warning("Chart push disabled - set PUSH_CHART=true to enable")

    commit, branch = get_git_info(cwd)
    write_build_info(
        "helm-chart.txt",
        {
            "HELM_CHART_PATH": chart_path,
            "HELM_CHART_NAME": info.name,
            "HELM_CHART_VERSION": info.version,
            "HELM_APP_VERSION": info.app_version,
            "HELM_CHART_PACKAGE": info.package,
            "HELM_REGISTRY": hs.HELM_REGISTRY,
            "GIT_COMMIT": commit,
            "GIT_BRANCH": branch,
            "BUILD_DATE": utc_timestamp(),
        },
        cwd,
    )
    logger.info("✓ Helm pipe completed successfully")
    return info


def _push(helm: Helm, hs: HelmSettings, info: ChartInfo, cwd: str) -> None:
    if not info.package:
        raise ChartError("Nothing to push - enable PACKAGE_CHART", step="push")

    registry = hs.HELM_REGISTRY
    has_credentials = bool(hs.HELM_REGISTRY_USERNAME and hs.HELM_REGISTRY_PASSWORD)

    if registry.startswith("oci://"):
        if has_credentials:
            host = oci_host(registry)
            logger.info("Logging in to OCI registry {}", host)
            _require_ok(
                helm.registry_login(host, hs.HELM_REGISTRY_USERNAME, hs.HELM_REGISTRY_PASSWORD),
                "Helm registry login failed",
                "push",
            )
        else:
            logger.warning("No credentials provided - assuming registry is already authenticated")
        _require_ok(helm.push(info.package, registry), "helm push failed", "push")
        logger.info("✓ Chart pushed to OCI registry {}", registry)
    else:
        push_chartmuseum(
            os.path.join(cwd, info.package),
            registry,
            hs.HELM_REGISTRY_USERNAME,
            hs.HELM_REGISTRY_PASSWORD,
        )
    info.pushed = True
