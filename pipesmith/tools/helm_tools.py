"""Helm tools — helm CLI wrappers, Chart.yaml access and chart registry pushes."""

import json
import os
import re
from typing import Dict, List, Optional
from urllib.parse import urlparse

import httpx
import yaml
from loguru import logger

from pipesmith.models.reports import CommandResult
from pipesmith.tools import shell
from pipesmith.utils.exceptions import ChartError


REMOTE_CHART_PREFIXES = ("oci://", "http://", "https://")


def is_remote_chart(chart: str) -> bool:
    return chart.startswith(REMOTE_CHART_PREFIXES)


def build_upgrade_args(
    release: str,
    chart: str,
    namespace: str,
    values_file: str,
    timeout: str,
    environment: str,
    wait: bool = True,
    dry_run: bool = False,
    image_tag: Optional[str] = None,
    labels: Optional[Dict[str, str]] = None,
    canary_weight: Optional[int] = None,
) -> List[str]:
    """
    Build the argv of a `helm upgrade --install` call.

    Args:
        release: Helm release name.
        chart: Local chart directory or oci:// / http(s):// reference.
        namespace: Target namespace.
        values_file: Values file passed with --values.
        timeout: Helm duration, e.g. '10m'.
        environment: Normalised environment, set as `environment=<env>`.
        wait: Add --wait --atomic.
        dry_run: Add --dry-run --debug.
        image_tag: Overrides image.tag when set.
        labels: Rendered with --set-string labels.<key>=<value>.
        canary_weight: Enables canary with the given weight when not None.

    Returns:
        argv list starting with 'helm'.
    """
    args = [
        "helm", "upgrade", release, chart,
        "--install",
        "--namespace", namespace,
        "--create-namespace",
        "--values", values_file,
        "--timeout", timeout,
        "--cleanup-on-fail",
    ]
    if wait:
        args += ["--wait", "--atomic"]
    if dry_run:
        args += ["--dry-run", "--debug"]
    if image_tag:
        args += ["--set", f"image.tag={image_tag}"]

    args += ["--set", f"environment={environment}"]
    for key, value in (labels or {}).items():
        args += ["--set-string", f"labels.{key}={value}"]

    if canary_weight is not None:
        args += ["--set", "canary.enabled=true", "--set", f"canary.weight={canary_weight}"]
    return args


class Helm:
    """helm CLI, optionally bound to a kubeconfig file."""

    def __init__(self, kubeconfig: Optional[str] = None, cwd: Optional[str] = None):
        self.kubeconfig = kubeconfig
        self.cwd = cwd

    def run(self, *args: str, input_text: Optional[str] = None) -> CommandResult:
        env = {"KUBECONFIG": self.kubeconfig} if self.kubeconfig else None
        return shell.run(["helm", *args], cwd=self.cwd, env=env, input_text=input_text)

    def run_argv(self, argv: List[str]) -> CommandResult:
        """Run a prebuilt argv (first element 'helm')."""
        return self.run(*argv[1:])

    def lint(self, chart: str, values_file: Optional[str] = None) -> CommandResult:
        args = ["lint", chart]
        if values_file:
            args += ["--values", values_file]
        return self.run(*args)

    def template(self, chart: str, values_file: Optional[str] = None) -> CommandResult:
        args = ["template", "test", chart]
        if values_file:
            args += ["--values", values_file]
        return self.run(*args)

    def current_revision(self, release: str, namespace: str) -> int:
        """Latest revision of a release; 0 when the release does not exist."""
        result = self.run("history", release, "-n", namespace, "--max", "1", "-o", "json")
        if not result.ok:
            return 0
        try:
            history = json.loads(result.stdout or "[]")
        except json.JSONDecodeError:
            logger.warning("Failed to parse helm history JSON output")
            return 0
        if not history:
            return 0
        return int(history[-1].get("revision", 0))

    def rollback(self, release: str, revision: int, namespace: str, timeout: str) -> CommandResult:
        return self.run(
            "rollback", release, str(revision), "-n", namespace, "--wait", "--timeout", timeout
        )

    def status(self, release: str, namespace: str) -> CommandResult:
        return self.run("status", release, "-n", namespace)

    def dependency_update(self, chart: str) -> CommandResult:
        return self.run("dependency", "update", chart)

    def package(self, chart: str, destination: str) -> CommandResult:
        return self.run("package", chart, "--destination", destination)

    def repo_index(self, directory: str, url: str) -> CommandResult:
        return self.run("repo", "index", directory, "--url", url)

    def registry_login(self, host: str, username: str, password: str) -> CommandResult:
        return self.run(
            "registry", "login", host, "--username", username, "--password-stdin",
            input_text=password,
        )

    def push(self, package_path: str, registry: str) -> CommandResult:
        return self.run("push", package_path, registry)


# ──────────────────────────── Chart.yaml ────────────────────────────


def read_chart(chart_dir: str) -> dict:
    """
    Load Chart.yaml from a chart directory.

    Raises:
        ChartError: If Chart.yaml is missing or lacks name/version.
    """
    chart_file = os.path.join(chart_dir, "Chart.yaml")
    if not os.path.isfile(chart_file):
        raise ChartError(f"Chart.yaml not found in {chart_dir}", step="validate")

    with open(chart_file, "r") as f:
        data = yaml.safe_load(f) or {}

    if not data.get("name") or not data.get("version"):
        raise ChartError(f"Chart.yaml in {chart_dir} must declare name and version", step="validate")
    return data


def set_chart_version(chart_dir: str, version: str) -> None:
    """Rewrite the top-level `version:` line of Chart.yaml, keeping the rest intact."""
    chart_file = os.path.join(chart_dir, "Chart.yaml")
    with open(chart_file, "r") as f:
        content = f.read()

    updated, count = re.subn(r"(?m)^version:.*$", f"version: {version}", content, count=1)
    if count == 0:
        raise ChartError("Chart.yaml has no version field to update", step="version")

    with open(chart_file, "w") as f:
        f.write(updated)
    logger.info("Chart version set to {}", version)


# ──────────────────────────── Registries ────────────────────────────


def oci_host(registry: str) -> str:
    """'oci://registry.example.com/charts' -> 'registry.example.com'."""
    return urlparse(registry).netloc


def push_chartmuseum(
    package_path: str,
    registry: str,
    username: Optional[str] = None,
    password: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> None:
    """
    Upload a packaged chart to a ChartMuseum-compatible `/api/charts` endpoint.

    Raises:
        ChartError: On a non-2xx response or a transport error.
    """
    url = registry.rstrip("/") + "/api/charts"
    auth = (username, password) if username and password else None
    owns_client = client is None
    client = client or httpx.Client(timeout=60.0)

    try:
        with open(package_path, "rb") as f:
            response = client.post(url, content=f.read(), auth=auth)
    except httpx.HTTPError as e:
        raise ChartError(f"Chart upload to {url} failed: {e}", step="push") from e
    finally:
        if owns_client:
            client.close()

    if response.status_code >= 300:
        raise ChartError(
            f"Chart upload to {url} failed: HTTP {response.status_code} {response.text[:200]}",
            step="push",
            returncode=response.status_code,
        )
    logger.info("Chart pushed to {}", url)
