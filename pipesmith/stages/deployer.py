"""Deployer — LangGraph nodes that roll a Helm release out to Kubernetes.

Each node performs one step of the deploy sequence and returns a state
update. A node whose step fails sets ``failed`` and appends to ``errors``;
the workflow gates then route straight to ``fail``/``summarize`` so no later
cluster-mutating step runs.
"""

import functools
import os
from typing import Callable

from loguru import logger

from pipesmith.graph.state import DeployState
from pipesmith.models.environments import PROFILES, normalize_environment
from pipesmith.models.reports import DeployResult, SmokeTestReport
from pipesmith.tools import shell
from pipesmith.tools.build_info import read_build_info, tag_from_image, utc_timestamp, write_build_info
from pipesmith.tools.git_tools import get_git_info
from pipesmith.tools.helm_tools import Helm, build_upgrade_args, is_remote_chart
from pipesmith.tools.kube_tools import Kubectl, install_kubeconfig
from pipesmith.tools.smoke_tools import run_smoke_tests
from pipesmith.utils.exceptions import ConfigurationError, DeployError, PipesmithError


def deploy_step(name: str) -> Callable:
    """
    Wrap a node so a raised error becomes a recorded failure.

    The error is logged and stored in ``errors``; the graph then routes to
    ``fail`` instead of the next step.
    """

    def decorator(fn: Callable[[DeployState], dict]) -> Callable[[DeployState], dict]:
        @functools.wraps(fn)
        def wrapper(state: DeployState) -> dict:
            try:
                update = fn(state)
            except PipesmithError as e:
                logger.error("✗ {} failed: {}", name, e)
                return {"failed": True, "errors": [f"{name}: {e}"], "current_stage": name}
            except Exception as e:
                logger.exception("✗ {} failed unexpectedly", name)
                return {"failed": True, "errors": [f"{name}: {e}"], "current_stage": name}
            update.setdefault("current_stage", name)
            return update

        return wrapper

    return decorator


def _path(state: DeployState, path: str) -> str:
    return path if os.path.isabs(path) else os.path.join(state["working_dir"], path)


def _kubectl(state: DeployState) -> Kubectl:
    return Kubectl(state["kubeconfig"], cwd=state["working_dir"])


def _helm(state: DeployState) -> Helm:
    return Helm(state["kubeconfig"], cwd=state["working_dir"])


# ──────────────────────────── Steps ────────────────────────────


@deploy_step("prepare")
def prepare_node(state: DeployState) -> dict:
    """
    Validate the deploy settings and resolve per-environment defaults.

    Raises:
        ConfigurationError: For a missing/unknown ENVIRONMENT, or an
            unapproved production deploy.
    """
    s = state["settings"]
    environment = normalize_environment(s.ENVIRONMENT)
    profile = PROFILES[environment]

    if profile.requires_approval and not s.AUTO_APPROVE and not s.DRY_RUN:
        raise ConfigurationError(
            "Production deploys must be approved (confirm interactively or set AUTO_APPROVE=true)",
            "AUTO_APPROVE",
        )

    chart = s.HELM_CHART_PATH or "./helm-chart"
    values_file = s.VALUES_FILE or f"{chart.rstrip('/')}/values-{environment}.yaml"

    endpoints = [e.strip() for e in (s.SMOKE_ENDPOINTS or "").split(",") if e.strip()]
    if s.SMOKE_ENDPOINTS and not endpoints:
        logger.warning("SMOKE_ENDPOINTS lists no paths, using the {} defaults", environment)
    endpoints = endpoints or list(profile.smoke_endpoints)

    git_commit, git_branch = get_git_info(state["working_dir"])

    update = {
        "environment": environment,
        "namespace": s.NAMESPACE or profile.namespace,
        "release": s.RELEASE_NAME or "app",
        "chart": chart,
        "values_file": values_file,
        "image_tag": s.IMAGE_TAG,
        "rollout_timeout": s.ROLLOUT_TIMEOUT or profile.rollout_timeout,
        "rollback_timeout": s.ROLLBACK_TIMEOUT,
        "dry_run": s.DRY_RUN,
        "wait_for_rollout": s.WAIT_FOR_ROLLOUT,
        "smoke_tests": profile.smoke_tests if s.SMOKE_TESTS is None else s.SMOKE_TESTS,
        "smoke_endpoints": endpoints,
        "canary_weight": s.CANARY_WEIGHT if s.CANARY_ENABLED else None,
        "git_commit": git_commit,
        "git_branch": git_branch,
    }

    logger.info(
        "🚀 Deploying release={} env={} namespace={} chart={}",
        update["release"], environment, update["namespace"], chart,
    )
    if s.DRY_RUN:
        logger.warning("DRY RUN MODE - No actual changes will be made")
    return update


@deploy_step("kubeconfig")
def kubeconfig_node(state: DeployState) -> dict:
    s = state["settings"]
    return {"kubeconfig": install_kubeconfig(s.KUBECONFIG, s.KUBECONFIG_PATH)}


@deploy_step("verify_cluster")
def verify_cluster_node(state: DeployState) -> dict:
    kubectl = _kubectl(state)
    if not kubectl.cluster_reachable():
        raise DeployError(
            "Cannot connect to Kubernetes cluster. Please verify your KUBECONFIG is correct",
            step="verify_cluster",
        )
    cluster = kubectl.current_context()
    logger.info("✓ Connected to cluster: {}", cluster)
    return {"cluster": cluster}


@deploy_step("namespace")
def namespace_node(state: DeployState) -> dict:
    """Ensure the namespace exists and carries the environment label (skipped on dry run)."""
    kubectl = _kubectl(state)
    namespace = state["namespace"]

    if kubectl.namespace_exists(namespace):
        logger.info("Namespace '{}' already exists", namespace)
    elif state["dry_run"]:
        logger.info("DRY RUN: Would create namespace '{}'", namespace)
    else:
        result = kubectl.create_namespace(namespace)
        if not result.ok:
            raise DeployError(
                f"Failed to create namespace {namespace}: {result.stderr.strip()}",
                step="namespace",
                returncode=result.returncode,
            )
        logger.info("✓ Namespace '{}' created", namespace)

    if not state["dry_run"]:
        labelled = kubectl.label_namespace(namespace, environment=state["environment"])
        if not labelled.ok:
            logger.warning("Could not label namespace {}: {}", namespace, labelled.stderr.strip())
    return {}


@deploy_step("load_build_info")
def load_build_info_node(state: DeployState) -> dict:
    """Pick up the image tag written by the docker pipe when none was given."""
    if state.get("image_tag"):
        return {}

    info = read_build_info("docker-image.txt", state["working_dir"])
    image = info.get("DOCKER_IMAGE")
    if not image:
        return {}

    tag = tag_from_image(image)
    if tag:
        logger.info("Using image tag from build: {}", tag)
    return {"image_tag": tag}


@deploy_step("validate_chart")
def validate_chart_node(state: DeployState) -> dict:
    chart = state["chart"]
    local_chart = _path(state, chart)

    if not os.path.isdir(local_chart) and not is_remote_chart(chart):
        raise DeployError(f"Helm chart not found: {chart}", step="validate_chart")

    if os.path.isdir(local_chart):
        lint = _helm(state).lint(chart, state["values_file"])
        if lint.ok:
            logger.info("✓ Helm chart validation passed")
        else:
            logger.warning("Helm chart validation had warnings:\n{}", shell.tail(lint.output))

    if not os.path.isfile(_path(state, state["values_file"])):
        raise DeployError(f"Values file not found: {state['values_file']}", step="validate_chart")

    logger.info("✓ Chart and values file validated")
    return {}


@deploy_step("record_revision")
def record_revision_node(state: DeployState) -> dict:
    revision = _helm(state).current_revision(state["release"], state["namespace"])
    logger.info("Current revision of {}: {}", state["release"], revision)
    return {"previous_revision": revision}


@deploy_step("helm_upgrade")
def helm_upgrade_node(state: DeployState) -> dict:
    """Run `helm upgrade --install`; --atomic has already rolled back on failure."""
    argv = build_upgrade_args(
        release=state["release"],
        chart=state["chart"],
        namespace=state["namespace"],
        values_file=state["values_file"],
        timeout=state["rollout_timeout"],
        environment=state["environment"],
        wait=state["wait_for_rollout"],
        dry_run=state["dry_run"],
        image_tag=state.get("image_tag"),
        labels={
            "deployedBy": "pipesmith",
            "deployedAt": utc_timestamp(),
            "gitCommit": state["git_commit"],
            "gitBranch": state["git_branch"],
        },
        canary_weight=state.get("canary_weight"),
    )
    if state.get("image_tag"):
        logger.info("Overriding image tag: {}", state["image_tag"])

    result = _helm(state).run_argv(argv)
    if not result.ok:
        raise DeployError(
            f"helm upgrade failed: {shell.tail(result.output, 20)}",
            step="helm_upgrade",
            returncode=result.returncode,
        )

    if state["dry_run"]:
        logger.info("✓ Dry-run deployment completed successfully")
    else:
        logger.info("✓ Deployment completed successfully")
    return {}


@deploy_step("rollout")
def rollout_node(state: DeployState) -> dict:
    """Wait for every deployment of the release; dump recent events on the first failure."""
    if state["dry_run"] or not state["wait_for_rollout"]:
        logger.info("Skipping rollout wait")
        return {}

    kubectl = _kubectl(state)
    deployments = kubectl.list_names("deployments", state["namespace"], state["release"])
    if not deployments:
        logger.info("No deployments found for release {}", state["release"])
        return {}

    for deployment in deployments:
        logger.info("Waiting for {}...", deployment)
        result = kubectl.rollout_status(deployment, state["namespace"], state["rollout_timeout"])
        if not result.ok:
            events = kubectl.recent_events(state["namespace"])
            logger.warning("Recent events:\n{}", events)
            raise DeployError(f"Rollout failed for {deployment}", step="rollout", returncode=result.returncode)
        logger.info("✓ Rollout completed for {}", deployment)
    return {}


@deploy_step("smoke_test")
def smoke_test_node(state: DeployState) -> dict:
    """
    Port-forward to the release's first service and probe its endpoints.

    A failed probe is not a node failure: the report is stored and the
    workflow decides whether to roll back.
    """
    if state["dry_run"] or not state["smoke_tests"]:
        logger.info("Skipping smoke tests")
        return {"smoke_report": SmokeTestReport(skipped=True).model_dump()}

    s = state["settings"]
    kubectl = _kubectl(state)
    service = kubectl.first_service(state["namespace"], state["release"])
    if service is None:
        report = SmokeTestReport(error=f"No service found for release {state['release']}")
        logger.error("✗ {}", report.error)
        return {"smoke_report": report.model_dump()}

    name, port = service
    logger.info("🧪 Running smoke tests against service/{} (port {})", name, port)
    try:
        with kubectl.port_forward(
            name, state["namespace"], s.LOCAL_PORT, port, wait_seconds=s.PORT_FORWARD_WAIT_SECONDS
        ) as base_url:
            checks = run_smoke_tests(base_url, state["smoke_endpoints"], timeout=s.SMOKE_TIMEOUT_SECONDS)
    except RuntimeError as e:
        report = SmokeTestReport(service=name, error=str(e))
        logger.error("✗ {}", e)
        return {"smoke_report": report.model_dump()}

    report = SmokeTestReport(service=name, checks=checks)
    if report.passed:
        logger.info("✓ All smoke tests passed")
    else:
        logger.error("✗ Smoke tests failed")
    return {"smoke_report": report.model_dump()}


@deploy_step("rollback")
def rollback_node(state: DeployState) -> dict:
    """Roll back to the recorded revision after failed smoke tests; the deploy still fails."""
    revision = state.get("previous_revision", 0)
    error = "Smoke tests failed"

    if revision <= 0:
        logger.warning("No previous revision to roll back to")
        return {"failed": True, "errors": [error]}

    logger.warning("Rolling back {} to revision {}...", state["release"], revision)
    result = _helm(state).rollback(state["release"], revision, state["namespace"], state["rollback_timeout"])
    if not result.ok:
        return {
            "failed": True,
            "errors": [error, f"rollback to revision {revision} failed: {shell.tail(result.output, 10)}"],
        }

    logger.info("✓ Rolled back to revision {}", revision)
    return {"failed": True, "rolled_back": True, "errors": [f"{error}; rolled back to revision {revision}"]}


@deploy_step("inspect")
def inspect_node(state: DeployState) -> dict:
    """Log release resources and Helm status; tail logs of a broken pod. Informational only."""
    if state["dry_run"]:
        return {}

    kubectl = _kubectl(state)
    namespace, release = state["namespace"], state["release"]
    selector = Kubectl.release_selector(release)

    for kind in ("deployments", "pods", "service", "ingress"):
        listing = kubectl.run("get", kind, "-n", namespace, "-l", selector)
        logger.info("{}:\n{}", kind, listing.stdout.strip() or f"No {kind} found")

    status = _helm(state).status(release, namespace)
    logger.info("Helm release status:\n{}", status.output)

    broken = [(pod, phase) for pod, phase in kubectl.pod_phases(namespace, release) if phase != "Running"]
    if any(phase in ("Failed", "CrashLoopBackOff") for _, phase in broken):
        pod = broken[0][0]
        logger.warning("Some pods are not running properly. Logs from {}:\n{}", pod, kubectl.pod_logs(pod, namespace))
    return {}


@deploy_step("record")
def record_node(state: DeployState) -> dict:
    write_build_info(
        "deployment.txt",
        {
            "ENVIRONMENT": state["environment"],
            "NAMESPACE": state["namespace"],
            "RELEASE_NAME": state["release"],
            "HELM_CHART_PATH": state["chart"],
            "VALUES_FILE": state["values_file"],
            "IMAGE_TAG": state.get("image_tag"),
            "GIT_COMMIT": state["git_commit"],
            "GIT_BRANCH": state["git_branch"],
            "DEPLOYMENT_DATE": utc_timestamp(),
            "CLUSTER": state.get("cluster"),
            "DRY_RUN": str(state["dry_run"]).lower(),
            "PREVIOUS_REVISION": state.get("previous_revision", 0),
        },
        state["working_dir"],
    )
    return {}


def fail_node(state: DeployState) -> dict:
    """Mark the deploy as failed after a step error."""
    logger.error("💥 Deployment failed at step '{}'", state.get("current_stage", "unknown"))
    return {"status": "rolled_back" if state.get("rolled_back") else "failed"}


def summarize_node(state: DeployState) -> dict:
    """Build the DeployResult and its Markdown summary."""
    result = deploy_result_from_state(state)
    summary = result.to_markdown()
    logger.info("📋 Deployment {}: {}", result.status, result.release or "unknown release")
    return {"status": result.status, "final_summary": summary, "current_stage": "complete"}


def deploy_result_from_state(state: DeployState) -> DeployResult:
    if state.get("failed"):
        status = "rolled_back" if state.get("rolled_back") else "failed"
    elif state.get("dry_run"):
        status = "dry_run"
    else:
        status = "success"

    smoke = state.get("smoke_report")
    return DeployResult(
        environment=state.get("environment", ""),
        namespace=state.get("namespace", ""),
        release=state.get("release", ""),
        chart=state.get("chart", ""),
        image_tag=state.get("image_tag"),
        cluster=state.get("cluster"),
        previous_revision=state.get("previous_revision", 0),
        status=status,
        smoke_tests=SmokeTestReport(**smoke) if smoke else None,
        errors=state.get("errors", []),
    )
