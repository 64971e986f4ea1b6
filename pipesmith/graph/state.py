"""DeployState — shared state flowing through the deploy LangGraph workflow."""

from typing import TypedDict, List, Optional, Annotated, Dict, Any

from pipesmith.config import DeploySettings


# ──────────────────────────── Custom Reducers ────────────────────────────


def merge_errors(existing: List[str] | None, new: List[str] | None) -> List[str]:
    """Concatenate error message lists returned by successive nodes."""
    if existing is None:
        existing = []
    if new is None:
        new = []
    return existing + new


# ──────────────────────────── State Schema ────────────────────────────


class DeployState(TypedDict, total=False):
    """
    Central state that flows through every node of the deploy graph.

    `prepare` resolves the raw DeploySettings into the flat fields below;
    later nodes only read the resolved values.
    """

    # ===== Input =====
    settings: DeploySettings
    """Raw deploy settings as read from the environment / CLI."""

    working_dir: str

    # ===== Resolved configuration =====
    environment: str
    """Normalised environment: 'dev' | 'stage' | 'prod'."""

    namespace: str
    release: str
    chart: str
    values_file: str
    image_tag: Optional[str]
    rollout_timeout: str
    rollback_timeout: str
    dry_run: bool
    wait_for_rollout: bool
    smoke_tests: bool
    smoke_endpoints: List[str]
    canary_weight: Optional[int]

    # ===== Cluster =====
    kubeconfig: Optional[str]
    """Path of the kubeconfig file handed to kubectl / helm."""

    cluster: Optional[str]
    """Current kubectl context name."""

    # ===== Release =====
    git_commit: str
    git_branch: str
    previous_revision: int
    """Helm revision recorded before the upgrade (0 = new release)."""

    smoke_report: Optional[Dict[str, Any]]
    """Serialised SmokeTestReport."""

    rolled_back: bool

    # ===== Workflow Control =====
    current_stage: str
    """Last node that ran (for status tracking)."""

    failed: bool
    """Set by any node whose step failed; gates route to `fail`."""

    status: str
    """Final status: 'success' | 'failed' | 'rolled_back' | 'dry_run'."""

    # ===== Error Handling =====
    errors: Annotated[List[str], merge_errors]
    """Accumulated error messages from all nodes."""

    # ===== Summary =====
    final_summary: Optional[str]
    """Markdown summary of the deployment."""
