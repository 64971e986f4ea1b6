"""Deploy LangGraph workflow — the Helm release StateGraph definition."""

import os
from typing import Literal, Optional

from langgraph.graph import StateGraph, END

from pipesmith.config import DeploySettings, settings
from pipesmith.graph.state import DeployState
from pipesmith.models.reports import SmokeTestReport, DeployResult
from pipesmith.stages.deployer import (
    prepare_node,
    kubeconfig_node,
    verify_cluster_node,
    namespace_node,
    load_build_info_node,
    validate_chart_node,
    record_revision_node,
    helm_upgrade_node,
    rollout_node,
    smoke_test_node,
    rollback_node,
    inspect_node,
    record_node,
    fail_node,
    summarize_node,
    deploy_result_from_state,
)

from loguru import logger


# Linear part of the sequence: each step continues to the next unless it failed.
DEPLOY_STEPS = [
    ("prepare", prepare_node),
    ("kubeconfig", kubeconfig_node),
    ("verify_cluster", verify_cluster_node),
    ("namespace", namespace_node),
    ("load_build_info", load_build_info_node),
    ("validate_chart", validate_chart_node),
    ("record_revision", record_revision_node),
    ("helm_upgrade", helm_upgrade_node),
    ("rollout", rollout_node),
    ("smoke_test", smoke_test_node),
]


# ──────────────────────────── Gate Functions ────────────────────────────


def step_gate(state: DeployState) -> Literal["continue", "fail"]:
    """Conditional edge after every step: stop at the first failure."""
    if state.get("failed", False):
        return "fail"
    return "continue"


def smoke_gate(state: DeployState) -> Literal["inspect", "rollback", "fail"]:
    """
    Conditional edge after smoke tests.

    - If the node itself failed → fail
    - If any probe failed → rollback
    - Otherwise (passed or skipped) → inspect
    """
    if state.get("failed", False):
        return "fail"

    report = SmokeTestReport(**(state.get("smoke_report") or {"skipped": True}))
    if report.passed:
        return "inspect"

    logger.error("Smoke gate: FAILED — rolling back")
    return "rollback"


# ──────────────────────────── Workflow Builder ────────────────────────────


def create_deploy_workflow(checkpointer=None):
    """
    Create the deploy LangGraph workflow.

    Pipeline:
        prepare → kubeconfig → verify_cluster → namespace → load_build_info
            → validate_chart → record_revision → helm_upgrade → rollout
            → smoke_test → [smoke_gate]
                ↓ pass            ↓ probes failed
            inspect → record      rollback ──┐
                ↓                            ↓
            summarize → END  ←───────────────┘
                ↑
        any step failed → fail

    Args:
        checkpointer: Optional LangGraph checkpointer for persistence.

    Returns:
        Compiled LangGraph workflow.
    """
    workflow = StateGraph(DeployState)

    # ── Add Nodes ──
    for name, node in DEPLOY_STEPS:
        workflow.add_node(name, node)
    workflow.add_node("rollback", rollback_node)
    workflow.add_node("inspect", inspect_node)
    workflow.add_node("record", record_node)
    workflow.add_node("fail", fail_node)
    workflow.add_node("summarize", summarize_node)

    # ── Define Edges ──
    workflow.set_entry_point(DEPLOY_STEPS[0][0])

    for (name, _), (next_name, _) in zip(DEPLOY_STEPS, DEPLOY_STEPS[1:]):
        workflow.add_conditional_edges(name, step_gate, {"continue": next_name, "fail": "fail"})

    workflow.add_conditional_edges(
        "smoke_test",
        smoke_gate,
        {
            "inspect": "inspect",
            "rollback": "rollback",
            "fail": "fail",
        },
    )

    workflow.add_edge("rollback", "summarize")
    workflow.add_conditional_edges("inspect", step_gate, {"continue": "record", "fail": "fail"})
    workflow.add_conditional_edges("record", step_gate, {"continue": "summarize", "fail": "fail"})

    workflow.add_edge("fail", "summarize")
    workflow.add_edge("summarize", END)

    logger.debug("Deploy workflow compiled")
    return workflow.compile(checkpointer=checkpointer)


def run_deploy(deploy_settings: Optional[DeploySettings] = None, working_dir: Optional[str] = None) -> DeployResult:
    """
    Run the full deploy sequence.

    Args:
        deploy_settings: Deploy settings (read from the environment if None).
        working_dir: Directory holding the chart and build-info (defaults to WORKING_DIR).

    Returns:
        DeployResult; `succeeded` is False for failed and rolled-back deploys.
    """
    deploy_settings = deploy_settings or DeploySettings()
    workflow = create_deploy_workflow()

    initial_state: DeployState = {
        "settings": deploy_settings,
        "working_dir": os.path.abspath(working_dir or settings.WORKING_DIR),
        "kubeconfig": None,
        "cluster": None,
        "image_tag": None,
        "previous_revision": 0,
        "smoke_report": None,
        "rolled_back": False,
        "current_stage": "starting",
        "failed": False,
        "status": "pending",
        "errors": [],
        "final_summary": None,
    }

    logger.info("🚀 Deploy starting: env={}", deploy_settings.ENVIRONMENT)
    final_state = workflow.invoke(initial_state)
    result = deploy_result_from_state(final_state)
    logger.info("🏁 Deploy complete: status={}", result.status)
    return result
