"""Security Sentinel — runs the enabled scanners and applies the security gate."""

import os
import time
from typing import Optional

from loguru import logger

from pipesmith.config import SecuritySettings, settings
from pipesmith.models.reports import SecurityReport
from pipesmith.tools.build_tools import detect_scan_build_tool
from pipesmith.tools.security_tools import (
    run_gitleaks,
    run_grype,
    run_npm_audit,
    run_bandit,
    run_trivy_fs,
    run_syft,
    run_checkov,
    run_trivy_config,
    run_hadolint,
    run_trivy_image,
    evaluate_gate,
    write_security_summary,
)


def run_security_scan(
    security_settings: Optional[SecuritySettings] = None,
    working_dir: Optional[str] = None,
) -> SecurityReport:
    """
    Run every enabled scan and decide whether the pipe passes.

    Scans (each toggled by its setting): secrets (GitLeaks), SCA (Grype or
    npm audit), SAST (Bandit or Trivy fs), SBOM (Syft), IaC (Checkov + Trivy
    config), Dockerfile (Hadolint + Trivy config) and container image (Trivy).
    Missing tools are skipped without failing the pipe.

    Returns:
        SecurityReport with `passed` and `verdict` set.
    """
    ss = security_settings or SecuritySettings()
    repo_path = os.path.abspath(working_dir or settings.WORKING_DIR)
    reports_dir = os.path.join(repo_path, settings.REPORTS_DIR)
    os.makedirs(reports_dir, exist_ok=True)

    build_tool = detect_scan_build_tool(repo_path)
    logger.info("🛡️ Running security analysis (build tool: {})", build_tool)

    start_time = time.time()
    report = SecurityReport(reports_dir=reports_dir)

    # Secrets
    if ss.SECRETS_SCAN:
        report.outcomes.append(run_gitleaks(repo_path, reports_dir))
    else:
        logger.info("Secrets scanning disabled")

    # SCA
    if ss.SCA_SCAN:
        if build_tool in ("maven", "gradle"):
            report.outcomes.append(run_grype(repo_path, reports_dir, "sca-grype.json", fail_on="high"))
        elif build_tool == "npm":
            report.outcomes.append(run_npm_audit(repo_path, reports_dir))
        elif build_tool in ("python", "go"):
            report.outcomes.append(run_grype(repo_path, reports_dir, f"sca-{build_tool}.json"))
        else:
            logger.warning("SCA not available for build tool: {}", build_tool)
    else:
        logger.info("SCA scanning disabled")

    # SAST
    if ss.SAST_SCAN:
        if build_tool == "python":
            report.outcomes.append(run_bandit(repo_path, reports_dir))
        else:
            report.outcomes.append(run_trivy_fs(repo_path, reports_dir))
    else:
        logger.info("SAST scanning disabled")

    # SBOM
    if ss.SBOM_GENERATE:
        report.outcomes.append(run_syft(repo_path, reports_dir))
    else:
        logger.info("SBOM generation disabled")

    # IaC
    if ss.IAC_SCAN:
        if os.path.isdir(os.path.join(repo_path, ss.HELM_CHART_PATH)):
            report.outcomes.append(run_checkov(ss.HELM_CHART_PATH, reports_dir, repo_path))
            trivy = run_trivy_config(
                ss.HELM_CHART_PATH, os.path.join(reports_dir, "iac", "trivy-iac.json"), "iac", repo_path
            )
            if trivy:
                report.outcomes.append(trivy)
        else:
            logger.warning("Helm chart not found at: {}", ss.HELM_CHART_PATH)
    else:
        logger.info("IaC scanning disabled")

    # Dockerfile
    if ss.DOCKERFILE_SCAN:
        if os.path.isfile(os.path.join(repo_path, ss.DOCKERFILE_PATH)):
            report.outcomes.append(run_hadolint(ss.DOCKERFILE_PATH, reports_dir, repo_path))
            trivy = run_trivy_config(
                ss.DOCKERFILE_PATH, os.path.join(reports_dir, "trivy-dockerfile.json"), "dockerfile", repo_path
            )
            if trivy:
                report.outcomes.append(trivy)
        else:
            logger.warning("Dockerfile not found at: {}", ss.DOCKERFILE_PATH)
    else:
        logger.info("Dockerfile scanning disabled")

    # Container
    if ss.CONTAINER_SCAN:
        if ss.CONTAINER_IMAGE:
            report.outcomes.append(run_trivy_image(ss.CONTAINER_IMAGE, reports_dir, repo_path))
        else:
            logger.warning("CONTAINER_IMAGE not specified, skipping container scan")
    else:
        logger.info("Container scanning disabled")

    report.scan_duration_ms = (time.time() - start_time) * 1000
    evaluate_gate(report, fail_on_critical=ss.FAIL_ON_CRITICAL, fail_on_high=ss.FAIL_ON_HIGH)

    summary_path = write_security_summary(
        report,
        {
            "Secrets Scanning": ss.SECRETS_SCAN,
            "SCA (Dependencies)": ss.SCA_SCAN,
            "SAST": ss.SAST_SCAN,
            "SBOM Generation": ss.SBOM_GENERATE,
            "IaC Scanning": ss.IAC_SCAN,
            "Dockerfile Scanning": ss.DOCKERFILE_SCAN,
            "Container Scanning": ss.CONTAINER_SCAN,
        },
    )

    logger.info(
        "Security scan complete: {} scans, {} failed ({} critical, {} high, {} medium) — {}",
        report.scans_run,
        report.scan_failures,
        report.critical_count,
        report.high_count,
        report.medium_count,
        report.verdict,
    )
    if report.passed and report.scan_failures:
        logger.warning("Set FAIL_ON_HIGH=true or FAIL_ON_CRITICAL=true to enforce security gates")
    logger.info("Summary written to {}", summary_path)

    return report
