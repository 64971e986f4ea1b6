"""Security tools — wrappers for GitLeaks, Grype, npm audit, Bandit, Trivy, Syft, Checkov, Hadolint."""

import json
import os
from datetime import datetime
from typing import List, Optional

from loguru import logger

from pipesmith.models.reports import ScanOutcome, SecurityFinding, SecurityReport
from pipesmith.tools import shell


_SEVERITY_MAP = {
    "critical": "critical",
    "high": "high",
    "medium": "medium",
    "moderate": "medium",
    "low": "low",
    "negligible": "info",
    "info": "info",
    "unknown": "info",
}


def normalize_severity(value: Optional[str]) -> str:
    return _SEVERITY_MAP.get((value or "unknown").lower(), "info")


def load_json(path: str):
    """Load a JSON scanner report; None when it is missing, empty or malformed."""
    if not os.path.exists(path) or os.path.getsize(path) == 0:
        return None
    try:
        with open(path, "r") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        logger.warning("Failed to parse JSON report {}", path)
        return None


def _write(path: str, content: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write(content)


def _missing(scan: str, tool: str) -> ScanOutcome:
    logger.warning("{} not installed — skipping {} scan", tool, scan)
    return ScanOutcome(scan=scan, tool=tool, note=f"{tool} not installed")


# ──────────────────────────── Secrets ────────────────────────────


def run_gitleaks(repo_path: str, reports_dir: str) -> ScanOutcome:
    """
    Scan the working tree for committed secrets.

    Any non-zero exit counts as a scan failure and one critical issue,
    whatever the number of secrets in the report.
    """
    if not shell.tool_available("gitleaks"):
        return _missing("secrets", "gitleaks")

    report = os.path.join(reports_dir, "gitleaks-report.json")
    result = shell.run(
        [
            "gitleaks", "detect",
            "--source=.",
            f"--report-path={report}",
            "--report-format=json",
            "--verbose",
            "--no-git",
        ],
        cwd=repo_path,
    )
    _write(os.path.join(reports_dir, "gitleaks.log"), result.output)

    outcome = ScanOutcome(scan="secrets", tool="gitleaks", ran=True, report_path=report)
    if result.ok:
        logger.info("✓ No secrets detected")
        return outcome

    leaks = load_json(report)
    count = len(leaks) if isinstance(leaks, list) else None
    logger.error("✗ SECRETS DETECTED! Total secrets found: {}", count if count is not None else "unknown")

    outcome.failed = True
    outcome.findings.append(SecurityFinding(
        tool="gitleaks",
        severity="critical",
        target=repo_path,
        message=f"Secrets found in codebase ({count if count is not None else 'unknown'} leaks)",
    ))
    return outcome


# ──────────────────────────── SCA ────────────────────────────


def parse_grype_report(data) -> List[SecurityFinding]:
    """Parse `grype -o json` output into SecurityFinding objects."""
    findings = []
    for match in (data or {}).get("matches", []):
        vuln = match.get("vulnerability", {})
        artifact = match.get("artifact", {})
        findings.append(SecurityFinding(
            tool="grype",
            severity=normalize_severity(vuln.get("severity")),
            target=f"{artifact.get('name', 'unknown')}@{artifact.get('version', '?')}",
            message=vuln.get("description") or vuln.get("id", "unknown vulnerability"),
            rule_id=vuln.get("id"),
        ))
    return findings


def run_grype(repo_path: str, reports_dir: str, report_name: str, fail_on: Optional[str] = None) -> ScanOutcome:
    """
    Scan dependencies in the working tree with Grype.

    Matches only count towards the gate when `fail_on` is set and Grype
    exits non-zero; otherwise they are kept as advisories.
    """
    if not shell.tool_available("grype"):
        return _missing("sca", "grype")

    report = os.path.join(reports_dir, report_name)
    args = ["grype", "dir:.", "-o", "json", f"--file={report}"]
    if fail_on:
        args.append(f"--fail-on={fail_on}")
    result = shell.run(args, cwd=repo_path)

    findings = parse_grype_report(load_json(report))
    outcome = ScanOutcome(scan="sca", tool="grype", ran=True, report_path=report)
    if fail_on and not result.ok:
        outcome.failed = True
        outcome.findings = findings
        logger.error(
            "✗ Vulnerable dependencies detected. Critical: {}, High: {}, Medium: {}",
            outcome.count("critical"), outcome.count("high"), outcome.count("medium"),
        )
    else:
        outcome.advisories = findings
        logger.info("✓ Grype dependency scan complete ({} matches reported)", len(findings))
    return outcome


def parse_npm_audit_report(data) -> List[SecurityFinding]:
    """Parse `npm audit --json` output (v7+ format)."""
    findings = []
    for name, vuln in (data or {}).get("vulnerabilities", {}).items():
        via = vuln.get("via") or []
        title = next((v.get("title") for v in via if isinstance(v, dict) and v.get("title")), None)
        findings.append(SecurityFinding(
            tool="npm_audit",
            severity=normalize_severity(vuln.get("severity")),
            target=name,
            message=f"{name}: {title or 'vulnerable dependency'}",
            rule_id=name,
        ))
    return findings


def run_npm_audit(repo_path: str, reports_dir: str) -> ScanOutcome:
    """Audit npm dependencies; critical vulnerabilities count as a scan failure."""
    if not shell.tool_available("npm"):
        return _missing("sca", "npm")

    report = os.path.join(reports_dir, "npm-audit.json")
    result = shell.run(["npm", "audit", "--json"], cwd=repo_path)
    _write(report, result.stdout)

    data = None
    try:
        data = json.loads(result.stdout) if result.stdout.strip() else None
    except json.JSONDecodeError:
        logger.warning("Failed to parse npm audit JSON output")

    outcome = ScanOutcome(
        scan="sca", tool="npm_audit", ran=True, report_path=report,
        findings=parse_npm_audit_report(data),
    )
    if result.ok:
        logger.info("✓ No vulnerabilities in NPM dependencies")
        return outcome

    logger.warning(
        "⚠ Vulnerabilities found in NPM dependencies — Critical: {}, High: {}",
        outcome.count("critical"), outcome.count("high"),
    )
    if outcome.count("critical") > 0:
        outcome.failed = True
    return outcome


# ──────────────────────────── SAST ────────────────────────────


def run_bandit(repo_path: str, reports_dir: str) -> ScanOutcome:
    """Python SAST with Bandit; informational only."""
    if not shell.tool_available("bandit"):
        return _missing("sast", "bandit")

    report = os.path.join(reports_dir, "bandit-report.json")
    result = shell.run(["bandit", "-r", ".", "-f", "json", "-o", report], cwd=repo_path)
    _write(os.path.join(reports_dir, "bandit.log"), result.output)

    data = load_json(report) or {}
    issues = len(data.get("results", []))
    logger.info("✓ Bandit scan completed ({} issues)", issues)
    return ScanOutcome(scan="sast", tool="bandit", ran=True, report_path=report, note=f"{issues} issues")


def run_trivy_fs(repo_path: str, reports_dir: str) -> ScanOutcome:
    """Filesystem SAST with Trivy; informational only."""
    if not shell.tool_available("trivy"):
        return _missing("sast", "trivy")

    report = os.path.join(reports_dir, "trivy-sast.json")
    shell.run(
        ["trivy", "fs", "--scanners", "vuln,config,secret", ".", "-f", "json", "-o", report],
        cwd=repo_path,
    )
    return ScanOutcome(scan="sast", tool="trivy", ran=True, report_path=report)


# ──────────────────────────── SBOM ────────────────────────────


def run_syft(repo_path: str, reports_dir: str) -> ScanOutcome:
    """Generate CycloneDX and SPDX SBOMs with Syft."""
    if not shell.tool_available("syft"):
        return _missing("sbom", "syft")

    sbom_dir = os.path.join(reports_dir, "sbom")
    cyclonedx = os.path.join(sbom_dir, "sbom-cyclonedx.json")
    spdx = os.path.join(sbom_dir, "sbom-spdx.json")

    for fmt, path in (("cyclonedx-json", cyclonedx), ("spdx-json", spdx)):
        result = shell.run(["syft", "dir:.", "-o", fmt], cwd=repo_path)
        if not result.ok:
            logger.warning("Syft {} generation failed: {}", fmt, result.stderr[:200])
            continue
        _write(path, result.stdout)

    data = load_json(cyclonedx) or {}
    components = len(data.get("components", []))
    logger.info("✓ SBOM generated with Syft — total components: {}", components)
    return ScanOutcome(
        scan="sbom", tool="syft", ran=True, report_path=cyclonedx, note=f"{components} components"
    )


# ──────────────────────────── IaC ────────────────────────────


def parse_checkov_report(data) -> List[SecurityFinding]:
    """Failed Checkov checks rated CRITICAL or HIGH."""
    findings = []
    reports = data if isinstance(data, list) else [data or {}]
    for report in reports:
        for check in report.get("results", {}).get("failed_checks", []) or []:
            severity = normalize_severity(check.get("severity"))
            if severity not in ("critical", "high"):
                continue
            findings.append(SecurityFinding(
                tool="checkov",
                severity=severity,
                target=check.get("file_path", ""),
                message=check.get("check_name", "failed check"),
                rule_id=check.get("check_id"),
            ))
    return findings


def run_checkov(chart_path: str, reports_dir: str, repo_path: str) -> ScanOutcome:
    """Scan a Helm chart with Checkov; critical/high failed checks fail the scan."""
    if not shell.tool_available("checkov"):
        return _missing("iac", "checkov")

    iac_dir = os.path.join(reports_dir, "iac")
    os.makedirs(iac_dir, exist_ok=True)
    result = shell.run(
        [
            "checkov", "-d", chart_path,
            "--framework", "helm",
            "--output", "cli", "--output", "json",
            "--output-file-path", iac_dir,
            "--quiet",
        ],
        cwd=repo_path,
    )
    _write(os.path.join(iac_dir, "checkov.log"), result.output)

    report = os.path.join(iac_dir, "results_json.json")
    outcome = ScanOutcome(scan="iac", tool="checkov", ran=True, report_path=report)
    if result.ok:
        logger.info("✓ No critical IaC issues found")
        return outcome

    outcome.findings = parse_checkov_report(load_json(report))
    logger.warning(
        "⚠ IaC security issues detected (Critical: {}, High: {})",
        outcome.count("critical"), outcome.count("high"),
    )
    if outcome.findings:
        outcome.failed = True
    return outcome


def run_trivy_config(target: str, report: str, scan: str, repo_path: str) -> Optional[ScanOutcome]:
    """Misconfiguration scan with Trivy; informational only. None if trivy is missing."""
    if not shell.tool_available("trivy"):
        return None
    shell.run(["trivy", "config", target, "-f", "json", "-o", report], cwd=repo_path)
    return ScanOutcome(scan=scan, tool="trivy", ran=True, report_path=report)


# ──────────────────────────── Dockerfile ────────────────────────────


def parse_hadolint_report(data) -> List[SecurityFinding]:
    """Hadolint `error` items become high findings; everything else is info."""
    findings = []
    for item in data or []:
        level = item.get("level", "info")
        findings.append(SecurityFinding(
            tool="hadolint",
            severity="high" if level == "error" else "info",
            target=f"{item.get('file', 'Dockerfile')}:{item.get('line', 0)}",
            message=item.get("message", ""),
            rule_id=item.get("code"),
        ))
    return findings


def run_hadolint(dockerfile: str, reports_dir: str, repo_path: str) -> ScanOutcome:
    if not shell.tool_available("hadolint"):
        return _missing("dockerfile", "hadolint")

    report = os.path.join(reports_dir, "hadolint-report.json")
    result = shell.run(["hadolint", "--format", "json", dockerfile], cwd=repo_path)
    _write(report, result.stdout)

    outcome = ScanOutcome(scan="dockerfile", tool="hadolint", ran=True, report_path=report)
    if result.ok:
        logger.info("✓ Dockerfile follows security best practices")
        return outcome

    data = None
    try:
        data = json.loads(result.stdout) if result.stdout.strip() else None
    except json.JSONDecodeError:
        logger.warning("Failed to parse Hadolint JSON output")
    outcome.findings = parse_hadolint_report(data)
    logger.warning("⚠ Dockerfile issues detected ({} errors)", outcome.count("high"))
    return outcome


# ──────────────────────────── Container ────────────────────────────


def parse_trivy_report(data, tool: str = "trivy") -> List[SecurityFinding]:
    """Parse `trivy image -f json` output."""
    findings = []
    for result in (data or {}).get("Results", []) or []:
        for vuln in result.get("Vulnerabilities", []) or []:
            findings.append(SecurityFinding(
                tool=tool,
                severity=normalize_severity(vuln.get("Severity")),
                target=f"{vuln.get('PkgName', 'unknown')}@{vuln.get('InstalledVersion', '?')}",
                message=vuln.get("Title") or vuln.get("VulnerabilityID", "vulnerability"),
                rule_id=vuln.get("VulnerabilityID"),
            ))
    return findings


def run_trivy_image(image: str, reports_dir: str, repo_path: str) -> ScanOutcome:
    """Scan a container image for HIGH/CRITICAL vulnerabilities."""
    if not shell.tool_available("trivy"):
        return _missing("container", "trivy")

    report = os.path.join(reports_dir, "trivy-container.json")
    result = shell.run(
        ["trivy", "image", image, "--severity", "HIGH,CRITICAL", "-f", "json", "-o", report],
        cwd=repo_path,
    )
    _write(os.path.join(reports_dir, "trivy-container.log"), result.output)

    outcome = ScanOutcome(scan="container", tool="trivy", ran=True, report_path=report)
    if result.ok:
        logger.info("✓ No critical vulnerabilities in container image")
        return outcome

    outcome.failed = True
    outcome.findings = parse_trivy_report(load_json(report))
    logger.error(
        "✗ Vulnerabilities found in container image — Critical: {}, High: {}",
        outcome.count("critical"), outcome.count("high"),
    )
    return outcome


# ──────────────────────────── Gate & summary ────────────────────────────


def evaluate_gate(report: SecurityReport, fail_on_critical: bool, fail_on_high: bool) -> SecurityReport:
    """
    Decide pass/fail for an aggregated report.

    Critical issues fail when fail_on_critical, high issues fail when
    fail_on_high; scan failures alone only produce a warning.
    """
    if report.critical_count > 0 and fail_on_critical:
        report.passed = False
        report.verdict = "SECURITY SCAN FAILED - Critical issues found"
    elif report.high_count > 0 and fail_on_high:
        report.passed = False
        report.verdict = "SECURITY SCAN FAILED - High severity issues found"
    elif report.scan_failures > 0:
        report.passed = True
        report.verdict = "SECURITY SCAN COMPLETED WITH WARNINGS"
    else:
        report.passed = True
        report.verdict = "SECURITY SCAN PASSED - No critical issues found"
    return report


def write_security_summary(report: SecurityReport, enabled: dict) -> str:
    """Write <reports>/security-summary.txt and return its path."""
    path = os.path.join(report.reports_dir, "security-summary.txt")
    os.makedirs(report.reports_dir, exist_ok=True)

    lines = [
        "SECURITY SCAN SUMMARY",
        "=====================",
        f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        "",
        "SCAN RESULTS:",
        "-------------",
        f"Total Scans: {report.scans_run}",
        f"Failed Scans: {report.scan_failures}",
        "",
        "SEVERITY BREAKDOWN:",
        "------------------",
        f"Critical Issues: {report.critical_count}",
        f"High Issues: {report.high_count}",
        f"Medium Issues: {report.medium_count}",
        f"Low Issues: {report.low_count}",
        f"Advisory Matches (not gated): {sum(len(o.advisories) for o in report.outcomes)}",
        "",
        "ENABLED SCANS:",
        "-------------",
    ]
    lines += [f"✓ {name}: {str(value).lower()}" for name, value in enabled.items()]
    lines += ["", "REPORTS GENERATED:", "-----------------"]
    lines += [f"  - {o.report_path}" for o in report.outcomes if o.report_path]
    lines += ["", "RECOMMENDATIONS:", "---------------"]
    if report.critical_count:
        lines.append(f"⚠️  CRITICAL: {report.critical_count} critical issues found - IMMEDIATE ACTION REQUIRED")
    if report.high_count:
        lines.append(f"⚠️  HIGH: {report.high_count} high severity issues found - Address as soon as possible")
    lines += ["", f"For detailed findings, review individual scan reports in: {report.reports_dir}/", ""]

    with open(path, "w") as f:
        f.write("\n".join(lines))
    return path
