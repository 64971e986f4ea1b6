"""Docker tools — docker CLI and Trivy image-scan wrappers."""

import os
from typing import Dict, List, Optional

from loguru import logger

from pipesmith.models.reports import CommandResult
from pipesmith.tools import shell
from pipesmith.tools.security_tools import parse_trivy_report, load_json


def build_args(
    dockerfile: str,
    full_image: str,
    latest_image: str,
    version: str,
    git_commit: str,
    build_date: str,
    extra_build_args: Optional[str] = None,
    context: str = ".",
) -> List[str]:
    """
    argv of `docker build`, tagging both <image>:<tag> and <image>:latest.

    extra_build_args is the comma-separated BUILD_ARGS value ('A=1,B=2').
    """
    args = [
        "docker", "build",
        "--file", dockerfile,
        "--tag", full_image,
        "--tag", latest_image,
        "--build-arg", f"VERSION={version}",
        "--build-arg", f"GIT_COMMIT={git_commit}",
        "--build-arg", f"BUILD_DATE={build_date}",
    ]
    for item in (extra_build_args or "").split(","):
        item = item.strip()
        if item:
            args += ["--build-arg", item]
    args.append(context)
    return args


def build(argv: List[str], cwd: str) -> CommandResult:
    return shell.run(argv, cwd=cwd)


def login(registry: str, username: str, password: str, cwd: str) -> CommandResult:
    return shell.run(
        ["docker", "login", registry, "--username", username, "--password-stdin"],
        cwd=cwd,
        input_text=password,
    )


def push(image: str, cwd: str) -> CommandResult:
    return shell.run(["docker", "push", image], cwd=cwd)


def scan_image(
    image: str,
    reports_dir: str,
    severity: str,
    exit_code: int,
    cwd: str,
) -> Dict[str, object]:
    """
    Scan an image with Trivy, writing a table and a JSON report.

    Returns:
        Dict with 'returncode' of the gating table run (127 when trivy is
        not installed), 'counts' per severity, and the 'table' report path.
    """
    if not shell.tool_available("trivy"):
        logger.warning("trivy not installed, image was not scanned")
        return {"returncode": 127, "counts": {}, "table": None}

    os.makedirs(reports_dir, exist_ok=True)
    table = os.path.join(reports_dir, "trivy-report.txt")
    report = os.path.join(reports_dir, "trivy-report.json")

    gated = shell.run(
        [
            "trivy", "image",
            "--severity", severity,
            "--exit-code", str(exit_code),
            "--no-progress",
            "--format", "table",
            "--output", table,
            image,
        ],
        cwd=cwd,
    )
    shell.run(
        [
            "trivy", "image",
            "--severity", severity,
            "--no-progress",
            "--format", "json",
            "--output", report,
            image,
        ],
        cwd=cwd,
    )

    findings = parse_trivy_report(load_json(report))
    counts = {
        sev: sum(1 for f in findings if f.severity == sev)
        for sev in ("critical", "high", "medium")
    }
    return {"returncode": gated.returncode, "counts": counts, "table": table}
