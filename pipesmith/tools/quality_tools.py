"""Quality tools — coverage commands, JaCoCo parsing, linters and SonarQube."""

import os
import xml.etree.ElementTree as ET
from typing import List, Optional

from loguru import logger

from pipesmith.models.reports import CoverageReport
from pipesmith.tools import shell


JACOCO_REPORTS = {
    "maven": "target/site/jacoco/jacoco.xml",
    "gradle": "build/reports/jacoco/test/jacocoTestReport.xml",
}

HTML_REPORTS = {
    "maven": "target/site/jacoco/index.html",
    "gradle": "build/reports/jacoco/test/html/index.html",
    "python": "htmlcov/index.html",
    "go": "coverage.html",
}

SONAR_EXCLUSIONS = "**/node_modules/**,**/venv/**,**/.venv/**,**/target/**,**/build/**"


def coverage_commands(tool: str) -> List[List[str]]:
    """Commands that run the tests with coverage; empty when unsupported."""
    if tool == "maven":
        return [["mvn", "clean", "test", "jacoco:report"]]
    if tool == "gradle":
        return [["./gradlew", "test", "jacocoTestReport"]]
    if tool == "npm":
        return [["npm", "test", "--", "--coverage"]]
    if tool == "python":
        return [["pytest", "--cov", "--cov-report=html", "--cov-report=xml"]]
    if tool == "go":
        return [
            ["go", "test", "-coverprofile=coverage.out", "./..."],
            ["go", "tool", "cover", "-html=coverage.out", "-o", "coverage.html"],
        ]
    if tool == "dotnet":
        return [["dotnet", "test", "--collect:XPlat Code Coverage"]]
    return []


def parse_jacoco(path: str, threshold: float = 80.0) -> Optional[CoverageReport]:
    """
    Read LINE coverage from a JaCoCo XML report.

    Uses the report-level counters; when a report has none, sums the LINE
    counters of its packages. Returns None if the file is missing or
    unparsable.
    """
    if not os.path.isfile(path):
        return None
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        logger.warning("Failed to parse JaCoCo report {}: {}", path, e)
        return None

    counters = [c for c in root.findall("counter") if c.get("type") == "LINE"]
    if not counters:
        counters = [c for c in root.findall("./package/counter") if c.get("type") == "LINE"]

    covered = sum(int(c.get("covered", 0)) for c in counters)
    missed = sum(int(c.get("missed", 0)) for c in counters)
    return CoverageReport(source=path, covered=covered, missed=missed, threshold=threshold)


def lint_commands(tool: str, repo_path: str) -> List[List[str]]:
    """Linters for a build tool, limited to the ones that are installed/configured."""
    commands: List[List[str]] = []
    if tool == "npm":
        configured = any(
            os.path.exists(os.path.join(repo_path, name)) for name in (".eslintrc.js", ".eslintrc.json")
        )
        if not configured:
            try:
                with open(os.path.join(repo_path, "package.json"), "r") as f:
                    configured = "eslint" in f.read()
            except OSError:
                configured = False
        if configured:
            commands.append(["npx", "eslint", ".", "--ext", ".js,.jsx,.ts,.tsx"])
    elif tool == "python":
        if shell.tool_available("pylint"):
            commands.append(["pylint", "--recursive=y", "--ignore=venv,.venv", "."])
        if shell.tool_available("flake8"):
            commands.append(["flake8", ".", "--exclude=venv,.venv,__pycache__"])
    elif tool == "go":
        if shell.tool_available("golint"):
            commands.append(["golint", "./..."])
    return commands


def sonar_command(
    tool: str,
    host_url: str,
    token: str,
    project_key: str,
    organization: Optional[str] = None,
) -> List[str]:
    """argv of the SonarQube analysis for a build tool."""
    props = [
        f"-Dsonar.host.url={host_url}",
        f"-Dsonar.login={token}",
        f"-Dsonar.projectKey={project_key}",
    ]
    if organization:
        props.append(f"-Dsonar.organization={organization}")

    if tool == "maven":
        return ["mvn", "sonar:sonar", *props, f"-Dsonar.coverage.jacoco.xmlReportPaths={JACOCO_REPORTS['maven']}"]
    if tool == "gradle":
        return ["./gradlew", "sonarqube", *props]
    return ["sonar-scanner", *props, "-Dsonar.sources=.", f"-Dsonar.exclusions={SONAR_EXCLUSIONS}"]
