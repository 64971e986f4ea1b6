"""Test tools — test-framework detection and per-framework test commands."""

import json
import os
from typing import List, Optional

from loguru import logger

from pipesmith.tools import shell
from pipesmith.tools.build_tools import file_exists, has_dotnet_project, split_args


def detect_test_framework(repo_path: str) -> str:
    """
    Auto-detect which test framework a project uses.

    Args:
        repo_path: Absolute path to the repository.

    Returns:
        'maven', 'gradle', 'yarn', 'npm', 'pytest', 'go', 'dotnet', 'rspec',
        'cargo' or 'unknown'.
    """
    if file_exists(repo_path, "pom.xml"):
        framework = "maven"
    elif file_exists(repo_path, "build.gradle", "build.gradle.kts"):
        framework = "gradle"
    elif file_exists(repo_path, "package.json"):
        framework = "yarn" if file_exists(repo_path, "yarn.lock") else "npm"
    elif file_exists(repo_path, "setup.py", "pyproject.toml", "pytest.ini"):
        framework = "pytest"
    elif file_exists(repo_path, "go.mod"):
        framework = "go"
    elif has_dotnet_project(repo_path):
        framework = "dotnet"
    elif file_exists(repo_path, "Gemfile"):
        framework = "rspec"
    elif file_exists(repo_path, "Cargo.toml"):
        framework = "cargo"
    else:
        framework = "unknown"

    logger.info("Detected test framework: {}", framework)
    return framework


def _package_scripts(repo_path: str) -> dict:
    """The `scripts` section of package.json, or {}."""
    try:
        with open(os.path.join(repo_path, "package.json"), "r") as f:
            return json.load(f).get("scripts", {}) or {}
    except (OSError, json.JSONDecodeError):
        return {}


def gradle_has_task(repo_path: str, task: str) -> bool:
    result = shell.run(["./gradlew", "tasks", "--all"], cwd=repo_path)
    return result.ok and task in result.stdout


def framework_commands(
    framework: str,
    test_type: str,
    repo_path: str,
    coverage: bool = False,
    extra_args: Optional[str] = None,
) -> List[List[str]]:
    """
    Commands that run the unit or integration tests of a framework.

    An empty list means there is nothing to run for that test type (for
    example no `test:integration` npm script).

    Raises:
        ValueError: For 'unknown' or unsupported frameworks.
    """
    args = split_args(extra_args)
    unit = test_type == "unit"

    if framework == "maven":
        if not unit:
            return [["mvn", "verify", "-DskipUnitTests=false", "-DskipIntegrationTests=false", *args]]
        if coverage:
            return [["mvn", "clean", "test", "jacoco:report", *args]]
        return [["mvn", "test", *args]]

    if framework == "gradle":
        if not unit:
            if gradle_has_task(repo_path, "integrationTest"):
                return [["./gradlew", "integrationTest", *args]]
            logger.warning("No integrationTest task found, running default test task")
            return [["./gradlew", "test", *args]]
        if coverage:
            return [["./gradlew", "test", "jacocoTestReport", *args]]
        return [["./gradlew", "test", *args]]

    if framework in ("npm", "yarn"):
        if unit:
            return [[framework, "test", *args]]
        if "test:integration" in _package_scripts(repo_path):
            return [[framework, "run", "test:integration", *args]]
        logger.warning("No test:integration script found in package.json")
        return []

    if framework == "pytest":
        if not unit:
            if os.path.isdir(os.path.join(repo_path, "tests", "integration")):
                return [["pytest", "tests/integration/", *args]]
            logger.warning("No integration tests found in tests/integration/")
            return []
        if coverage:
            return [["pytest", "--cov", "--cov-report=html", "--cov-report=xml", *args]]
        return [["pytest", *args]]

    if framework == "go":
        if not unit:
            return [["go", "test", "-v", "-tags=integration", "./...", *args]]
        if coverage:
            return [
                ["go", "test", "-v", "-coverprofile=coverage.out", "./...", *args],
                ["go", "tool", "cover", "-html=coverage.out", "-o", "coverage.html"],
            ]
        return [["go", "test", "-v", "./...", *args]]

    if framework == "dotnet":
        if not unit:
            return [["dotnet", "test", "--filter", "Category=Integration", *args]]
        if coverage:
            return [["dotnet", "test", "--collect:XPlat Code Coverage", *args]]
        return [["dotnet", "test", *args]]

    if framework == "rspec":
        if not unit:
            return [["bundle", "exec", "rspec", "spec/integration", *args]]
        return [["bundle", "exec", "rspec", *args]]

    if framework == "cargo":
        if not unit:
            return [["cargo", "test", "--test", "*", *args]]
        return [["cargo", "test", *args]]

    if framework == "unknown":
        raise ValueError("Could not detect test framework. Please specify TEST_COMMAND or TEST_TOOL")
    raise ValueError(f"Unknown test framework: {framework}")


def docker_running(repo_path: str) -> bool:
    """True if `docker info` succeeds."""
    return shell.run(["docker", "info"], cwd=repo_path, timeout=60).ok
