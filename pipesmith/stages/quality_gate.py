"""Quality Gate — coverage threshold, linting and SonarQube analysis."""

import os
from typing import Optional

from loguru import logger

from pipesmith.config import QualitySettings, settings
from pipesmith.models.reports import QualityReport
from pipesmith.tools import shell
from pipesmith.tools.build_tools import detect_build_tool, ensure_gradle_wrapper_executable
from pipesmith.tools.quality_tools import (
    HTML_REPORTS,
    JACOCO_REPORTS,
    coverage_commands,
    lint_commands,
    parse_jacoco,
    sonar_command,
)
from pipesmith.utils.exceptions import BuildError, ConfigurationError


def run_quality(quality_settings: Optional[QualitySettings] = None, working_dir: Optional[str] = None) -> QualityReport:
    """
    Run the quality pipe.

    QUALITY_COMMAND replaces every standard check. Otherwise: tests with
    coverage, the JaCoCo line-coverage threshold, linters (warnings only)
    and SonarQube when enabled.

    Returns:
        QualityReport; `passed` is False only when a gating check failed.

    Raises:
        ConfigurationError: If SONAR_ENABLED is set without SONAR_TOKEN.
        BuildError: If the custom command or the SonarQube analysis fails.
    """
    qs = quality_settings or QualitySettings()
    cwd = os.path.abspath(working_dir or settings.WORKING_DIR)

    if qs.QUALITY_COMMAND:
        logger.info("Running custom quality command")
        result = shell.run(["sh", "-c", qs.QUALITY_COMMAND], cwd=cwd)
        if not result.ok:
            raise BuildError(
                f"Custom quality command failed:\n{shell.tail(result.output)}",
                step="quality",
                returncode=result.returncode,
            )
        logger.info("✓ Custom quality command completed")
        return QualityReport(build_tool="custom")

    tool = detect_build_tool(cwd)
    report = QualityReport(build_tool=tool)
    if tool == "gradle":
        ensure_gradle_wrapper_executable(cwd)

    # ── Tests with coverage ──
    if qs.COVERAGE_ENABLED:
        commands = coverage_commands(tool)
        if not commands:
            logger.warning("Coverage not available for {}", tool)
        for argv in commands:
            result = shell.run(argv, cwd=cwd)
            if not result.ok:
                report.errors.append(f"{' '.join(argv[:3])} failed")
                logger.warning("Coverage run failed: {}", shell.tail(result.output, 10))
                break

        jacoco = JACOCO_REPORTS.get(tool)
        if jacoco:
            report.coverage = parse_jacoco(os.path.join(cwd, jacoco), qs.COVERAGE_THRESHOLD)
        html = HTML_REPORTS.get(tool)
        if html and os.path.exists(os.path.join(cwd, html)):
            logger.info("Coverage report: {}", html)

        cov = report.coverage
        if cov and (cov.covered + cov.missed) > 0:
            logger.info("Line Coverage: {}%", cov.percent)
            if cov.meets_threshold:
                logger.info("✓ Coverage meets threshold: {}% >= {}%", cov.percent, cov.threshold)
            else:
                logger.warning("Code coverage ({}%) is below threshold ({}%)", cov.percent, cov.threshold)
                if qs.FAIL_ON_LOW_COVERAGE:
                    logger.error("Failing due to low coverage")
                    report.passed = False
                    report.errors.append(f"Coverage {cov.percent}% below threshold {cov.threshold}%")
    else:
        logger.info("Coverage collection disabled")

    # ── Lint ──
    if qs.LINT_ENABLED:
        for argv in lint_commands(tool, cwd):
            result = shell.run(argv, cwd=cwd)
            if not result.ok:
                warning = f"{argv[0]} found issues"
                report.lint_warnings.append(warning)
                logger.warning(warning)
    else:
        logger.info("Linting disabled")

    # ── SonarQube ──
    if qs.SONAR_ENABLED:
        if not qs.SONAR_TOKEN:
            raise ConfigurationError("SONAR_TOKEN is required when SONAR_ENABLED=true", "SONAR_TOKEN")
        project_key = qs.SONAR_PROJECT_KEY
        if not project_key:
            project_key = os.path.basename(cwd)
            logger.warning("SONAR_PROJECT_KEY not set, using directory name: {}", project_key)

        argv = sonar_command(tool, qs.SONAR_HOST_URL, qs.SONAR_TOKEN, project_key, qs.SONAR_ORGANIZATION)
        result = shell.run(argv, cwd=cwd)
        if not result.ok:
            raise BuildError(
                f"SonarQube analysis failed:\n{shell.tail(result.output)}",
                step="sonar",
                returncode=result.returncode,
            )
        report.sonar_ran = True
        logger.info("✓ SonarQube analysis completed: {}/dashboard?id={}", qs.SONAR_HOST_URL, project_key)
    else:
        logger.info("SonarQube analysis disabled")

    return report
