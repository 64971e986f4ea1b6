"""Build Runner — the build and test pipes."""

import os
import time
from typing import List, Optional

from loguru import logger

from pipesmith.config import BuildSettings, TestingSettings, settings
from pipesmith.models.reports import BuildRun, TestRun
from pipesmith.tools import shell
from pipesmith.tools.build_tools import build_commands, detect_build_tool, ensure_gradle_wrapper_executable
from pipesmith.tools.test_tools import detect_test_framework, docker_running, framework_commands
from pipesmith.utils.exceptions import BuildError, ConfigurationError


def custom_command(command: str, args: Optional[str] = None) -> List[str]:
    """A user-supplied command string, run through sh like the pipes' eval."""
    return ["sh", "-c", f"{command} {args or ''}".strip()]


def _run_all(commands: List[List[str]], cwd: str) -> tuple:
    """Run commands in order, stopping at the first failure. Returns (ok, output, argv_run)."""
    outputs = []
    for argv in commands:
        result = shell.run(argv, cwd=cwd)
        outputs.append(result.output)
        if not result.ok:
            return False, "\n".join(outputs), argv
    return True, "\n".join(outputs), commands[-1] if commands else []


def run_build(build_settings: Optional[BuildSettings] = None, working_dir: Optional[str] = None) -> BuildRun:
    """
    Run the build pipe.

    BUILD_COMMAND wins over detection; otherwise BUILD_TOOL (or the detected
    tool) selects the per-tool commands.

    Raises:
        BuildError: If the tool is unknown or a build command fails.
    """
    bs = build_settings or BuildSettings()
    cwd = os.path.abspath(working_dir or settings.WORKING_DIR)
    start = time.time()

    if bs.BUILD_COMMAND:
        tool = "custom"
        commands = [custom_command(bs.BUILD_COMMAND, bs.BUILD_ARGS)]
    else:
        tool = bs.BUILD_TOOL or detect_build_tool(cwd)
        try:
            commands = build_commands(tool, cwd, bs.BUILD_ARGS)
        except ValueError as e:
            raise BuildError(str(e), step="build") from e
        if tool == "gradle":
            ensure_gradle_wrapper_executable(cwd)

    if not commands:
        return BuildRun(tool=tool, skipped=True, success=True)

    logger.info("🔨 Building with {}...", tool)
    ok, output, argv = _run_all(commands, cwd)
    run = BuildRun(
        tool=tool,
        command=argv,
        success=ok,
        output=shell.tail(output),
        duration_ms=(time.time() - start) * 1000,
    )
    if not ok:
        raise BuildError(f"Build failed with {tool}:\n{run.output}", step="build")

    logger.info("✓ Build completed in {:.1f}s", run.duration_ms / 1000)
    return run


def _run_test_type(framework: str, test_type: str, ts: TestingSettings, cwd: str) -> TestRun:
    start = time.time()
    if framework == "custom":
        commands = [custom_command(ts.TEST_COMMAND, ts.TEST_ARGS)]
    else:
        try:
            commands = framework_commands(framework, test_type, cwd, ts.COVERAGE_ENABLED, ts.TEST_ARGS)
        except ValueError as e:
            raise BuildError(str(e), step=f"{test_type}_tests") from e

    if not commands:
        return TestRun(framework=framework, test_type=test_type, skipped=True, success=True)

    logger.info("🧪 Running {} {} tests...", framework, test_type)
    ok, output, argv = _run_all(commands, cwd)
    run = TestRun(
        framework=framework,
        test_type=test_type,
        command=argv,
        success=ok,
        output=shell.tail(output),
        duration_ms=(time.time() - start) * 1000,
    )
    if ok:
        logger.info("✓ {} {} tests completed", framework, test_type)
    else:
        run.errors.append(f"{framework} {test_type} tests failed")
        logger.error("✗ {} {} tests failed", framework, test_type)
    return run


def run_tests(test_settings: Optional[TestingSettings] = None, working_dir: Optional[str] = None) -> List[TestRun]:
    """
    Run the test pipe: unit tests, then integration tests when enabled.

    Integration tests stop at the first failed unit run.

    Raises:
        ConfigurationError: If integration tests need Docker and it is not running.
        BuildError: If the framework cannot be determined.
    """
    ts = test_settings or TestingSettings()
    cwd = os.path.abspath(working_dir or settings.WORKING_DIR)

    if ts.SKIP_TESTS:
        logger.warning("Tests skipped (SKIP_TESTS=true)")
        return [TestRun(framework=ts.TEST_TOOL or "none", skipped=True, success=True)]

    if ts.TEST_COMMAND:
        framework = "custom"
    else:
        framework = ts.TEST_TOOL or detect_test_framework(cwd)
    if framework == "gradle":
        ensure_gradle_wrapper_executable(cwd)

    runs = [_run_test_type(framework, "unit", ts, cwd)]

    if ts.INTEGRATION_TESTS and runs[0].success:
        if ts.DOCKER_REQUIRED:
            if not docker_running(cwd):
                raise ConfigurationError(
                    "Docker is not running. Integration tests require Docker for TestContainers",
                    "DOCKER_REQUIRED",
                )
            logger.info("✓ Docker is running")
        runs.append(_run_test_type(framework, "integration", ts, cwd))

    return runs
