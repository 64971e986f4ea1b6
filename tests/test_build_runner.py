"""Tests for build-tool and test-framework detection and the build/test pipes."""

import json
from unittest.mock import patch

import pytest

from conftest import failed, ok
from pipesmith import config
from pipesmith.config import BuildSettings
from pipesmith.stages.build_runner import run_build, run_tests
from pipesmith.tools.build_tools import build_commands, detect_build_tool, detect_scan_build_tool
from pipesmith.tools.test_tools import detect_test_framework, framework_commands
from pipesmith.utils.exceptions import BuildError, ConfigurationError


def _touch(directory, *names):
    for name in names:
        (directory / name).write_text("{}" if name.endswith(".json") else "")


class TestDetection:

    @pytest.mark.parametrize("files,expected", [
        (["pom.xml", "package.json"], "maven"),
        (["build.gradle.kts"], "gradle"),
        (["package.json"], "npm"),
        (["pyproject.toml"], "python"),
        (["go.mod"], "go"),
        (["App.csproj"], "dotnet"),
        (["Cargo.toml"], "rust"),
        (["Gemfile"], "ruby"),
        ([], "unknown"),
    ])
    def test_build_tool(self, tmp_path, files, expected):
        _touch(tmp_path, *files)
        assert detect_build_tool(str(tmp_path)) == expected

    def test_scan_tool_prefers_go_over_python(self, tmp_path):
        _touch(tmp_path, "go.mod", "requirements.txt")
        assert detect_scan_build_tool(str(tmp_path)) == "go"
        assert detect_build_tool(str(tmp_path)) == "python"

    @pytest.mark.parametrize("files,expected", [
        (["pom.xml"], "maven"),
        (["package.json", "yarn.lock"], "yarn"),
        (["package.json"], "npm"),
        (["pytest.ini"], "pytest"),
        (["Gemfile"], "rspec"),
        (["Cargo.toml"], "cargo"),
        ([], "unknown"),
    ])
    def test_test_framework(self, tmp_path, files, expected):
        _touch(tmp_path, *files)
        assert detect_test_framework(str(tmp_path)) == expected


class TestCommands:

    def test_build_commands(self, tmp_path):
        assert build_commands("maven", str(tmp_path), "-DskipTests -q") == [["mvn", "clean", "compile", "-DskipTests", "-q"]]
        assert build_commands("npm", str(tmp_path)) == [["npm", "install"], ["npm", "run", "build"]]
        assert build_commands("python", str(tmp_path)) == []

    def test_unknown_build_tool(self, tmp_path):
        with pytest.raises(ValueError, match="BUILD_COMMAND or BUILD_TOOL"):
            build_commands("unknown", str(tmp_path))
        with pytest.raises(ValueError, match="Unsupported build tool: ant"):
            build_commands("ant", str(tmp_path))

    def test_maven_test_commands(self, tmp_path):
        assert framework_commands("maven", "unit", str(tmp_path)) == [["mvn", "test"]]
        assert framework_commands("maven", "unit", str(tmp_path), coverage=True) == [["mvn", "clean", "test", "jacoco:report"]]
        assert framework_commands("maven", "integration", str(tmp_path))[0][:2] == ["mvn", "verify"]

    def test_npm_integration_needs_script(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({"scripts": {"test": "jest"}}))
        assert framework_commands("npm", "integration", str(tmp_path)) == []

        (tmp_path / "package.json").write_text(json.dumps({"scripts": {"test:integration": "jest -c it"}}))
        assert framework_commands("yarn", "integration", str(tmp_path)) == [["yarn", "run", "test:integration"]]

    def test_pytest_integration_needs_directory(self, tmp_path):
        assert framework_commands("pytest", "integration", str(tmp_path)) == []
        (tmp_path / "tests" / "integration").mkdir(parents=True)
        assert framework_commands("pytest", "integration", str(tmp_path)) == [["pytest", "tests/integration/"]]


class TestRunBuild:

    @patch("pipesmith.stages.build_runner.shell.run")
    def test_detected_build(self, mock_run, tmp_path):
        _touch(tmp_path, "pom.xml")
        mock_run.return_value = ok("BUILD SUCCESS")

        run = run_build(BuildSettings(), str(tmp_path))
        assert run.success
        assert run.tool == "maven"
        assert mock_run.call_args.args[0] == ["mvn", "clean", "compile"]

    @patch("pipesmith.stages.build_runner.shell.run")
    def test_custom_command_wins(self, mock_run, tmp_path):
        _touch(tmp_path, "pom.xml")
        mock_run.return_value = ok()

        run = run_build(BuildSettings(BUILD_COMMAND="make release"), str(tmp_path))
        assert run.tool == "custom"
        assert mock_run.call_args.args[0] == ["sh", "-c", "make release"]

    @patch("pipesmith.stages.build_runner.shell.run")
    def test_custom_command_keeps_args(self, mock_run, tmp_path):
        mock_run.return_value = ok()
        run_build(BuildSettings(BUILD_COMMAND="make release", BUILD_ARGS="VERSION=2"), str(tmp_path))
        assert mock_run.call_args.args[0] == ["sh", "-c", "make release VERSION=2"]

    @patch("pipesmith.stages.build_runner.shell.run")
    def test_npm_stops_at_first_failure(self, mock_run, tmp_path):
        _touch(tmp_path, "package.json")
        mock_run.return_value = failed("npm ERR! missing script: build")

        with pytest.raises(BuildError, match="Build failed with npm"):
            run_build(BuildSettings(), str(tmp_path))
        assert mock_run.call_count == 1

    def test_unknown_project(self, tmp_path):
        with pytest.raises(BuildError, match="Could not detect build tool"):
            run_build(BuildSettings(), str(tmp_path))

    @patch("pipesmith.stages.build_runner.shell.run")
    def test_python_without_setup_py_is_skipped(self, mock_run, tmp_path):
        _touch(tmp_path, "requirements.txt")
        run = run_build(BuildSettings(), str(tmp_path))
        assert run.skipped
        mock_run.assert_not_called()


class TestRunTests:

    def test_skip_tests(self, tmp_path):
        runs = run_tests(config.TestingSettings(SKIP_TESTS=True), str(tmp_path))
        assert runs[0].skipped and runs[0].success

    @patch("pipesmith.stages.build_runner.shell.run")
    def test_unit_and_integration(self, mock_run, tmp_path):
        _touch(tmp_path, "pom.xml")
        mock_run.return_value = ok()

        runs = run_tests(config.TestingSettings(INTEGRATION_TESTS=True), str(tmp_path))
        assert [(r.framework, r.test_type, r.success) for r in runs] == [
            ("maven", "unit", True), ("maven", "integration", True),
        ]

    @patch("pipesmith.stages.build_runner.shell.run")
    def test_failed_unit_tests_skip_integration(self, mock_run, tmp_path):
        _touch(tmp_path, "go.mod")
        mock_run.return_value = failed("FAIL")

        runs = run_tests(config.TestingSettings(INTEGRATION_TESTS=True), str(tmp_path))
        assert len(runs) == 1
        assert not runs[0].success
        assert runs[0].errors == ["go unit tests failed"]

    @patch("pipesmith.stages.build_runner.docker_running", return_value=False)
    @patch("pipesmith.stages.build_runner.shell.run")
    def test_integration_requires_docker(self, mock_run, _, tmp_path):
        _touch(tmp_path, "pom.xml")
        mock_run.return_value = ok()

        with pytest.raises(ConfigurationError, match="Docker is not running"):
            run_tests(config.TestingSettings(INTEGRATION_TESTS=True, DOCKER_REQUIRED=True), str(tmp_path))

    @patch("pipesmith.stages.build_runner.shell.run")
    def test_custom_test_command(self, mock_run, tmp_path):
        mock_run.return_value = ok()
        runs = run_tests(config.TestingSettings(TEST_COMMAND="make test"), str(tmp_path))
        assert runs[0].framework == "custom"
        assert mock_run.call_args.args[0] == ["sh", "-c", "make test"]

    @patch("pipesmith.stages.build_runner.shell.run")
    def test_custom_test_command_keeps_args(self, mock_run, tmp_path):
        mock_run.return_value = ok()
        run_tests(config.TestingSettings(TEST_COMMAND="make test", TEST_ARGS="-j4"), str(tmp_path))
        assert mock_run.call_args.args[0] == ["sh", "-c", "make test -j4"]

    @patch("pipesmith.stages.build_runner.shell.run")
    def test_custom_command_reruns_for_integration(self, mock_run, tmp_path):
        mock_run.return_value = ok()
        runs = run_tests(config.TestingSettings(TEST_COMMAND="make test", INTEGRATION_TESTS=True), str(tmp_path))
        assert [(r.framework, r.test_type) for r in runs] == [("custom", "unit"), ("custom", "integration")]
        assert mock_run.call_count == 2
