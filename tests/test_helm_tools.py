"""Tests for Helm argv construction, the Helm wrapper, Chart.yaml access and ChartMuseum pushes."""

import json
from unittest.mock import patch

import httpx
import pytest

from conftest import failed, ok
from pipesmith.tools.helm_tools import (
    Helm,
    build_upgrade_args,
    is_remote_chart,
    oci_host,
    push_chartmuseum,
    read_chart,
    set_chart_version,
)
from pipesmith.utils.exceptions import ChartError


BASE = dict(
    release="app",
    chart="./helm-chart",
    namespace="staging",
    values_file="./helm-chart/values-stage.yaml",
    timeout="15m",
    environment="stage",
)


class TestBuildUpgradeArgs:

    def test_minimal_upgrade(self):
        args = build_upgrade_args(**BASE)
        assert args[:4] == ["helm", "upgrade", "app", "./helm-chart"]
        assert "--install" in args
        assert args[args.index("--namespace") + 1] == "staging"
        assert args[args.index("--values") + 1] == "./helm-chart/values-stage.yaml"
        assert args[args.index("--timeout") + 1] == "15m"
        assert "--wait" in args and "--atomic" in args
        assert "--dry-run" not in args
        assert "environment=stage" in args
        assert not any(a.startswith("image.tag=") for a in args)

    def test_image_tag_and_dry_run(self):
        args = build_upgrade_args(**BASE, dry_run=True, image_tag="abc123")
        assert "--dry-run" in args and "--debug" in args
        assert args[args.index("image.tag=abc123") - 1] == "--set"

    def test_no_wait_drops_atomic(self):
        args = build_upgrade_args(**BASE, wait=False)
        assert "--wait" not in args
        assert "--atomic" not in args

    def test_labels_are_set_as_strings(self):
        args = build_upgrade_args(**BASE, labels={"gitCommit": "0123456", "deployedBy": "pipesmith"})
        assert args[args.index("labels.gitCommit=0123456") - 1] == "--set-string"
        assert "labels.deployedBy=pipesmith" in args

    def test_canary(self):
        args = build_upgrade_args(**BASE, canary_weight=25)
        assert "canary.enabled=true" in args
        assert "canary.weight=25" in args
        assert "canary.enabled=true" not in build_upgrade_args(**BASE)

    def test_remote_charts(self):
        assert is_remote_chart("oci://registry.io/charts/app")
        assert is_remote_chart("https://charts.example.com/app-1.0.0.tgz")
        assert not is_remote_chart("./helm-chart")


class TestHelm:

    @patch("pipesmith.tools.helm_tools.shell.run")
    def test_kubeconfig_is_passed_in_env(self, mock_run):
        mock_run.return_value = ok()
        Helm("/tmp/kc", cwd="/work").status("app", "dev")

        argv = mock_run.call_args.args[0]
        assert argv == ["helm", "status", "app", "-n", "dev"]
        assert mock_run.call_args.kwargs["env"] == {"KUBECONFIG": "/tmp/kc"}
        assert mock_run.call_args.kwargs["cwd"] == "/work"

    @patch("pipesmith.tools.helm_tools.shell.run")
    def test_no_kubeconfig_no_env(self, mock_run):
        mock_run.return_value = ok()
        Helm().lint("./chart", "./chart/values-dev.yaml")
        assert mock_run.call_args.args[0] == ["helm", "lint", "./chart", "--values", "./chart/values-dev.yaml"]
        assert mock_run.call_args.kwargs["env"] is None

    @patch("pipesmith.tools.helm_tools.shell.run")
    def test_current_revision(self, mock_run):
        mock_run.return_value = ok(json.dumps([{"revision": 7, "status": "deployed"}]))
        assert Helm("/kc").current_revision("app", "dev") == 7

    @pytest.mark.parametrize("result", [failed("release: not found"), ok("[]"), ok("not json")])
    @patch("pipesmith.tools.helm_tools.shell.run")
    def test_current_revision_defaults_to_zero(self, mock_run, result):
        mock_run.return_value = result
        assert Helm("/kc").current_revision("app", "dev") == 0

    @patch("pipesmith.tools.helm_tools.shell.run")
    def test_rollback(self, mock_run):
        mock_run.return_value = ok()
        Helm("/kc").rollback("app", 3, "production", "10m")
        assert mock_run.call_args.args[0] == [
            "helm", "rollback", "app", "3", "-n", "production", "--wait", "--timeout", "10m",
        ]

    @patch("pipesmith.tools.helm_tools.shell.run")
    def test_registry_login_uses_stdin(self, mock_run):
        mock_run.return_value = ok()
        Helm().registry_login("registry.io", "bot", "s3cret")
        assert "--password-stdin" in mock_run.call_args.args[0]
        assert "s3cret" not in mock_run.call_args.args[0]
        assert mock_run.call_args.kwargs["input_text"] == "s3cret"


class TestChartYaml:

    def _chart(self, tmp_path, content):
        chart = tmp_path / "helm-chart"
        chart.mkdir()
        (chart / "Chart.yaml").write_text(content)
        return str(chart)

    def test_read_chart(self, tmp_path):
        chart = self._chart(tmp_path, "apiVersion: v2\nname: app\nversion: 1.0.0\nappVersion: '2.1'\n")
        data = read_chart(chart)
        assert data["name"] == "app"
        assert data["version"] == "1.0.0"

    def test_missing_chart_yaml(self, tmp_path):
        with pytest.raises(ChartError, match="Chart.yaml not found"):
            read_chart(str(tmp_path))

    def test_chart_without_version(self, tmp_path):
        chart = self._chart(tmp_path, "name: app\n")
        with pytest.raises(ChartError, match="name and version"):
            read_chart(chart)

    def test_set_chart_version_keeps_app_version(self, tmp_path):
        chart = self._chart(tmp_path, "name: app\nversion: 1.0.0\nappVersion: 1.0.0\n")
        set_chart_version(chart, "1.2.0")
        content = (tmp_path / "helm-chart" / "Chart.yaml").read_text()
        assert "version: 1.2.0\n" in content
        assert "appVersion: 1.0.0" in content


class TestChartMuseum:

    def _package(self, tmp_path):
        pkg = tmp_path / "app-1.0.0.tgz"
        pkg.write_bytes(b"chart-bytes")
        return str(pkg)

    def test_push(self, tmp_path):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = request.content
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(201, json={"saved": True})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        push_chartmuseum(self._package(tmp_path), "https://charts.example.com/", "bot", "pw", client=client)

        assert seen["url"] == "https://charts.example.com/api/charts"
        assert seen["body"] == b"chart-bytes"
        assert seen["auth"].startswith("Basic ")

    def test_push_without_credentials(self, tmp_path):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(201)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        push_chartmuseum(self._package(tmp_path), "https://charts.example.com", client=client)
        assert seen["auth"] is None

    def test_push_rejected(self, tmp_path):
        client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(409, text="exists")))
        with pytest.raises(ChartError) as exc:
            push_chartmuseum(self._package(tmp_path), "https://charts.example.com", client=client)
        assert exc.value.returncode == 409

    def test_oci_host(self):
        assert oci_host("oci://registry.example.com/charts") == "registry.example.com"
