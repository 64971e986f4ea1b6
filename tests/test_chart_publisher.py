"""Tests for the helm pipe."""

from unittest.mock import patch

import pytest

from conftest import failed, ok
from pipesmith.config import HelmSettings
from pipesmith.stages.chart_publisher import publish_chart
from pipesmith.tools.build_info import read_build_info
from pipesmith.utils.exceptions import ChartError, ConfigurationError


@pytest.fixture
def chart(tmp_path):
    chart_dir = tmp_path / "helm-chart"
    chart_dir.mkdir()
    (chart_dir / "Chart.yaml").write_text("apiVersion: v2\nname: app\nversion: 1.0.0\nappVersion: 1.0.0\n")
    (chart_dir / "values-dev.yaml").write_text("replicaCount: 1\n")
    (chart_dir / "values-prod.yaml").write_text("replicaCount: 3\n")
    return chart_dir


@pytest.fixture
def helm(tmp_path):
    """Helm mock whose `package` call drops the .tgz where helm would."""
    with patch("pipesmith.stages.chart_publisher.Helm") as helm_cls, \
            patch("pipesmith.stages.chart_publisher.get_git_info", return_value=("abc1234", "main")):
        instance = helm_cls.return_value
        for name in ("lint", "template", "dependency_update", "repo_index", "registry_login", "push"):
            getattr(instance, name).return_value = ok()

        def package(chart_path, destination):
            version = (tmp_path / chart_path / "Chart.yaml").read_text().split("version: ")[1].split("\n")[0]
            (tmp_path / destination / f"app-{version}.tgz").write_bytes(b"tgz")
            return ok()

        instance.package.side_effect = package
        yield instance


class TestPublishChart:

    def test_requires_chart_path(self, tmp_path):
        with pytest.raises(ConfigurationError):
            publish_chart(HelmSettings(), str(tmp_path))

    def test_missing_chart_directory(self, tmp_path):
        with pytest.raises(ChartError, match="not found"):
            publish_chart(HelmSettings(HELM_CHART_PATH="./helm-chart"), str(tmp_path))

    def test_package_without_registry(self, chart, helm, tmp_path):
        info = publish_chart(HelmSettings(HELM_CHART_PATH="helm-chart"), str(tmp_path))

        assert info.name == "app"
        assert info.package == "helm-packages/app-1.0.0.tgz"
        assert not info.pushed
        helm.lint.assert_called_once_with("helm-chart")
        rendered = [c.args for c in helm.template.call_args_list]
        assert rendered == [
            ("helm-chart",),
            ("helm-chart", "helm-chart/values-dev.yaml"),
            ("helm-chart", "helm-chart/values-prod.yaml"),
        ]
        helm.dependency_update.assert_not_called()

        record = read_build_info("helm-chart.txt", str(tmp_path))
        assert record["HELM_CHART_NAME"] == "app"
        assert record["HELM_CHART_PACKAGE"] == "helm-packages/app-1.0.0.tgz"
        assert record["GIT_COMMIT"] == "abc1234"

    def test_version_override(self, chart, helm, tmp_path):
        info = publish_chart(HelmSettings(HELM_CHART_PATH="helm-chart", CHART_VERSION="2.0.0"), str(tmp_path))
        assert info.version == "2.0.0"
        assert info.package == "helm-packages/app-2.0.0.tgz"
        assert "version: 2.0.0" in (chart / "Chart.yaml").read_text()

    def test_lint_failure(self, chart, helm, tmp_path):
        helm.lint.return_value = failed("[ERROR] templates/: parse error")
        with pytest.raises(ChartError) as exc:
            publish_chart(HelmSettings(HELM_CHART_PATH="helm-chart"), str(tmp_path))
        assert exc.value.step == "lint"
        helm.package.assert_not_called()

    def test_oci_push(self, chart, helm, tmp_path):
        info = publish_chart(
            HelmSettings(
                HELM_CHART_PATH="helm-chart",
                HELM_REGISTRY="oci://registry.example.com/charts",
                HELM_REGISTRY_USERNAME="bot",
                HELM_REGISTRY_PASSWORD="pw",
            ),
            str(tmp_path),
        )
        assert info.pushed
        helm.registry_login.assert_called_once_with("registry.example.com", "bot", "pw")
        helm.push.assert_called_once_with("helm-packages/app-1.0.0.tgz", "oci://registry.example.com/charts")

    @patch("pipesmith.stages.chart_publisher.push_chartmuseum")
    def test_chartmuseum_push(self, mock_push, chart, helm, tmp_path):
        info = publish_chart(
            HelmSettings(HELM_CHART_PATH="helm-chart", HELM_REGISTRY="https://charts.example.com"),
            str(tmp_path),
        )
        assert info.pushed
        mock_push.assert_called_once_with(
            str(tmp_path / "helm-packages" / "app-1.0.0.tgz"), "https://charts.example.com", None, None,
        )
        helm.registry_login.assert_not_called()

    def test_push_needs_package(self, chart, helm, tmp_path):
        with pytest.raises(ChartError, match="Nothing to push"):
            publish_chart(
                HelmSettings(HELM_CHART_PATH="helm-chart", PACKAGE_CHART=False, HELM_REGISTRY="oci://r.io/c"),
                str(tmp_path),
            )
