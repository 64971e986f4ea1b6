"""Tests for environment normalisation and profiles."""

import pytest

from pipesmith.models.environments import PROFILES, get_profile, normalize_environment
from pipesmith.utils.exceptions import ConfigurationError


class TestNormalizeEnvironment:

    @pytest.mark.parametrize("raw,expected", [
        ("dev", "dev"),
        ("development", "dev"),
        ("Staging", "stage"),
        ("stage", "stage"),
        (" PROD ", "prod"),
        ("production", "prod"),
    ])
    def test_aliases(self, raw, expected):
        assert normalize_environment(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_missing_environment(self, raw):
        with pytest.raises(ConfigurationError) as exc:
            normalize_environment(raw)
        assert exc.value.config_field == "ENVIRONMENT"

    def test_unknown_environment(self):
        with pytest.raises(ConfigurationError, match="Invalid ENVIRONMENT: qa"):
            normalize_environment("qa")


class TestProfiles:

    def test_namespaces(self):
        assert PROFILES["dev"].namespace == "dev"
        assert PROFILES["stage"].namespace == "staging"
        assert PROFILES["prod"].namespace == "production"

    def test_only_prod_requires_approval(self):
        assert [name for name, p in PROFILES.items() if p.requires_approval] == ["prod"]

    def test_smoke_tests_off_for_dev(self):
        assert get_profile("development").smoke_tests is False
        assert get_profile("staging").smoke_tests is True

    def test_prod_probes_prometheus(self):
        assert "/actuator/prometheus" in get_profile("prod").smoke_endpoints
        assert "/actuator/prometheus" not in get_profile("stage").smoke_endpoints
