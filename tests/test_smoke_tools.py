"""Tests for HTTP smoke probes."""

import httpx

from pipesmith.models.reports import SmokeTestReport
from pipesmith.tools.smoke_tools import run_smoke_tests


def _client(statuses):
    def handler(request):
        status = statuses.get(request.url.path)
        if status is None:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(status)

    return httpx.Client(transport=httpx.MockTransport(handler))


class TestRunSmokeTests:

    def test_all_pass(self):
        client = _client({"/actuator/health": 200, "/actuator/health/liveness": 204})
        checks = run_smoke_tests(
            "http://localhost:8080", ["/actuator/health", "actuator/health/liveness"], client=client,
        )
        assert [c.passed for c in checks] == [True, True]
        assert checks[1].url == "http://localhost:8080/actuator/health/liveness"
        assert SmokeTestReport(checks=checks).passed

    def test_every_endpoint_is_probed_after_a_failure(self):
        client = _client({"/a": 503, "/b": 200})
        checks = run_smoke_tests("http://localhost:8080/", ["/a", "/b"], client=client)
        assert [(c.endpoint, c.status_code, c.passed) for c in checks] == [("/a", 503, False), ("/b", 200, True)]
        assert not SmokeTestReport(checks=checks).passed

    def test_transport_error_is_a_failed_check(self):
        checks = run_smoke_tests("http://localhost:8080", ["/missing"], client=_client({}))
        assert checks[0].passed is False
        assert checks[0].status_code is None
        assert "connection refused" in checks[0].error


class TestSmokeTestReport:

    def test_skipped_passes(self):
        assert SmokeTestReport(skipped=True).passed

    def test_error_fails(self):
        assert not SmokeTestReport(error="No service found for release app").passed

    def test_nothing_checked_is_not_a_pass(self):
        assert not SmokeTestReport(checks=[]).passed
        assert SmokeTestReport(skipped=True).passed
