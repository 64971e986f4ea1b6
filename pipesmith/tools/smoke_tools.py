"""Smoke-test tools — HTTP probes against a freshly deployed service."""

import time
from typing import List, Optional

import httpx
from loguru import logger

from pipesmith.models.reports import SmokeCheck


def probe(client: httpx.Client, base_url: str, endpoint: str) -> SmokeCheck:
    """GET one endpoint; passes on any 2xx status."""
    url = base_url.rstrip("/") + "/" + endpoint.lstrip("/")
    start = time.time()
    try:
        response = client.get(url)
    except httpx.HTTPError as e:
        logger.warning("✗ {} — {}", endpoint, e)
        return SmokeCheck(
            endpoint=endpoint,
            url=url,
            passed=False,
            response_time_ms=(time.time() - start) * 1000,
            error=str(e) or e.__class__.__name__,
        )

    elapsed_ms = (time.time() - start) * 1000
    passed = 200 <= response.status_code < 300
    if passed:
        logger.info("✓ {} ({}, {:.0f}ms)", endpoint, response.status_code, elapsed_ms)
    else:
        logger.warning("✗ {} ({})", endpoint, response.status_code)

    return SmokeCheck(
        endpoint=endpoint,
        url=url,
        status_code=response.status_code,
        passed=passed,
        response_time_ms=elapsed_ms,
    )


def run_smoke_tests(
    base_url: str,
    endpoints: List[str],
    timeout: float = 10.0,
    client: Optional[httpx.Client] = None,
) -> List[SmokeCheck]:
    """
    Probe every endpoint in order; all of them are checked even after a failure.

    Args:
        base_url: e.g. 'http://localhost:8080'.
        endpoints: Paths such as '/actuator/health'.
        timeout: Per-request timeout in seconds.
        client: Injected client (tests pass one with a MockTransport).

    Returns:
        One SmokeCheck per endpoint.
    """
    owns_client = client is None
    client = client or httpx.Client(timeout=timeout)
    try:
        return [probe(client, base_url, endpoint) for endpoint in endpoints]
    finally:
        if owns_client:
            client.close()
