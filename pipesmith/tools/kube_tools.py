"""Kubernetes tools — kubectl wrappers used by the deploy pipe."""

import base64
import binascii
import json
import os
import subprocess
import tempfile
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from loguru import logger

from pipesmith.models.reports import CommandResult
from pipesmith.tools import shell
from pipesmith.utils.exceptions import ConfigurationError


class Kubectl:
    """kubectl bound to one kubeconfig file."""

    def __init__(self, kubeconfig: str, cwd: Optional[str] = None):
        self.kubeconfig = kubeconfig
        self.cwd = cwd

    @property
    def env(self) -> dict:
        return {"KUBECONFIG": self.kubeconfig}

    def run(self, *args: str, timeout: Optional[int] = None) -> CommandResult:
        return shell.run(["kubectl", *args], cwd=self.cwd, env=self.env, timeout=timeout)

    # ── cluster ──

    def cluster_reachable(self) -> bool:
        return self.run("cluster-info", timeout=60).ok

    def current_context(self) -> str:
        result = self.run("config", "current-context")
        return result.stdout.strip() if result.ok else "unknown"

    # ── namespace ──

    def namespace_exists(self, namespace: str) -> bool:
        return self.run("get", "namespace", namespace).ok

    def create_namespace(self, namespace: str) -> CommandResult:
        return self.run("create", "namespace", namespace)

    def label_namespace(self, namespace: str, **labels: str) -> CommandResult:
        pairs = [f"{k}={v}" for k, v in labels.items()]
        return self.run("label", "namespace", namespace, *pairs, "--overwrite")

    # ── release resources ──

    @staticmethod
    def release_selector(release: str) -> str:
        return f"app.kubernetes.io/instance={release}"

    def list_names(self, kind: str, namespace: str, release: str) -> List[str]:
        """Names ('deployment.apps/x') of a resource kind that belong to a release."""
        result = self.run("get", kind, "-n", namespace, "-l", self.release_selector(release), "-o", "name")
        if not result.ok:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def rollout_status(self, resource: str, namespace: str, timeout: str) -> CommandResult:
        return self.run("rollout", "status", resource, "-n", namespace, f"--timeout={timeout}")

    def recent_events(self, namespace: str, limit: int = 20) -> str:
        result = self.run("get", "events", "-n", namespace, "--sort-by=.lastTimestamp")
        return shell.tail(result.stdout, limit) if result.ok else result.stderr

    def first_service(self, namespace: str, release: str) -> Optional[Tuple[str, int]]:
        """Name and first port of the first service of a release, if any."""
        result = self.run("get", "service", "-n", namespace, "-l", self.release_selector(release), "-o", "json")
        if not result.ok:
            return None
        try:
            items = json.loads(result.stdout).get("items", [])
        except json.JSONDecodeError:
            logger.warning("Failed to parse kubectl service JSON output")
            return None
        for item in items:
            ports = item.get("spec", {}).get("ports", [])
            if ports:
                return item["metadata"]["name"], int(ports[0]["port"])
        return None

    def pod_phases(self, namespace: str, release: str) -> List[Tuple[str, str]]:
        """(pod name, phase or waiting reason) for every pod of a release."""
        result = self.run("get", "pods", "-n", namespace, "-l", self.release_selector(release), "-o", "json")
        if not result.ok:
            return []
        try:
            items = json.loads(result.stdout).get("items", [])
        except json.JSONDecodeError:
            return []

        pods = []
        for item in items:
            status = item.get("status", {})
            phase = status.get("phase", "Unknown")
            for cs in status.get("containerStatuses", []):
                reason = cs.get("state", {}).get("waiting", {}).get("reason")
                if reason:
                    phase = reason
            pods.append((item.get("metadata", {}).get("name", "unknown"), phase))
        return pods

    def pod_logs(self, pod: str, namespace: str, lines: int = 50) -> str:
        result = self.run("logs", pod, "-n", namespace, f"--tail={lines}")
        return result.output

    # ── port-forward ──

    @contextmanager
    def port_forward(
        self,
        service: str,
        namespace: str,
        local_port: int,
        remote_port: int,
        wait_seconds: float = 5.0,
    ) -> Iterator[str]:
        """
        Forward localhost:local_port to a service for the duration of the block.

        Yields the base URL of the tunnel. The kubectl child is terminated on
        exit and killed if it does not stop within five seconds.
        """
        argv = [
            "kubectl", "port-forward", "-n", namespace,
            f"service/{service}", f"{local_port}:{remote_port}",
        ]
        logger.debug("$ {}", " ".join(argv))
        # stderr goes to a file so a chatty tunnel never fills a pipe
        with tempfile.TemporaryFile(mode="w+") as errors:
            proc = subprocess.Popen(
                argv,
                stdout=subprocess.DEVNULL,
                stderr=errors,
                text=True,
                cwd=self.cwd,
                env={**os.environ, **self.env},
            )
            try:
                time.sleep(wait_seconds)
                if proc.poll() is not None:
                    errors.seek(0)
                    raise RuntimeError(f"port-forward exited early: {errors.read().strip()[:300]}")
                yield f"http://localhost:{local_port}"
            finally:
                if proc.poll() is None:
                    proc.terminate()
                    try:
                        proc.wait(timeout=5)
                    except subprocess.TimeoutExpired:
                        proc.kill()
                        proc.wait()
            logger.debug("port-forward to service/{} closed", service)


def install_kubeconfig(value: Optional[str], target_path: str) -> str:
    """
    Materialise the kubeconfig a deploy should use.

    - If value is None, target_path must already exist.
    - If value is a path to an existing file, it is used as-is.
    - Otherwise value is treated as base64 content and written to
      target_path with mode 0600.

    Returns:
        Absolute path of the kubeconfig file.

    Raises:
        ConfigurationError: If nothing usable is configured.
    """
    target = os.path.abspath(os.path.expanduser(target_path))

    if not value:
        if os.path.isfile(target):
            logger.info("Using existing kubeconfig at {}", target)
            return target
        raise ConfigurationError(
            "KUBECONFIG is required (base64-encoded kubeconfig content)", "KUBECONFIG"
        )

    candidate = os.path.expanduser(value.strip())
    if "\n" not in candidate and os.path.isfile(candidate):
        logger.info("Using kubeconfig file {}", candidate)
        return os.path.abspath(candidate)

    try:
        # base64 -w76 output is accepted, any other stray character is not
        content = base64.b64decode("".join(value.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError("KUBECONFIG is not valid base64", "KUBECONFIG") from e
    if not content.strip():
        raise ConfigurationError("KUBECONFIG decoded to an empty file", "KUBECONFIG")

    os.makedirs(os.path.dirname(target), exist_ok=True)
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(content)
    os.chmod(target, 0o600)

    logger.info("Kubeconfig configured at {}", target)
    return target
