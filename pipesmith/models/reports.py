"""Data models for pipe results and reports."""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field


SEVERITIES = ("critical", "high", "medium", "low", "info")


class CommandResult(BaseModel):
    """Outcome of one external command invocation."""

    args: List[str] = Field(default_factory=list, description="argv as executed")
    returncode: int = Field(default=0, description="Process exit code (127 = not found, 124 = timeout)")
    stdout: str = Field(default="")
    stderr: str = Field(default="")
    duration_ms: float = Field(default=0.0)

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return (self.stdout + "\n" + self.stderr).strip()


class SecurityFinding(BaseModel):
    """A single finding from a security scan tool."""

    tool: str = Field(description="Scanner that produced this finding: gitleaks | grype | trivy | checkov | hadolint | npm_audit | bandit")
    severity: str = Field(description="Severity level: critical | high | medium | low | info")
    target: str = Field(default="", description="File, package or image the finding applies to")
    message: str = Field(description="Human-readable description of the issue")
    rule_id: Optional[str] = Field(default=None, description="Scanner rule or advisory ID")


class ScanOutcome(BaseModel):
    """Result of one scanner run inside the security pipe."""

    scan: str = Field(description="Scan category: secrets | sca | sast | sbom | iac | dockerfile | container")
    tool: str = Field(default="none")
    ran: bool = Field(default=False, description="False when the scan was disabled or the tool is missing")
    failed: bool = Field(default=False, description="True when a gating tool exited non-zero")
    findings: List[SecurityFinding] = Field(default_factory=list)
    advisories: List[SecurityFinding] = Field(
        default_factory=list, description="Reported matches that do not count towards the gate"
    )
    report_path: Optional[str] = None
    note: Optional[str] = None

    def count(self, severity: str) -> int:
        return sum(1 for f in self.findings if f.severity == severity)


class SecurityReport(BaseModel):
    """Aggregated security scan report across all scans."""

    outcomes: List[ScanOutcome] = Field(default_factory=list)
    reports_dir: str = Field(default="security-reports")
    passed: bool = Field(default=True, description="False when a FAIL_ON_* gate tripped")
    verdict: str = Field(default="", description="Human-readable gate decision")
    scan_duration_ms: float = Field(default=0.0, description="Total scan time in milliseconds")

    @property
    def findings(self) -> List[SecurityFinding]:
        return [f for o in self.outcomes for f in o.findings]

    @property
    def scan_failures(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def scans_run(self) -> int:
        return sum(1 for o in self.outcomes if o.ran)

    @property
    def critical_count(self) -> int:
        return sum(o.count("critical") for o in self.outcomes)

    @property
    def high_count(self) -> int:
        return sum(o.count("high") for o in self.outcomes)

    @property
    def medium_count(self) -> int:
        return sum(o.count("medium") for o in self.outcomes)

    @property
    def low_count(self) -> int:
        return sum(o.count("low") for o in self.outcomes)


class SmokeCheck(BaseModel):
    """A single HTTP probe against a deployed service."""

    endpoint: str
    url: str
    status_code: Optional[int] = None
    passed: bool = False
    response_time_ms: float = 0.0
    error: Optional[str] = None


class SmokeTestReport(BaseModel):
    """All smoke probes for one deployment."""

    service: Optional[str] = None
    checks: List[SmokeCheck] = Field(default_factory=list)
    skipped: bool = False
    error: Optional[str] = Field(default=None, description="Set when the probes could not run at all")

    @property
    def passed(self) -> bool:
        if self.skipped:
            return True
        if self.error or not self.checks:
            return False
        return all(c.passed for c in self.checks)


class DeployResult(BaseModel):
    """Result of a deployment attempt."""

    environment: str = Field(default="", description="dev | stage | prod")
    namespace: str = Field(default="")
    release: str = Field(default="")
    chart: str = Field(default="")
    image_tag: Optional[str] = None
    cluster: Optional[str] = None
    previous_revision: int = Field(default=0, description="Helm revision recorded before the upgrade")
    status: str = Field(default="pending", description="Deployment status: success | failed | rolled_back | dry_run")
    smoke_tests: Optional[SmokeTestReport] = None
    errors: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status in ("success", "dry_run")

    def to_markdown(self) -> str:
        """Render a Markdown summary of the deployment."""
        icon = "✅" if self.succeeded else "❌"
        lines = [f"# {icon} Deployment to {self.environment or 'unknown'}\n"]
        lines.append(f"- Release: `{self.release}`")
        lines.append(f"- Namespace: `{self.namespace}`")
        lines.append(f"- Chart: `{self.chart}`")
        lines.append(f"- Image tag: `{self.image_tag or 'chart default'}`")
        if self.cluster:
            lines.append(f"- Cluster: `{self.cluster}`")
        lines.append(f"- Previous revision: {self.previous_revision}")
        lines.append(f"- Status: **{self.status}**")
        lines.append("")

        if self.smoke_tests and not self.smoke_tests.skipped:
            st = self.smoke_tests
            lines.append(f"## Smoke Tests {'✅' if st.passed else '❌'}")
            if st.error:
                lines.append(f"- {st.error}")
            for c in st.checks:
                mark = "✓" if c.passed else "✗"
                code = c.status_code if c.status_code is not None else c.error
                lines.append(f"- {mark} `{c.endpoint}` ({code})")
            lines.append("")

        if self.errors:
            lines.append("## ⚠️ Errors")
            for err in self.errors:
                lines.append(f"- {err}")
            lines.append("")

        return "\n".join(lines)


class ChartInfo(BaseModel):
    """Metadata of a linted / packaged Helm chart."""

    path: str
    name: str
    version: str
    app_version: Optional[str] = None
    package: Optional[str] = None
    registry: Optional[str] = None
    pushed: bool = False


class ImageInfo(BaseModel):
    """A built container image."""

    registry: str
    repository: str
    tag: str
    git_commit: str = "unknown"
    git_branch: str = "unknown"
    pushed: bool = False
    scan_passed: Optional[bool] = None
    vulnerabilities: Dict[str, int] = Field(default_factory=dict)

    @property
    def image_name(self) -> str:
        return f"{self.registry}/{self.repository}"

    @property
    def full_image(self) -> str:
        return f"{self.image_name}:{self.tag}"

    @property
    def latest_image(self) -> str:
        return f"{self.image_name}:latest"


class BuildRun(BaseModel):
    """Result of a build-pipe execution."""

    tool: str = Field(description="Build tool: maven | gradle | npm | python | go | dotnet | rust | ruby | custom")
    command: List[str] = Field(default_factory=list)
    success: bool = False
    skipped: bool = False
    output: str = Field(default="", description="Tail of the command output")
    duration_ms: float = 0.0


class TestRun(BaseModel):
    """Result of a single test-framework execution."""

    framework: str = Field(description="Test framework: maven | gradle | npm | yarn | pytest | go | dotnet | cargo | rspec | custom")
    test_type: str = Field(default="unit", description="unit | integration")
    command: List[str] = Field(default_factory=list)
    success: bool = False
    skipped: bool = False
    errors: List[str] = Field(default_factory=list)
    output: str = Field(default="", description="Tail of the test output")
    duration_ms: float = 0.0


class CoverageReport(BaseModel):
    """Line coverage measured from a coverage report."""

    source: Optional[str] = None
    covered: int = 0
    missed: int = 0
    threshold: float = 80.0

    @property
    def percent(self) -> float:
        total = self.covered + self.missed
        if total == 0:
            return 0.0
        return round(self.covered / total * 100, 2)

    @property
    def meets_threshold(self) -> bool:
        return self.percent >= self.threshold


class QualityReport(BaseModel):
    """Aggregate of the quality pipe."""

    build_tool: str = "unknown"
    coverage: Optional[CoverageReport] = None
    lint_warnings: List[str] = Field(default_factory=list)
    sonar_ran: bool = False
    passed: bool = True
    errors: List[str] = Field(default_factory=list)
