"""pipesmith CLI — Typer-based command-line interface, one command per pipe."""

import os
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.markdown import Markdown

from pipesmith.utils.exceptions import PipesmithError

app = typer.Typer(
    name="pipesmith",
    help="🔧 pipesmith — CI/CD pipes for building, scanning and deploying to Kubernetes.",
    no_args_is_help=True,
)
console = Console()


def _working_dir(path: str) -> str:
    from pipesmith.config import settings

    settings.WORKING_DIR = os.path.abspath(path)
    return settings.WORKING_DIR


def _start(verbose: bool) -> None:
    from pipesmith.config import settings
    from pipesmith.utils.logging import setup_logging

    if verbose:
        settings.VERBOSE = True
    setup_logging()


def _fail(error: PipesmithError) -> None:
    console.print(f"\n❌ [bold red]{error}[/bold red]")
    raise typer.Exit(code=1)


@app.command()
def deploy(
    repo_path: str = typer.Argument(".", help="Directory holding the chart and build-info."),
    environment: Optional[str] = typer.Option(None, "--env", "-e", help="dev | stage | prod"),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Target namespace."),
    release: Optional[str] = typer.Option(None, "--release", help="Helm release name."),
    chart: Optional[str] = typer.Option(None, "--chart", help="Helm chart path or remote reference."),
    image_tag: Optional[str] = typer.Option(None, "--image-tag", help="Image tag to deploy."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Render and validate without deploying."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Approve production deploys without asking."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output."),
):
    """Deploy the Helm release: upgrade, wait for rollout, smoke test, roll back on failure."""
    from pipesmith.config import DeploySettings
    from pipesmith.models.environments import get_profile, normalize_environment

    _start(verbose)
    repo_path = _working_dir(repo_path)

    overrides = {
        "ENVIRONMENT": environment,
        "NAMESPACE": namespace,
        "RELEASE_NAME": release,
        "HELM_CHART_PATH": chart,
        "IMAGE_TAG": image_tag,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if dry_run:
        overrides["DRY_RUN"] = True
    if yes:
        overrides["AUTO_APPROVE"] = True

    try:
        deploy_settings = DeploySettings(**overrides)
        env = normalize_environment(deploy_settings.ENVIRONMENT)
        profile = get_profile(env)
    except PipesmithError as e:
        _fail(e)

    console.print(Panel.fit(
        f"🚀 [bold]Deploying[/bold] {deploy_settings.RELEASE_NAME} to [bold]{env}[/bold]\n"
        f"📂 Repo: {repo_path}",
        border_style="blue",
    ))

    if profile.requires_approval and not deploy_settings.AUTO_APPROVE and not deploy_settings.DRY_RUN:
        console.print("[bold yellow]⚠️  You are about to deploy to PRODUCTION[/bold yellow]")
        if not typer.confirm("Continue?", default=False):
            console.print("Deployment cancelled")
            raise typer.Exit(code=1)
        deploy_settings.AUTO_APPROVE = True

    from pipesmith.graph.workflow import run_deploy

    result = run_deploy(deploy_settings, repo_path)

    console.print()
    console.print(Markdown(result.to_markdown()))

    if not result.succeeded:
        raise typer.Exit(code=1)


@app.command()
def helm(
    repo_path: str = typer.Argument(".", help="Directory holding the chart."),
    chart: Optional[str] = typer.Option(None, "--chart", help="Chart directory (HELM_CHART_PATH)."),
    version: Optional[str] = typer.Option(None, "--version", help="Override the chart version."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output."),
):
    """Lint, template, package and push a Helm chart."""
    from pipesmith.config import HelmSettings
    from pipesmith.stages.chart_publisher import publish_chart

    _start(verbose)
    repo_path = _working_dir(repo_path)
    console.print("[bold]⎈ Publishing Helm chart...[/bold]")

    overrides = {"HELM_CHART_PATH": chart, "CHART_VERSION": version}
    overrides = {k: v for k, v in overrides.items() if v is not None}

    try:
        info = publish_chart(HelmSettings(**overrides), repo_path)
    except PipesmithError as e:
        _fail(e)

    console.print(f"\n✅ Chart {info.name} {info.version}")
    if info.package:
        console.print(f"📦 Package: {info.package}")
    if info.pushed:
        console.print(f"🔗 Registry: {info.registry}")


@app.command()
def security(
    repo_path: str = typer.Argument(".", help="Path to the repository to scan."),
    image: Optional[str] = typer.Option(None, "--image", help="Container image to scan (enables the container scan)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output."),
):
    """Run secrets, SCA, SAST, SBOM, IaC, Dockerfile and image scans."""
    from pipesmith.config import SecuritySettings
    from pipesmith.stages.security_sentinel import run_security_scan

    _start(verbose)
    repo_path = _working_dir(repo_path)
    console.print("[bold]🛡️ Running security scans...[/bold]")

    overrides = {}
    if image:
        overrides = {"CONTAINER_IMAGE": image, "CONTAINER_SCAN": True}

    report = run_security_scan(SecuritySettings(**overrides), repo_path)

    icon = "✅" if report.passed else "❌"
    console.print(
        f"\n{icon} {report.verdict}\n"
        f"   {report.scans_run} scan(s) run, {report.scan_failures} failed — "
        f"{report.critical_count} critical, {report.high_count} high, {report.medium_count} medium"
    )
    console.print(f"📁 Reports: {report.reports_dir}")
    if not report.passed:
        raise typer.Exit(code=1)


@app.command()
def docker(
    repo_path: str = typer.Argument(".", help="Docker build context."),
    tag: Optional[str] = typer.Option(None, "--tag", help="Image tag (defaults to the git commit)."),
    no_push: bool = typer.Option(False, "--no-push", help="Build without pushing."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output."),
):
    """Build, scan and push the application image."""
    from pipesmith.config import DockerSettings
    from pipesmith.stages.image_builder import build_image

    _start(verbose)
    repo_path = _working_dir(repo_path)
    console.print("[bold]🐳 Building image...[/bold]")

    overrides = {}
    if tag:
        overrides["IMAGE_TAG"] = tag
    if no_push:
        overrides["PUSH_IMAGE"] = False

    try:
        image = build_image(DockerSettings(**overrides), repo_path)
    except PipesmithError as e:
        _fail(e)

    console.print(f"\n✅ Image: {image.full_image}")
    if image.pushed:
        console.print(f"📤 Pushed {image.full_image} and {image.latest_image}")


@app.command()
def build(
    repo_path: str = typer.Argument(".", help="Path to the project to build."),
    tool: Optional[str] = typer.Option(None, "--tool", help="Build tool (auto-detected if unset)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output."),
):
    """Build the project with the detected (or given) build tool."""
    from pipesmith.config import BuildSettings
    from pipesmith.stages.build_runner import run_build

    _start(verbose)
    repo_path = _working_dir(repo_path)
    console.print("[bold]🔨 Building...[/bold]")

    overrides = {"BUILD_TOOL": tool} if tool else {}
    try:
        run = run_build(BuildSettings(**overrides), repo_path)
    except PipesmithError as e:
        _fail(e)

    if run.skipped:
        console.print(f"\n⚠️ Nothing to build for {run.tool}")
    else:
        console.print(f"\n✅ Build succeeded ({run.tool}, {run.duration_ms / 1000:.1f}s)")


@app.command()
def test(
    repo_path: str = typer.Argument(".", help="Path to the project to test."),
    integration: bool = typer.Option(False, "--integration", help="Also run integration tests."),
    coverage: bool = typer.Option(False, "--coverage", help="Collect coverage."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output."),
):
    """Run unit tests, and integration tests when asked."""
    from pipesmith.config import TestingSettings
    from pipesmith.stages.build_runner import run_tests

    _start(verbose)
    repo_path = _working_dir(repo_path)
    console.print("[bold]🧪 Running tests...[/bold]")

    overrides = {}
    if integration:
        overrides["INTEGRATION_TESTS"] = True
    if coverage:
        overrides["COVERAGE_ENABLED"] = True

    try:
        runs = run_tests(TestingSettings(**overrides), repo_path)
    except PipesmithError as e:
        _fail(e)

    for run in runs:
        if run.skipped:
            console.print(f"⚠️ {run.framework} {run.test_type} tests skipped")
        else:
            icon = "✅" if run.success else "❌"
            console.print(f"{icon} {run.framework} {run.test_type} tests")

    if not all(r.success for r in runs):
        raise typer.Exit(code=1)


@app.command()
def quality(
    repo_path: str = typer.Argument(".", help="Path to the project to analyse."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output."),
):
    """Check coverage, run linters and SonarQube analysis."""
    from pipesmith.config import QualitySettings
    from pipesmith.stages.quality_gate import run_quality

    _start(verbose)
    repo_path = _working_dir(repo_path)
    console.print("[bold]📊 Running quality checks...[/bold]")

    try:
        report = run_quality(QualitySettings(), repo_path)
    except PipesmithError as e:
        _fail(e)

    if report.coverage:
        console.print(f"Line coverage: {report.coverage.percent}% (threshold {report.coverage.threshold}%)")
    for warning in report.lint_warnings:
        console.print(f"⚠️ {warning}")

    icon = "✅" if report.passed else "❌"
    console.print(f"\n{icon} Quality checks {'passed' if report.passed else 'failed'}")
    if not report.passed:
        raise typer.Exit(code=1)


@app.command()
def notify(
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Notification text."),
    status: Optional[str] = typer.Option(None, "--status", help="success | warning | error | failure | info"),
    title: Optional[str] = typer.Option(None, "--title", help="Notification title."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output."),
):
    """Send a Slack notification about the pipeline."""
    from pipesmith.config import SlackSettings
    from pipesmith.stages.notifier import send_slack_notification

    _start(verbose)

    overrides = {"MESSAGE": message, "STATUS": status, "TITLE": title}
    overrides = {k: v for k, v in overrides.items() if v is not None}

    try:
        send_slack_notification(SlackSettings(**overrides))
    except PipesmithError as e:
        _fail(e)

    console.print("✅ Slack notification sent")


@app.command()
def status():
    """Show pipesmith configuration."""
    from pipesmith.config import settings, DeploySettings, SecuritySettings

    ds = DeploySettings()
    ss = SecuritySettings()

    console.print(Panel.fit(
        f"[bold]Working dir:[/bold] {settings.WORKING_DIR}\n"
        f"[bold]Environment:[/bold] {ds.ENVIRONMENT or 'Not configured'}\n"
        f"[bold]Release:[/bold] {ds.RELEASE_NAME}\n"
        f"[bold]Chart:[/bold] {ds.HELM_CHART_PATH}\n"
        f"[bold]Namespace:[/bold] {ds.NAMESPACE or 'environment default'}\n"
        f"[bold]Kubeconfig:[/bold] {'provided' if ds.KUBECONFIG else ds.KUBECONFIG_PATH}\n"
        f"[bold]Dry run:[/bold] {ds.DRY_RUN}\n"
        f"[bold]Fail on critical:[/bold] {ss.FAIL_ON_CRITICAL}\n"
        f"[bold]Fail on high:[/bold] {ss.FAIL_ON_HIGH}\n"
        f"[bold]Verbose:[/bold] {settings.VERBOSE}",
        title="🔧 pipesmith Config",
        border_style="blue",
    ))


if __name__ == "__main__":
    app()
