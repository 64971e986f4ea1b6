"""Image Builder — builds, scans and pushes the application container image."""

import os
from typing import Optional

from loguru import logger

from pipesmith.config import DockerSettings, settings
from pipesmith.models.reports import ImageInfo
from pipesmith.tools import docker_tools, shell
from pipesmith.tools.build_info import utc_timestamp, write_build_info
from pipesmith.tools.git_tools import get_git_info
from pipesmith.utils.exceptions import ConfigurationError, ImageError


def build_image(docker_settings: Optional[DockerSettings] = None, working_dir: Optional[str] = None) -> ImageInfo:
    """
    Run the docker pipe.

    Builds <registry>/<repository>:<tag> plus :latest, optionally scans the
    image with Trivy and pushes both tags, then writes
    build-info/docker-image.txt for the deploy pipe.

    Raises:
        ConfigurationError: If DOCKER_REGISTRY or DOCKER_REPOSITORY is missing.
        ImageError: If the build, a gating scan or the push fails.
    """
    ds = docker_settings or DockerSettings()
    cwd = os.path.abspath(working_dir or settings.WORKING_DIR)

    if not ds.DOCKER_REGISTRY:
        raise ConfigurationError("DOCKER_REGISTRY is required", "DOCKER_REGISTRY")
    if not ds.DOCKER_REPOSITORY:
        raise ConfigurationError("DOCKER_REPOSITORY is required", "DOCKER_REPOSITORY")

    commit, branch = get_git_info(cwd)
    image = ImageInfo(
        registry=ds.DOCKER_REGISTRY,
        repository=ds.DOCKER_REPOSITORY,
        tag=ds.IMAGE_TAG or commit,
        git_commit=commit,
        git_branch=branch,
    )

    if not os.path.isfile(os.path.join(cwd, ds.DOCKERFILE_PATH)):
        raise ImageError(f"Dockerfile not found at: {ds.DOCKERFILE_PATH}", step="build")

    # ── Build ──
    build_date = utc_timestamp()
    argv = docker_tools.build_args(
        dockerfile=ds.DOCKERFILE_PATH,
        full_image=image.full_image,
        latest_image=image.latest_image,
        version=image.tag,
        git_commit=commit,
        build_date=build_date,
        extra_build_args=ds.BUILD_ARGS,
    )
    logger.info("🐳 Building Docker image {}", image.full_image)
    result = docker_tools.build(argv, cwd)
    if not result.ok:
        raise ImageError(
            f"docker build failed:\n{shell.tail(result.output, 30)}", step="build", returncode=result.returncode
        )
    logger.info("✓ Docker image built successfully: {}", image.full_image)

    # ── Scan ──
    if not ds.SCAN_IMAGE:
        logger.warning("Image scanning disabled - set SCAN_IMAGE=true to enable")
    else:
        logger.info("Scanning Docker image for vulnerabilities (severity: {})", ds.TRIVY_SEVERITY)
        scan = docker_tools.scan_image(
            image.full_image,
            os.path.join(cwd, settings.REPORTS_DIR),
            ds.TRIVY_SEVERITY,
            ds.TRIVY_EXIT_CODE,
            cwd,
        )
        if scan["returncode"] == 127:
            # scan_passed stays None: the image was never scanned
            logger.warning("⚠ Continuing without a vulnerability scan (trivy not installed)")
        else:
            image.vulnerabilities = scan["counts"]
            counts = scan["counts"]
            if counts.get("critical") or counts.get("high"):
                logger.warning(
                    "Image contains {} critical and {} high severity vulnerabilities",
                    counts.get("critical", 0), counts.get("high", 0),
                )
            if scan["returncode"] == 1:
                image.scan_passed = False
                raise ImageError(
                    "Vulnerability scan failed - vulnerabilities found exceed threshold",
                    step="scan",
                    returncode=1,
                )
            image.scan_passed = True
            logger.info("✓ Vulnerability scan completed")

    # ── Push ──
    if ds.PUSH_IMAGE:
        if ds.DOCKER_USERNAME and ds.DOCKER_PASSWORD:
            logger.info("Logging in to Docker registry: {}", ds.DOCKER_REGISTRY)
            login = docker_tools.login(ds.DOCKER_REGISTRY, ds.DOCKER_USERNAME, ds.DOCKER_PASSWORD, cwd)
            if not login.ok:
                raise ImageError("Docker registry login failed", step="push", returncode=login.returncode)
        else:
            logger.warning("No credentials provided - assuming registry is already authenticated")

        for ref in (image.full_image, image.latest_image):
            pushed = docker_tools.push(ref, cwd)
            if not pushed.ok:
                raise ImageError(
                    f"docker push {ref} failed: {shell.tail(pushed.output, 10)}",
                    step="push",
                    returncode=pushed.returncode,
                )
            logger.info("✓ Pushed {}", ref)
        image.pushed = True
    else:
        logger.warning("Image push disabled - set PUSH_IMAGE=true to enable")

    write_build_info(
        "docker-image.txt",
        {
            "DOCKER_IMAGE": image.full_image,
            "DOCKER_IMAGE_LATEST": image.latest_image,
            "DOCKER_REGISTRY": image.registry,
            "DOCKER_REPOSITORY": image.repository,
            "IMAGE_TAG": image.tag,
            "GIT_COMMIT": commit,
            "GIT_BRANCH": branch,
            "BUILD_DATE": build_date,
        },
        cwd,
    )
    return image
