"""Build-info tools — KEY=VALUE hand-off files shared between pipes.

The files stay shell ``source``-able so pipeline steps that are still plain
bash can read what a pipesmith pipe wrote.
"""

import os
import shlex
from datetime import datetime, timezone
from typing import Dict, Optional

from loguru import logger

from pipesmith.config import settings


def utc_timestamp() -> str:
    """Current time as 2024-01-31T12:00:00Z."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_info_path(name: str, working_dir: Optional[str] = None) -> str:
    return os.path.join(working_dir or settings.WORKING_DIR, settings.BUILD_INFO_DIR, name)


def _quote(value: str) -> str:
    # Plain tokens stay unquoted so the files stay shell-sourceable as KEY=value.
    if value == "" or shlex.quote(value) == value:
        return value
    return shlex.quote(value)


def write_build_info(name: str, values: Dict[str, object], working_dir: Optional[str] = None) -> str:
    """
    Write a build-info file.

    Args:
        name: File name inside the build-info directory (e.g. 'docker-image.txt').
        values: Ordered mapping of keys to values; None becomes an empty value.
        working_dir: Base directory (defaults to WORKING_DIR).

    Returns:
        Path of the written file.
    """
    path = build_info_path(name, working_dir)
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(path, "w") as f:
        for key, value in values.items():
            text = "" if value is None else str(value)
            f.write(f"{key}={_quote(text)}\n")

    logger.info("Build information saved to {}", path)
    return path


def read_build_info(name: str, working_dir: Optional[str] = None) -> Dict[str, str]:
    """
    Read a build-info file; returns an empty dict if it does not exist.

    Blank lines and '#' comments are ignored; quoting is undone the way a
    shell would when sourcing the file.
    """
    path = build_info_path(name, working_dir)
    if not os.path.exists(path):
        logger.debug("No build info at {}", path)
        return {}

    values: Dict[str, str] = {}
    with open(path, "r") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            if key.startswith("export "):
                key = key[len("export "):]
            parts = shlex.split(value) if value else []
            values[key.strip()] = " ".join(parts)
    return values


def tag_from_image(image: str) -> Optional[str]:
    """
    Extract the tag from an image reference.

    'registry:5000/team/app:1.2.3' -> '1.2.3'; no tag -> None.
    """
    name = image.split("@", 1)[0]
    last_segment = name.rsplit("/", 1)[-1]
    if ":" not in last_segment:
        return None
    return last_segment.rsplit(":", 1)[1] or None


def repository_from_image(image: str) -> str:
    """'registry:5000/team/app:1.2.3' -> 'registry:5000/team/app'."""
    tag = tag_from_image(image)
    if tag is None:
        return image.split("@", 1)[0]
    return image.split("@", 1)[0][: -(len(tag) + 1)]
