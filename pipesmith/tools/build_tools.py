"""Build tools — build-tool detection and build commands."""

import glob
import os
import shlex
from typing import List, Optional

from loguru import logger


BUILD_TOOLS = ("maven", "gradle", "npm", "python", "go", "dotnet", "rust", "ruby")


def file_exists(repo_path: str, *names: str) -> bool:
    return any(os.path.exists(os.path.join(repo_path, n)) for n in names)


def has_dotnet_project(repo_path: str) -> bool:
    return bool(glob.glob(os.path.join(repo_path, "*.csproj")) or glob.glob(os.path.join(repo_path, "*.sln")))


def detect_build_tool(repo_path: str) -> str:
    """
    Auto-detect the build tool of a project from its marker files.

    Precedence: pom.xml, build.gradle(.kts), package.json,
    requirements.txt/setup.py/pyproject.toml, go.mod, *.csproj/*.sln,
    Cargo.toml, Gemfile.

    Returns:
        One of BUILD_TOOLS, or 'unknown'.
    """
    if file_exists(repo_path, "pom.xml"):
        tool = "maven"
    elif file_exists(repo_path, "build.gradle", "build.gradle.kts"):
        tool = "gradle"
    elif file_exists(repo_path, "package.json"):
        tool = "npm"
    elif file_exists(repo_path, "requirements.txt", "setup.py", "pyproject.toml"):
        tool = "python"
    elif file_exists(repo_path, "go.mod"):
        tool = "go"
    elif has_dotnet_project(repo_path):
        tool = "dotnet"
    elif file_exists(repo_path, "Cargo.toml"):
        tool = "rust"
    elif file_exists(repo_path, "Gemfile"):
        tool = "ruby"
    else:
        tool = "unknown"

    logger.info("Auto-detected build tool: {}", tool)
    return tool


def detect_scan_build_tool(repo_path: str) -> str:
    """Narrower detection used by the security pipe (go before python, no dotnet/rust/ruby)."""
    if file_exists(repo_path, "pom.xml"):
        return "maven"
    if file_exists(repo_path, "build.gradle", "build.gradle.kts"):
        return "gradle"
    if file_exists(repo_path, "package.json"):
        return "npm"
    if file_exists(repo_path, "go.mod"):
        return "go"
    if file_exists(repo_path, "requirements.txt", "setup.py"):
        return "python"
    return "unknown"


def split_args(value: Optional[str]) -> List[str]:
    return shlex.split(value) if value else []


def build_commands(tool: str, repo_path: str, extra_args: Optional[str] = None) -> List[List[str]]:
    """
    Commands that build a project with the given tool, run in order.

    Returns an empty list when the tool has nothing to build (python without
    setup.py).

    Raises:
        ValueError: For 'unknown' or unsupported tools.
    """
    args = split_args(extra_args)

    if tool == "maven":
        return [["mvn", "clean", "compile", *args]]
    if tool == "gradle":
        return [["./gradlew", "clean", "build", *args]]
    if tool == "npm":
        return [["npm", "install"], ["npm", "run", "build", *args]]
    if tool == "python":
        if file_exists(repo_path, "setup.py"):
            return [["python", "setup.py", "build", *args]]
        logger.info("No setup.py found, skipping build")
        return []
    if tool == "go":
        return [["go", "build", *args, "./..."]]
    if tool == "dotnet":
        return [["dotnet", "build", *args]]
    if tool == "rust":
        return [["cargo", "build", *args]]
    if tool == "ruby":
        return [["bundle", "install"]]
    if tool == "unknown":
        raise ValueError("Could not detect build tool. Please specify BUILD_COMMAND or BUILD_TOOL")
    raise ValueError(f"Unsupported build tool: {tool}")


def ensure_gradle_wrapper_executable(repo_path: str) -> None:
    wrapper = os.path.join(repo_path, "gradlew")
    if os.path.isfile(wrapper):
        os.chmod(wrapper, os.stat(wrapper).st_mode | 0o111)
