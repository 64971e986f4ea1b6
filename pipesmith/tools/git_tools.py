"""Git tools — GitPython lookups of the commit and branch being shipped."""

import os
from typing import Tuple

import git
from loguru import logger

from pipesmith.config import settings


def get_git_info(repo_path: str) -> Tuple[str, str]:
    """
    Get the short commit SHA and branch name of the checkout.

    Reads the checkout with GitPython first. Falls back to the
    BITBUCKET_COMMIT / BITBUCKET_BRANCH variables when the directory is not
    a git checkout (pipes running on exported sources) or git itself fails,
    and to 'unknown' when neither is available.

    Args:
        repo_path: Path to the working tree.

    Returns:
        (commit, branch) tuple.
    """
    if os.path.isdir(os.path.join(repo_path, ".git")):
        try:
            repo = git.Repo(repo_path)
            commit = repo.git.rev_parse("--short", "HEAD")
            branch = repo.git.rev_parse("--abbrev-ref", "HEAD")
            return commit.strip() or "unknown", branch.strip() or "unknown"
        except (git.exc.GitError, ValueError) as e:
            logger.warning("Could not read git metadata from {}: {}", repo_path, e)

    commit = settings.BITBUCKET_COMMIT or "unknown"
    branch = settings.BITBUCKET_BRANCH or "unknown"
    return commit, branch
