"""Tests for commit/branch lookup."""

from unittest.mock import patch

import git

from pipesmith.config import settings
from pipesmith.tools.git_tools import get_git_info


class TestGetGitInfo:

    def test_exported_sources_use_pipeline_variables(self, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "BITBUCKET_COMMIT", "feedfac")
        monkeypatch.setattr(settings, "BITBUCKET_BRANCH", "main")
        assert get_git_info(str(tmp_path)) == ("feedfac", "main")

    def test_nothing_available(self, tmp_path):
        assert get_git_info(str(tmp_path)) == ("unknown", "unknown")

    def test_missing_git_binary_falls_back(self, tmp_path, monkeypatch):
        (tmp_path / ".git").mkdir()
        monkeypatch.setattr(settings, "BITBUCKET_COMMIT", "feedfac")
        monkeypatch.setattr(settings, "BITBUCKET_BRANCH", "release/1.2")

        with patch("pipesmith.tools.git_tools.git.Repo", side_effect=git.exc.GitCommandNotFound("git", "not found")):
            assert get_git_info(str(tmp_path)) == ("feedfac", "release/1.2")

    def test_broken_checkout_without_variables(self, tmp_path):
        (tmp_path / ".git").mkdir()
        with patch("pipesmith.tools.git_tools.git.Repo", side_effect=git.exc.InvalidGitRepositoryError(str(tmp_path))):
            assert get_git_info(str(tmp_path)) == ("unknown", "unknown")

    def test_reads_checkout(self, tmp_path):
        (tmp_path / ".git").mkdir()
        with patch("pipesmith.tools.git_tools.git.Repo") as repo_cls:
            repo_cls.return_value.git.rev_parse.side_effect = ["abc1234\n", "main\n"]
            assert get_git_info(str(tmp_path)) == ("abc1234", "main")
