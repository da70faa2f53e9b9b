"""Tests for the argo-compare command line tool."""

import logging
from pathlib import Path

import git
import pytest

from argo_compare.config import CommentProvider
from argo_compare.exceptions import ConfigException
from argo_compare.tool.argo_compare import main
from argo_compare.tool.branch import comment_config, default_cache_dir

from ..conftest import commit_files

CI_VARIABLES = (
    "GITLAB_CI",
    "CI_MERGE_REQUEST_IID",
    "CI_SERVER_URL",
    "CI_JOB_TOKEN",
    "CI_PROJECT_ID",
    "ARGO_COMPARE_COMMENT_PROVIDER",
    "EXTERNAL_DIFF_TOOL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate the tool from the environment of the test runner."""
    for name in CI_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ARGO_COMPARE_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("ARGO_COMPARE_TEMP_DIR", str(tmp_path / "work"))


def test_version(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main(["--version"])
    assert exc_info.value.code == 0
    assert capsys.readouterr().out.startswith("argo-compare ")


def test_drop_cache(tmp_path: Path) -> None:
    """Test removing the cache directory."""
    cache_dir = tmp_path / "cache"
    (cache_dir / "repo").mkdir(parents=True)
    main(["--drop-cache"])
    assert not cache_dir.exists()


def test_missing_command(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main([])
    assert exc_info.value.code == 2
    assert "a command is required" in capsys.readouterr().err


def test_not_a_repository(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Test that errors are reported on stderr with a non-zero exit."""
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit) as exc_info:
        main(["branch", "main"])
    assert exc_info.value.code == 1
    assert "argo-compare error: " in capsys.readouterr().err


def test_branch_no_changes(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Test running the branch command in a repository without changes."""
    caplog.set_level(logging.INFO)
    repo = git.Repo.init(tmp_path / "repo")
    commit_files(repo, {"README.md": "# Example\n"}, "Initial commit")
    repo.git.update_ref("refs/remotes/origin/main", "HEAD")
    monkeypatch.chdir(tmp_path / "repo")

    main(["branch", "main", "--ignore", "a.yaml,b.yaml", "-i", "c.yaml"])
    assert "Running Argo Compare version" in caplog.text
    assert "No changed Application files found" in caplog.text


def test_incomplete_comment_flags(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main(["branch", "main", "--comment-provider", "gitlab"])
    assert exc_info.value.code == 1
    assert "gitlab comment configuration requires" in capsys.readouterr().err


def test_comment_config_from_gitlab_ci() -> None:
    """Test the defaults inside a GitLab merge request pipeline."""
    config = comment_config(
        {
            "GITLAB_CI": "true",
            "CI_MERGE_REQUEST_IID": "15",
            "CI_SERVER_URL": "https://gitlab.example.com",
            "CI_JOB_TOKEN": "job-token",
            "CI_PROJECT_ID": "99",
            "ARGO_COMPARE_GITLAB_TOKEN": "personal-token",
        }
    )
    assert config is not None
    assert config.provider == CommentProvider.GITLAB
    assert config.gitlab.base_url == "https://gitlab.example.com"
    assert config.gitlab.token == "personal-token"
    assert config.gitlab.project_id == "99"
    assert config.gitlab.merge_request_iid == 15


def test_comment_config_flags_override() -> None:
    config = comment_config(
        {"CI_SERVER_URL": "https://gitlab.example.com"},
        provider="gitlab",
        gitlab_url="https://gitlab.com",
        gitlab_token="token",
        gitlab_project_id="group/project",
        gitlab_merge_request_iid=3,
    )
    assert config is not None
    assert config.gitlab.base_url == "https://gitlab.com"
    assert config.gitlab.merge_request_iid == 3


def test_comment_config_disabled() -> None:
    assert comment_config({}) is None
    assert comment_config({"CI_MERGE_REQUEST_IID": "15"}) is None


def test_comment_config_invalid() -> None:
    with pytest.raises(ConfigException, match="unsupported comment provider"):
        comment_config({}, provider="bitbucket")
    with pytest.raises(ConfigException, match="invalid merge request IID"):
        comment_config({"ARGO_COMPARE_GITLAB_MR_IID": "abc"}, provider="gitlab")


def test_default_cache_dir() -> None:
    assert default_cache_dir({"ARGO_COMPARE_CACHE_DIR": "/cache"}) == Path("/cache")
    assert default_cache_dir({}) == Path.home() / ".cache" / "argo-compare"
