"""Tests for config library."""

from pathlib import Path

import pytest

from argo_compare.config import (
    CommentConfig,
    CommentProvider,
    Config,
    GitLabCommentConfig,
    RepoCredentials,
    credentials_from_env,
)
from argo_compare.exceptions import ConfigException


def test_credentials_from_env() -> None:
    """Test collecting repository credentials from the environment."""
    creds = credentials_from_env(
        {
            "REPO_CREDS_B": '{"url": "https://b.example.com", "username": "u", "password": "p"}',
            "REPO_CREDS_A": '{"url": "https://a.example.com", "username": "x", "password": "y"}',
            "HOME": "/root",
        }
    )
    assert creds == [
        RepoCredentials(url="https://a.example.com", username="x", password="y"),
        RepoCredentials(url="https://b.example.com", username="u", password="p"),
    ]


@pytest.mark.parametrize(
    "value",
    [
        "not-json",
        '{"url": "https://a.example.com"}',
    ],
)
def test_invalid_credentials(value: str) -> None:
    """Test credentials that can't be decoded."""
    with pytest.raises(ConfigException, match="REPO_CREDS_BAD"):
        credentials_from_env({"REPO_CREDS_BAD": value})


def test_create_config() -> None:
    """Test creating a Config with defaults."""
    config = Config.create("main", "/tmp/cache", temp_dir_base="/tmp/work")
    assert config.target_branch == "main"
    assert config.cache_dir == Path("/tmp/cache")
    assert config.temp_dir_base == Path("/tmp/work")
    assert config.files_to_ignore == []
    assert config.comment is None


@pytest.mark.parametrize(
    ("branch", "cache_dir", "match"),
    [
        ("", "/tmp/cache", "target branch"),
        ("main", "", "cache directory"),
        ("main", None, "cache directory"),
    ],
)
def test_create_config_missing(branch: str, cache_dir: str | None, match: str) -> None:
    """Test that required settings are validated up front."""
    with pytest.raises(ConfigException, match=match):
        Config.create(branch, cache_dir)


def test_comment_provider() -> None:
    """Test parsing the comment provider name."""
    gitlab = GitLabCommentConfig("https://gitlab.com", "token", "42", 7)
    config = CommentConfig.from_provider(" GitLab ", gitlab)
    assert config.provider == CommentProvider.GITLAB
    assert config.enabled
    config.validate()

    assert not CommentConfig.from_provider("", gitlab).enabled

    with pytest.raises(ConfigException, match="unsupported comment provider"):
        CommentConfig.from_provider("github", gitlab)


def test_incomplete_gitlab_config() -> None:
    """Test that GitLab comments require every setting."""
    comment = CommentConfig.from_provider(
        "gitlab", GitLabCommentConfig("https://gitlab.com", "token", "42")
    )
    with pytest.raises(ConfigException, match="merge request IID"):
        Config.create("main", "/tmp/cache", comment=comment)
