"""Configuration objects for argo-compare.

All run parameters are gathered into a `Config` value up front. Nothing in the
comparison engine reads the process environment; `credentials_from_env` is
called by the command line tool and its result is injected.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
import enum
import logging
from pathlib import Path
import tempfile
from typing import Any

from mashumaro import DataClassDictMixin
from mashumaro.codecs.json import json_decode
from mashumaro.exceptions import InvalidFieldValue, MissingField

from .exceptions import ConfigException

__all__ = [
    "Config",
    "CommentConfig",
    "CommentProvider",
    "GitLabCommentConfig",
    "RepoCredentials",
    "credentials_from_env",
]

_LOGGER = logging.getLogger(__name__)

REPO_CREDS_PREFIX = "REPO_CREDS_"


@dataclass(frozen=True)
class RepoCredentials(DataClassDictMixin):
    """Authentication details for a chart repository."""

    url: str
    username: str
    password: str


def credentials_from_env(environ: Mapping[str, str]) -> list[RepoCredentials]:
    """Collect chart repository credentials from `REPO_CREDS_*` variables.

    Each variable holds a JSON object of the form `{url, username, password}`.
    """
    _LOGGER.debug("===> Collecting repo credentials")
    creds: list[RepoCredentials] = []
    for key in sorted(environ):
        if not key.startswith(REPO_CREDS_PREFIX):
            continue
        try:
            repo_creds = json_decode(environ[key], RepoCredentials)
        except (ValueError, MissingField, InvalidFieldValue) as err:
            raise ConfigException(f"Invalid repository credentials in {key}: {err}") from err
        _LOGGER.debug("▶ Found repo credentials for [%s]", repo_creds.url)
        creds.append(repo_creds)
    return creds


class CommentProvider(str, enum.Enum):
    """The upstream system where diffs can be posted as comments."""

    NONE = ""
    GITLAB = "gitlab"


@dataclass(frozen=True)
class GitLabCommentConfig:
    """Details required to comment on a GitLab Merge Request."""

    base_url: str = ""
    token: str = ""
    project_id: str = ""
    merge_request_iid: int = 0


@dataclass(frozen=True)
class CommentConfig:
    """Settings used to publish comparison results as comments."""

    provider: CommentProvider = CommentProvider.NONE
    gitlab: GitLabCommentConfig = field(default_factory=GitLabCommentConfig)

    @classmethod
    def from_provider(cls, provider: str, gitlab: GitLabCommentConfig) -> "CommentConfig":
        """Build the comment config from a case-insensitive provider name."""
        name = provider.strip().lower()
        try:
            return cls(provider=CommentProvider(name), gitlab=gitlab)
        except ValueError as err:
            raise ConfigException(f"unsupported comment provider '{provider}'") from err

    def validate(self) -> None:
        if self.provider == CommentProvider.GITLAB:
            gitlab = self.gitlab
            if not (
                gitlab.base_url
                and gitlab.token
                and gitlab.project_id
                and gitlab.merge_request_iid
            ):
                raise ConfigException(
                    "gitlab comment configuration requires base URL, token, "
                    "project ID, and merge request IID"
                )

    @property
    def enabled(self) -> bool:
        return self.provider != CommentProvider.NONE


@dataclass
class Config:
    """Runtime parameters for a comparison run."""

    target_branch: str
    """Branch to compare against, resolved as `refs/remotes/origin/<branch>`."""

    cache_dir: Path
    """Directory where downloaded chart archives are kept."""

    temp_dir_base: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    """Parent directory of the per-application temporary workspaces."""

    file_to_compare: str | None = None
    """Compare only this manifest instead of resolving the changed files."""

    files_to_ignore: list[str] = field(default_factory=list)
    """Repository relative paths that are never compared."""

    preserve_helm_labels: bool = False
    """Keep labels injected by helm that only add churn to the diff."""

    print_added_manifests: bool = False
    """Show rendered files that only exist in the working tree version."""

    print_removed_manifests: bool = False
    """Show rendered files that only exist in the target branch version."""

    external_diff_tool: str | None = None
    """Command that receives each unified diff on stdin."""

    repo_credentials: list[RepoCredentials] = field(default_factory=list)
    """Credentials for chart repositories, matched on the exact repo URL."""

    comment: CommentConfig | None = None
    """Publish results as a merge request comment when set."""

    version: str = ""
    """Version of the tool, for log output."""

    @classmethod
    def create(
        cls, target_branch: str, cache_dir: Path | str | None, **kwargs: Any
    ) -> "Config":
        """Create a validated Config."""
        if not target_branch:
            raise ConfigException("target branch must be provided")
        if not cache_dir:
            raise ConfigException("cache directory must be provided")
        if (temp_dir_base := kwargs.pop("temp_dir_base", None)) is not None:
            kwargs["temp_dir_base"] = Path(temp_dir_base)
        cfg = cls(target_branch=target_branch, cache_dir=Path(cache_dir), **kwargs)
        if cfg.comment is not None:
            cfg.comment.validate()
        return cfg
