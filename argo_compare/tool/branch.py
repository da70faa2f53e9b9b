"""argo-compare branch action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from collections.abc import Mapping
import functools
import logging
import os
from pathlib import Path
from typing import Any, cast

from argo_compare.app import App
from argo_compare.config import (
    CommentConfig,
    CommentProvider,
    Config,
    GitLabCommentConfig,
    credentials_from_env,
)
from argo_compare.exceptions import ConfigException

_LOGGER = logging.getLogger(__name__)

# Type for command line flags of comma separated list
_CSV = functools.partial(str.split, sep=",")

CACHE_DIR_ENV = "ARGO_COMPARE_CACHE_DIR"
TEMP_DIR_ENV = "ARGO_COMPARE_TEMP_DIR"
EXTERNAL_DIFF_TOOL_ENV = "EXTERNAL_DIFF_TOOL"
COMMENT_PROVIDER_ENV = "ARGO_COMPARE_COMMENT_PROVIDER"

# Each setting is read from the first variable that is set
GITLAB_URL_ENV = ("ARGO_COMPARE_GITLAB_URL", "CI_SERVER_URL")
GITLAB_TOKEN_ENV = ("ARGO_COMPARE_GITLAB_TOKEN", "CI_JOB_TOKEN")
GITLAB_PROJECT_ID_ENV = ("ARGO_COMPARE_GITLAB_PROJECT_ID", "CI_PROJECT_ID")
GITLAB_MR_IID_ENV = ("ARGO_COMPARE_GITLAB_MR_IID", "CI_MERGE_REQUEST_IID")


def default_cache_dir(environ: Mapping[str, str]) -> Path:
    """Return the chart cache directory from the environment."""
    if cache_dir := environ.get(CACHE_DIR_ENV):
        return Path(cache_dir)
    return Path.home() / ".cache" / "argo-compare"


def _first_env(environ: Mapping[str, str], names: tuple[str, ...]) -> str:
    for name in names:
        if value := environ.get(name):
            return value
    return ""


def _parse_iid(value: str | int | None, source: str) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except ValueError as err:
        raise ConfigException(
            f"invalid merge request IID '{value}' from {source}"
        ) from err


def comment_config(
    environ: Mapping[str, str],
    provider: str | None = None,
    gitlab_url: str | None = None,
    gitlab_token: str | None = None,
    gitlab_project_id: str | None = None,
    gitlab_merge_request_iid: int | None = None,
) -> CommentConfig | None:
    """Build the comment configuration from flags, falling back to the environment.

    Inside a GitLab merge request pipeline the provider defaults to `gitlab`.
    """
    if provider is None:
        provider = environ.get(COMMENT_PROVIDER_ENV, "")
        if not provider and environ.get("GITLAB_CI") and environ.get(
            "CI_MERGE_REQUEST_IID"
        ):
            provider = CommentProvider.GITLAB.value
    if not provider.strip():
        return None
    gitlab = GitLabCommentConfig(
        base_url=gitlab_url or _first_env(environ, GITLAB_URL_ENV),
        token=gitlab_token or _first_env(environ, GITLAB_TOKEN_ENV),
        project_id=gitlab_project_id or _first_env(environ, GITLAB_PROJECT_ID_ENV),
        merge_request_iid=(
            gitlab_merge_request_iid
            or _parse_iid(_first_env(environ, GITLAB_MR_IID_ENV), "environment")
        ),
    )
    return CommentConfig.from_provider(provider, gitlab)


class BranchAction:
    """Compare changed Applications against a target branch."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "branch",
                help="Compare Applications against a target branch",
                description=(
                    "Render every Argo CD Application changed between the working "
                    "tree and the target branch and print the difference of the "
                    "rendered manifests."
                ),
            ),
        )
        args.add_argument(
            "target_branch",
            help="Branch to compare against, resolved on the origin remote",
        )
        args.add_argument(
            "--file",
            "-f",
            help="Compare a single file",
        )
        args.add_argument(
            "--ignore",
            "-i",
            type=_CSV,
            action="append",
            default=[],
            help="Ignore specific files (can be set multiple times)",
        )
        args.add_argument(
            "--preserve-helm-labels",
            action="store_true",
            help="Preserve Helm labels during comparison",
        )
        args.add_argument(
            "--print-added-manifests",
            action="store_true",
            help="Print added manifests",
        )
        args.add_argument(
            "--print-removed-manifests",
            action="store_true",
            help="Print removed manifests",
        )
        args.add_argument(
            "--full-output",
            action="store_true",
            help="Print all changed, added, and removed manifests",
        )
        args.add_argument(
            "--comment-provider",
            default=None,
            help="Post diff comment using provider (gitlab)",
        )
        args.add_argument(
            "--gitlab-url",
            help="GitLab base URL (e.g., https://gitlab.com)",
        )
        args.add_argument(
            "--gitlab-token",
            help="GitLab personal access token",
        )
        args.add_argument(
            "--gitlab-project-id",
            help="GitLab project ID",
        )
        args.add_argument(
            "--gitlab-merge-request-iid",
            type=int,
            help="GitLab merge request IID",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        target_branch: str,
        file: str | None,
        ignore: list[list[str]],
        preserve_helm_labels: bool,
        print_added_manifests: bool,
        print_removed_manifests: bool,
        full_output: bool,
        comment_provider: str | None,
        gitlab_url: str | None,
        gitlab_token: str | None,
        gitlab_project_id: str | None,
        gitlab_merge_request_iid: int | None,
        version: str = "",
        environ: Mapping[str, str] | None = None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        env = environ if environ is not None else os.environ
        options: dict[str, Any] = {
            "file_to_compare": file or None,
            "files_to_ignore": [path for paths in ignore for path in paths if path],
            "preserve_helm_labels": preserve_helm_labels,
            "print_added_manifests": print_added_manifests or full_output,
            "print_removed_manifests": print_removed_manifests or full_output,
            "external_diff_tool": env.get(EXTERNAL_DIFF_TOOL_ENV) or None,
            "repo_credentials": credentials_from_env(env),
            "comment": comment_config(
                env,
                comment_provider,
                gitlab_url,
                gitlab_token,
                gitlab_project_id,
                gitlab_merge_request_iid,
            ),
            "version": version,
        }
        if temp_dir := env.get(TEMP_DIR_ENV):
            options["temp_dir_base"] = temp_dir
        config = Config.create(target_branch, default_cache_dir(env), **options)
        await App(config).run()
