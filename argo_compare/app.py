"""Orchestration of a comparison run.

For every changed Application the working tree version and the target branch
version are rendered into a fresh temporary workspace, reconciled, and handed
to the configured presentation strategies. Applications are processed one at
a time and the workspace is removed before the next one starts.

Invalid manifests found while resolving the change set do not stop the run;
they are reported once at the end with `InvalidFilesFound`. Any other error
aborts the run.
"""

from collections.abc import Callable
import enum
import logging
from pathlib import Path
import tempfile
from typing import TextIO

from .cache import ChartCache
from .comment import Poster
from .comment.gitlab import GitLabPoster
from .config import CommentProvider, Config
from .context import collect_traces, trace_context
from .diff_strategy import DiffStrategy, select_strategies
from .exceptions import (
    ConfigException,
    EmptyFileError,
    FileNotInTargetBranchError,
    InvalidApplicationError,
    InvalidFilesFound,
)
from .git_repo import GitRepo, filter_ignored
from .helm import Helm, RevisionLabel, Workspace
from .manifest import Application, parse_application
from .resource_diff import Compare

__all__ = [
    "App",
    "create_poster",
]

_LOGGER = logging.getLogger(__name__)

TEMP_DIR_PREFIX = "argo-compare-"

PosterFactory = Callable[[Config], Poster]


def create_poster(config: Config) -> Poster:
    """Create the Poster for the configured comment provider."""
    if config.comment is None or not config.comment.enabled:
        raise ConfigException("comment provider is not configured")
    if config.comment.provider == CommentProvider.GITLAB:
        return GitLabPoster(config.comment.gitlab)
    raise ConfigException(f"unsupported comment provider '{config.comment.provider}'")


class DestinationAction(enum.Enum):
    """What to render for the target branch side of an Application."""

    SKIP = "skip"
    """Don't compare the Application at all."""

    EMPTY = "empty"
    """Compare against an empty destination tree."""

    RENDER = "render"
    """Render the target branch version."""


class App:
    """Runs a comparison between the working tree and a target branch."""

    def __init__(
        self,
        config: Config,
        repo: GitRepo | None = None,
        helm: Helm | None = None,
        poster_factory: PosterFactory = create_poster,
        output: TextIO | None = None,
    ) -> None:
        """Initialize App.

        The repository is discovered from the working directory and helm is run
        as an external process unless provided.
        """
        self._config = config
        self._repo = repo
        self._helm = helm or Helm(ChartCache(config.cache_dir), config.repo_credentials)
        self._poster_factory = poster_factory
        self._output = output

    @property
    def repo(self) -> GitRepo:
        if self._repo is None:
            self._repo = GitRepo.discover()
        return self._repo

    def _strategies(self) -> list[DiffStrategy]:
        poster = None
        if self._config.comment is not None and self._config.comment.enabled:
            poster = self._poster_factory(self._config)
        return select_strategies(self._config, poster, file=self._output)

    def _changed_files(self) -> tuple[list[str], list[str]]:
        """Return the (applications, invalid) files to process."""
        if file := self._config.file_to_compare:
            return filter_ignored([file], self._config.files_to_ignore), []
        result = self.repo.changed_files(
            self._config.target_branch, self._config.files_to_ignore
        )
        return result.applications, result.invalid

    async def run(self) -> None:
        """Compare every changed Application."""
        config = self._config
        _LOGGER.info("===> Running Argo Compare version [%s]", config.version)

        with collect_traces() as collector:
            applications, invalid = self._changed_files()
            if config.file_to_compare and not applications:
                _LOGGER.info(
                    "Specified file [%s] ignored by filters. Exiting...",
                    config.file_to_compare,
                )
                return
            if not applications:
                _LOGGER.info("No changed Application files found. Exiting...")
                self._report_invalid(invalid)
                return

            strategies = self._strategies()
            for path in applications:
                await self.process(path, strategies)

        for line in collector.summary():
            _LOGGER.debug("[Trace] %s", line)
        self._report_invalid(invalid)

    def _report_invalid(self, invalid: list[str]) -> None:
        if not invalid:
            return
        _LOGGER.info("===> The following yaml files are invalid and were skipped")
        for path in invalid:
            _LOGGER.warning("▶ %s", path)
        raise InvalidFilesFound(invalid)

    def resolve_target(self, path: str) -> tuple[Application | None, DestinationAction]:
        """Return the target branch version of the Application, if any."""
        config = self._config
        try:
            content = self.repo.content_at(config.target_branch, path)
        except FileNotInTargetBranchError:
            if not config.print_added_manifests:
                _LOGGER.warning(
                    "The requested file [%s] does not exist in target branch [%s], "
                    "assuming it is a new Application",
                    path,
                    config.target_branch,
                )
                return None, DestinationAction.SKIP
            _LOGGER.info(
                "Application [%s] is new, comparing against an empty target", path
            )
            return None, DestinationAction.EMPTY
        try:
            return parse_application(content), DestinationAction.RENDER
        except EmptyFileError:
            return None, DestinationAction.EMPTY
        except InvalidApplicationError as err:
            _LOGGER.error(
                "Could not get the target Application from branch [%s]: %s",
                config.target_branch,
                err,
            )
            return None, DestinationAction.EMPTY

    async def process(self, path: str, strategies: list[DiffStrategy]) -> None:
        """Render, compare and present a single changed Application."""
        config = self._config
        _LOGGER.info("===> Processing changed application: [%s]", path)
        app = parse_application(self.repo.read_file(path))

        target_app, action = self.resolve_target(path)
        if action == DestinationAction.SKIP:
            return

        config.temp_dir_base.mkdir(parents=True, exist_ok=True)
        with trace_context(f"Application {path}"), tempfile.TemporaryDirectory(
            prefix=TEMP_DIR_PREFIX, dir=config.temp_dir_base
        ) as tmp_dir:
            workspace = Workspace(Path(tmp_dir))
            await self._helm.template(app, workspace, RevisionLabel.SOURCE)
            if target_app is not None:
                await self._helm.template(
                    target_app, workspace, RevisionLabel.DESTINATION
                )
            result = await Compare(
                workspace,
                preserve_helm_labels=config.preserve_helm_labels,
                show_added=config.print_added_manifests,
                show_removed=config.print_removed_manifests,
            ).execute()
            for strategy in strategies:
                await strategy.present(result, path)
