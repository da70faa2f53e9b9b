"""Strategies for presenting a comparison result.

A strategy is selected once from the run configuration:

- `StdoutStrategy` prints unified diffs to the terminal
- `ExternalDiffStrategy` pipes each diff to an external viewer
- `CommentStrategy` posts the result as a merge request comment
"""

from abc import ABC, abstractmethod
import logging
import shlex
import sys
from typing import TextIO, cast

from . import command
from .comment import Poster
from .comment.markdown import build_comment_bodies
from .config import Config
from .exceptions import (
    CommandException,
    CommentException,
    ConfigException,
    ExternalDiffException,
)
from .resource_diff import ComparisonResult, DiffOutput

__all__ = [
    "DiffStrategy",
    "StdoutStrategy",
    "ExternalDiffStrategy",
    "CommentStrategy",
    "select_strategies",
    "NO_DIFF_MESSAGE",
]

_LOGGER = logging.getLogger(__name__)

NO_DIFF_MESSAGE = "No diff was found in rendered manifests!"


def _sections(
    result: ComparisonResult, show_added: bool, show_removed: bool
) -> list[tuple[str, list[DiffOutput]]]:
    """Return the (operation, entries) sections that are shown, in order."""
    sections = []
    if show_added:
        sections.append(("added", result.added))
    if show_removed:
        sections.append(("removed", result.removed))
    sections.append(("changed", result.changed))
    return sections


class DiffStrategy(ABC):
    """Presents the comparison result of one Application."""

    @abstractmethod
    async def present(self, result: ComparisonResult, application: str) -> None:
        """Present the result for the Application at the given path."""


class StdoutStrategy(DiffStrategy):
    """Prints unified diffs grouped by operation."""

    def __init__(
        self,
        show_added: bool = False,
        show_removed: bool = False,
        file: TextIO | None = None,
    ) -> None:
        """Initialize StdoutStrategy."""
        self._show_added = show_added
        self._show_removed = show_removed
        self._file = file

    @property
    def file(self) -> TextIO:
        return self._file or sys.stdout

    async def present(self, result: ComparisonResult, application: str) -> None:
        if result.is_empty():
            _LOGGER.info(NO_DIFF_MESSAGE)
            return
        for operation, entries in _sections(
            result, self._show_added, self._show_removed
        ):
            if not entries:
                continue
            noun = "file" if len(entries) == 1 else "files"
            _LOGGER.info(
                "The following %d %s would be %s:", len(entries), noun, operation
            )
            for entry in entries:
                _LOGGER.info("▶ %s", entry.file.path)
                print(entry.diff, file=self.file)


class ExternalDiffStrategy(DiffStrategy):
    """Feeds every diff to an external tool on stdin and prints its output."""

    def __init__(
        self,
        tool: str,
        show_added: bool = False,
        show_removed: bool = False,
        file: TextIO | None = None,
    ) -> None:
        """Initialize ExternalDiffStrategy."""
        self._tool = shlex.split(tool)
        self._show_added = show_added
        self._show_removed = show_removed
        self._file = file

    @property
    def file(self) -> TextIO:
        return self._file or sys.stdout

    async def _run_tool(self, diff: str) -> None:
        cmd = command.Command(
            self._tool, exc=ExternalDiffException, combine_output=True
        )
        out = await cmd.run(diff.encode())
        if out:
            print(out.decode("utf-8", errors="replace"), file=self.file)

    async def present(self, result: ComparisonResult, application: str) -> None:
        if result.is_empty():
            _LOGGER.info(NO_DIFF_MESSAGE)
            return
        for _, entries in _sections(result, self._show_added, self._show_removed):
            for entry in entries:
                try:
                    await self._run_tool(entry.diff)
                except CommandException as err:
                    _LOGGER.error(
                        "External diff tool failed for %s: %s", entry.file.path, err
                    )


class CommentStrategy(DiffStrategy):
    """Posts the result through a comment Poster."""

    def __init__(
        self,
        poster: Poster | None,
        logger: logging.Logger | None = _LOGGER,
        show_added: bool = False,
        show_removed: bool = False,
    ) -> None:
        """Initialize CommentStrategy."""
        self._poster = poster
        self._logger = logger
        self._show_added = show_added
        self._show_removed = show_removed

    def validate(self) -> None:
        if self._poster is None:
            raise ConfigException("comment strategy requires a poster implementation")
        if self._logger is None:
            raise ConfigException("comment strategy requires a logger")

    async def present(self, result: ComparisonResult, application: str) -> None:
        self.validate()
        poster = cast(Poster, self._poster)
        logger = cast(logging.Logger, self._logger)
        bodies = build_comment_bodies(
            result, application, self._show_added, self._show_removed
        )
        for index, body in enumerate(bodies, start=1):
            try:
                await poster.post(body)
            except CommentException as err:
                part = f" (part {index}/{len(bodies)})" if len(bodies) > 1 else ""
                raise CommentException(f"post diff comment{part}: {err}") from err

        app = application.strip() or "unknown application"
        if result.is_empty():
            logger.info(
                "Posted comment summarizing absence of manifest changes for %s", app
            )
        elif len(bodies) > 1:
            logger.info(
                "Posted %d comments with manifest diff summary for %s",
                len(bodies),
                app,
            )
        else:
            logger.info("Posted comment with manifest diff summary for %s", app)


def select_strategies(
    config: Config, poster: Poster | None = None, file: TextIO | None = None
) -> list[DiffStrategy]:
    """Return the strategies configured for the run, in presentation order."""
    show_added = config.print_added_manifests
    show_removed = config.print_removed_manifests
    strategies: list[DiffStrategy] = []
    if config.external_diff_tool:
        strategies.append(
            ExternalDiffStrategy(
                config.external_diff_tool, show_added, show_removed, file=file
            )
        )
    else:
        strategies.append(StdoutStrategy(show_added, show_removed, file=file))
    if config.comment is not None and config.comment.enabled:
        strategy = CommentStrategy(poster, _LOGGER, show_added, show_removed)
        strategy.validate()
        strategies.append(strategy)
    return strategies
