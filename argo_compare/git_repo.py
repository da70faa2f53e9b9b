"""Library for finding the Application manifests changed on a branch.

The working tree (HEAD) is compared with the remote tracking branch of the
target branch using the committed tree objects of both commits. Every changed
`.yaml` file is parsed and classified as an Application, an invalid manifest,
or an unrelated file.

Example usage:

```python
from argo_compare import git_repo

repo = git_repo.GitRepo.discover()
result = repo.changed_files("main", ignore=["apps/secondary.yaml"])
for path in result.applications:
    print(f"Found changed application: {path}")
```
"""

from dataclasses import dataclass, field
import enum
import logging
import os
from pathlib import Path

import git
from git.exc import BadName, BadObject

from .exceptions import (
    EmptyFileError,
    FileNotInTargetBranchError,
    GitException,
    InvalidApplicationError,
    NotApplicationError,
    UnsupportedAppConfigurationError,
)
from .manifest import MANIFEST_SUFFIX, parse_application

__all__ = [
    "GitRepo",
    "ChangedFile",
    "ChangedFilesResult",
    "FileKind",
    "filter_ignored",
]

_LOGGER = logging.getLogger(__name__)

REMOTE_REF_TEMPLATE = "refs/remotes/origin/{branch}"


class FileKind(str, enum.Enum):
    """Classification of a changed file."""

    APPLICATION = "application"
    INVALID = "invalid"
    NON_APPLICATION = "non-application"


@dataclass(frozen=True)
class ChangedFile:
    """A repository relative path and how it was classified."""

    path: str
    kind: FileKind
    reason: str | None = None


@dataclass
class ChangedFilesResult:
    """Changed Application manifests between two branches."""

    applications: list[str] = field(default_factory=list)
    """Valid Application manifests, in diff order."""

    invalid: list[str] = field(default_factory=list)
    """Manifests that failed validation and are skipped."""


def filter_ignored(files: list[str], ignored: list[str] | None) -> list[str]:
    """Remove paths that exactly match an entry of the ignore list."""
    if not ignored:
        return list(files)
    ignored_set = set(ignored)
    return [file for file in files if file not in ignored_set]


class GitRepo:
    """A local git repository with an `origin` remote."""

    def __init__(self, repo: git.Repo) -> None:
        """Initialize GitRepo."""
        self._repo = repo

    @classmethod
    def discover(cls, path: Path | None = None) -> "GitRepo":
        """Open the repository containing `path`, or the working directory."""
        search = str(path) if path is not None else os.getcwd()
        try:
            repo = git.Repo(search, search_parent_directories=True)
        except git.GitError as err:
            raise GitException(f"Unable to find git repository at {search}: {err}") from err
        return cls(repo)

    @property
    def root(self) -> Path:
        """Return the root of the working tree."""
        if self._repo.working_tree_dir is None:
            raise GitException("Repository has no working tree")
        return Path(self._repo.working_tree_dir)

    def _head_commit(self) -> git.Commit:
        try:
            return self._repo.head.commit
        except ValueError as err:
            raise GitException(f"Failed to get HEAD: {err}") from err

    def _target_commit(self, target_branch: str) -> git.Commit:
        ref = REMOTE_REF_TEMPLATE.format(branch=target_branch)
        try:
            return self._repo.commit(ref)
        except (BadName, BadObject, ValueError) as err:
            raise GitException(
                f"Failed to resolve target branch {target_branch}: {err}"
            ) from err

    def changed_paths(self, target_branch: str) -> tuple[list[str], list[str]]:
        """Return the (changed, removed) paths of HEAD relative to the target branch."""
        target_commit = self._target_commit(target_branch)
        head_commit = self._head_commit()
        try:
            diffs = target_commit.diff(head_commit)
        except git.GitCommandError as err:
            raise GitException(f"Failed to get diff between trees: {err}") from err

        found: list[str] = []
        removed: list[str] = []
        for diff in diffs:
            if diff.deleted_file or not diff.b_path:
                if diff.a_path:
                    removed.append(diff.a_path)
                continue
            # A rename pair still removes the old path from the target tree
            if diff.renamed_file and diff.a_path and diff.a_path != diff.b_path:
                removed.append(diff.a_path)
            found.append(diff.b_path)

        _LOGGER.debug("===> Found the following changed files:")
        for path in found:
            _LOGGER.debug("▶ %s", path)
        _LOGGER.debug("===> Found the following removed files:")
        for path in removed:
            _LOGGER.debug("▶ %s", path)
        return found, removed

    def read_file(self, path: str) -> bytes:
        """Return the content of a file in the working tree."""
        try:
            return (self.root / path).read_bytes()
        except FileNotFoundError as err:
            raise GitException(f"File {path} does not exist in the working tree") from err

    def classify(self, path: str) -> ChangedFile:
        """Parse a changed file and classify it."""
        _LOGGER.debug("===> Checking if [%s] is an Application", path)
        try:
            parse_application(self.read_file(path))
        except NotApplicationError:
            _LOGGER.debug("Skipping non-application file [%s]", path)
            return ChangedFile(path, FileKind.NON_APPLICATION)
        except EmptyFileError:
            _LOGGER.debug("Skipping empty file [%s]", path)
            return ChangedFile(path, FileKind.NON_APPLICATION)
        except UnsupportedAppConfigurationError as err:
            _LOGGER.warning("Skipping unsupported application configuration [%s]", path)
            return ChangedFile(path, FileKind.INVALID, str(err))
        except (InvalidApplicationError, GitException) as err:
            _LOGGER.error("Error checking if [%s] is an Application: %s", path, err)
            return ChangedFile(path, FileKind.INVALID, str(err))
        _LOGGER.info("▶ %s", path)
        return ChangedFile(path, FileKind.APPLICATION)

    def changed_files(
        self, target_branch: str, ignore: list[str] | None = None
    ) -> ChangedFilesResult:
        """Return changed Application manifests between HEAD and the target branch."""
        found, _ = self.changed_paths(target_branch)
        result = ChangedFilesResult()
        for path in found:
            if not path.endswith(MANIFEST_SUFFIX):
                continue
            changed = self.classify(path)
            if changed.kind == FileKind.APPLICATION:
                result.applications.append(path)
            elif changed.kind == FileKind.INVALID:
                result.invalid.append(path)
        result.applications = filter_ignored(result.applications, ignore)
        result.invalid = filter_ignored(result.invalid, ignore)
        return result

    def content_at(self, target_branch: str, path: str) -> bytes:
        """Return the content of `path` as of the target branch.

        Raises `FileNotInTargetBranchError` when the path does not exist there.
        """
        _LOGGER.debug("Getting content of %s from %s", path, target_branch)
        tree = self._target_commit(target_branch).tree
        try:
            blob = tree / path
        except KeyError as err:
            raise FileNotInTargetBranchError(path, target_branch) from err
        try:
            return blob.data_stream.read()
        except (BadObject, ValueError) as err:
            raise GitException(f"Failed to get contents of file {path}: {err}") from err
