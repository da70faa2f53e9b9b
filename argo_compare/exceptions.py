"""Exceptions related to argo-compare."""

__all__ = [
    "ArgoCompareException",
    "InputException",
    "InvalidApplicationError",
    "EmptyFileError",
    "NotApplicationError",
    "ConflictingSourcesError",
    "UnsupportedAppConfigurationError",
    "CommandException",
    "HelmException",
    "ChartNotFoundError",
    "AmbiguousChartError",
    "ExtractException",
    "ExternalDiffException",
    "GitException",
    "FileNotInTargetBranchError",
    "ConfigException",
    "CommentException",
    "InvalidFilesFound",
]


class ArgoCompareException(Exception):
    """Generic base exception used for this library."""


class InputException(ArgoCompareException):
    """Raised when the input files or values are not formatted as expected."""


class InvalidApplicationError(InputException):
    """Raised when a manifest does not describe a usable Application."""


class EmptyFileError(InvalidApplicationError):
    """Raised when a manifest file has no content."""


class NotApplicationError(InvalidApplicationError):
    """Raised when a manifest is some other kind of resource."""


class ConflictingSourcesError(InvalidApplicationError):
    """Raised when both `source` and `sources` are set."""


class UnsupportedAppConfigurationError(InvalidApplicationError):
    """Raised when an Application source does not reference a helm chart."""


class CommandException(ArgoCompareException):
    """Raised when there is a failure running a subcommand."""


class HelmException(CommandException):
    """Raised when there is a failure running a helm command."""


class ChartNotFoundError(HelmException):
    """Raised when a chart archive is missing from the cache."""


class AmbiguousChartError(HelmException):
    """Raised when more than one cached archive matches a chart."""


class ExtractException(CommandException):
    """Raised when a chart archive could not be unpacked."""


class ExternalDiffException(CommandException):
    """Raised when the external diff tool fails."""


class GitException(ArgoCompareException):
    """Raised when the git repository or a reference can't be resolved."""


class FileNotInTargetBranchError(GitException):
    """Raised when a path does not exist in the target branch."""

    def __init__(self, path: str, branch: str) -> None:
        super().__init__(f"File {path} does not exist in target branch {branch}")
        self.path = path
        self.branch = branch


class ConfigException(ArgoCompareException):
    """Raised when the run configuration is incomplete or inconsistent."""


class CommentException(ArgoCompareException):
    """Raised when a comment could not be published."""


class InvalidFilesFound(ArgoCompareException):
    """Raised at the end of a run when some changed files were skipped as invalid."""

    def __init__(self, files: list[str]) -> None:
        super().__init__(f"Invalid files found: {', '.join(files)}")
        self.files = files
