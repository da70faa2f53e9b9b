"""On disk cache of downloaded helm chart archives.

Archives are stored per chart repository in a directory named after the
slugified repository URL, e.g. `<cache_dir>/https-charts-example-com/podinfo-6.5.0.tgz`.
Entries are never evicted; chart releases are immutable so an archive for a
given (repository, chart, version) can be reused for every run.
"""

import glob
import logging
from pathlib import Path
from shutil import rmtree
import uuid

import aiofiles
import aiofiles.os
from slugify import slugify

from .exceptions import AmbiguousChartError, ChartNotFoundError

__all__ = [
    "ChartCache",
]

_LOGGER = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tgz"
BUILD_METADATA_MARKERS = ("+", "_")
PARTIAL_SUFFIX = ".part"


class ChartCache:
    """Cache manager for chart archives."""

    def __init__(self, cache_dir: Path) -> None:
        """Initialize the cache manager."""
        self._cache_dir = cache_dir

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def location(self, repo_url: str) -> Path:
        """Return the directory holding archives for the repository."""
        slug = slugify(repo_url, lowercase=True, separator="-")
        if not slug:
            raise ValueError(f"Invalid repository URL '{repo_url}'")
        return self._cache_dir / slug

    def find(self, repo_url: str, chart: str, revision: str) -> list[Path]:
        """Return cached archives matching the chart and revision.

        Archive names don't always follow `<chart>-<version>.tgz` (for example
        `sonarqube-4.0.0+315.tgz`) so an archive where the version is followed
        by build metadata (`+` or `_`) also matches, unless an exact match exists.
        """
        location = self.location(repo_url)
        if not location.is_dir():
            return []
        exact = location / f"{chart}-{revision}{ARCHIVE_SUFFIX}"
        if exact.is_file():
            return [exact]
        return sorted(
            path
            for marker in BUILD_METADATA_MARKERS
            for path in location.glob(
                f"{glob.escape(chart)}-{glob.escape(revision)}{marker}*{ARCHIVE_SUFFIX}"
            )
            if path.is_file()
        )

    def has(self, repo_url: str, chart: str, revision: str) -> bool:
        """Return True if an archive for the chart is present."""
        return bool(self.find(repo_url, chart, revision))

    def archive(self, repo_url: str, chart: str, revision: str) -> Path:
        """Return the single cached archive for the chart."""
        matches = self.find(repo_url, chart, revision)
        if not matches:
            raise ChartNotFoundError(
                f"Chart archive for {chart} version {revision} not found in "
                f"{self.location(repo_url)}"
            )
        if len(matches) > 1:
            raise AmbiguousChartError(
                f"More than one chart archive found for {chart} version {revision}, "
                f"please check your cache directory: {[str(m) for m in matches]}"
            )
        return matches[0]

    async def store(self, repo_url: str, filename: str, content: bytes) -> Path:
        """Write an archive into the cache.

        The content is written to a partial file first and renamed, so a
        concurrent reader never observes a truncated archive.
        """
        location = self.location(repo_url)
        await aiofiles.os.makedirs(location, exist_ok=True)
        path = location / filename
        partial = location / f"{filename}.{uuid.uuid4().hex}{PARTIAL_SUFFIX}"
        async with aiofiles.open(partial, mode="wb") as archive_file:
            await archive_file.write(content)
        await aiofiles.os.rename(partial, path)
        _LOGGER.debug("Stored chart archive %s", path)
        return path

    def purge(self) -> None:
        """Remove the whole cache directory."""
        if self._cache_dir.exists():
            _LOGGER.info("Purging cache directory: %s", self._cache_dir)
            rmtree(self._cache_dir)
