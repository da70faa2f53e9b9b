"""Library for rendering the helm charts of an Application.

Each side of a comparison (the working tree and the target branch) is rendered
into its own subdirectory of a temporary workspace:

```
<workspace>/
  <chart>-values-src.yaml         generated values for each chart
  <chart>-values-dst.yaml
  charts/{src,dst}/<chart>/       extracted chart archives
  templates/{src,dst}/...         rendered resource files
```

Chart archives are fetched once into the `ChartCache` with `helm pull` and
extracted from there, so rendering two versions of the same chart only
downloads it once.

```python
from argo_compare.cache import ChartCache
from argo_compare.helm import Helm, Workspace, RevisionLabel

helm = Helm(ChartCache(cache_dir), credentials)
await helm.template(app, Workspace(tmp_dir), RevisionLabel.SOURCE)
```
"""

from dataclasses import dataclass
import enum
import logging
from pathlib import Path
import tempfile

import aiofiles

from . import command
from .cache import ChartCache
from .config import RepoCredentials
from .context import trace_context
from .exceptions import ExtractException, HelmException, InputException
from .manifest import Application, Source

__all__ = [
    "Helm",
    "Workspace",
    "RevisionLabel",
    "find_credentials",
    "is_registry_url",
]

_LOGGER = logging.getLogger(__name__)


HELM_BIN = "helm"
TAR_BIN = "tar"
OCI_SCHEME = "oci://"


class RevisionLabel(str, enum.Enum):
    """Side of a comparison."""

    SOURCE = "src"
    """The working tree (HEAD) version."""

    DESTINATION = "dst"
    """The target branch version."""


@dataclass(frozen=True)
class Workspace:
    """Paths within a temporary directory used for one comparison."""

    root: Path

    def values_file(self, chart: str, label: RevisionLabel) -> Path:
        return self.root / f"{chart}-values-{label.value}.yaml"

    def charts_dir(self, label: RevisionLabel) -> Path:
        return self.root / "charts" / label.value

    def chart_dir(self, chart: str, label: RevisionLabel) -> Path:
        return self.charts_dir(label) / chart

    @property
    def templates_root(self) -> Path:
        return self.root / "templates"

    def templates_dir(self, label: RevisionLabel) -> Path:
        return self.templates_root / label.value


def find_credentials(
    repo_url: str, credentials: list[RepoCredentials]
) -> RepoCredentials | None:
    """Return the credentials for the repository, matched on the exact URL."""
    for creds in credentials:
        if creds.url == repo_url:
            return creds
    return None


def is_registry_url(repo_url: str) -> bool:
    """Return True for an OCI registry reference rather than an http repository."""
    return repo_url.startswith(OCI_SCHEME) or "://" not in repo_url


def _chart_ref_args(source: Source) -> list[str]:
    """Return the `helm pull` arguments that address the chart."""
    if is_registry_url(source.repo_url):
        registry = source.repo_url.removeprefix(OCI_SCHEME).rstrip("/")
        return [f"{OCI_SCHEME}{registry}/{source.chart}"]
    return ["--repo", source.repo_url, source.chart]


class Helm:
    """Renders the chart sources of an Application."""

    def __init__(
        self,
        cache: ChartCache,
        credentials: list[RepoCredentials] | None = None,
        runner: command.Runner = command.run,
    ) -> None:
        """Initialize Helm."""
        self._cache = cache
        self._credentials = credentials or []
        self._runner = runner

    async def generate_values(
        self, app: Application, workspace: Workspace, label: RevisionLabel
    ) -> None:
        """Write a values file for every chart source."""
        for source in app.sources:
            if (content := source.values_content) is None:
                raise InputException(
                    f"Application {app.name} chart {source.chart}: neither "
                    "helm.values nor helm.valuesObject provided"
                )
            values_path = workspace.values_file(source.chart, label)
            async with aiofiles.open(values_path, mode="w") as values_file:
                await values_file.write(content)

    async def ensure_chart(self, source: Source) -> None:
        """Download the chart archive into the cache unless already present."""
        if self._cache.has(source.repo_url, source.chart, source.target_revision):
            _LOGGER.debug(
                "Version [%s] of [%s] chart is present in the cache...",
                source.target_revision,
                source.chart,
            )
            return

        _LOGGER.debug(
            "Downloading version [%s] of [%s] chart...",
            source.target_revision,
            source.chart,
        )
        args = [HELM_BIN, "pull", *_chart_ref_args(source)]
        args.extend(["--version", source.target_revision])
        secrets: list[str] = []
        if creds := find_credentials(source.repo_url, self._credentials):
            _LOGGER.debug("Using credentials for repository %s", source.repo_url)
            args.extend(["--username", creds.username, "--password", creds.password])
            secrets.append(creds.password)

        with tempfile.TemporaryDirectory(prefix="argo-compare-pull-") as pull_dir:
            args.extend(["--destination", pull_dir])
            out = await self._runner(
                command.Command(args, exc=HelmException, secrets=secrets)
            )
            if out.strip():
                _LOGGER.info(out.strip())
            archives = sorted(Path(pull_dir).glob("*.tgz"))
            if not archives:
                raise HelmException(
                    f"helm pull returned no archive for {source.chart} "
                    f"version {source.target_revision} from {source.repo_url}"
                )
            for archive in archives:
                async with aiofiles.open(archive, mode="rb") as archive_file:
                    content = await archive_file.read()
                await self._cache.store(source.repo_url, archive.name, content)

    async def ensure_charts(self, app: Application) -> None:
        """Make sure every chart source is present in the cache."""
        for source in app.sources:
            await self.ensure_chart(source)

    async def extract_charts(
        self, app: Application, workspace: Workspace, label: RevisionLabel
    ) -> None:
        """Unpack the cached archive of every chart source into the workspace."""
        for source in app.sources:
            archive = self._cache.archive(
                source.repo_url, source.chart, source.target_revision
            )
            charts_dir = workspace.charts_dir(label)
            charts_dir.mkdir(parents=True, exist_ok=True)
            _LOGGER.debug(
                "Extracting [%s] chart version [%s] to %s...",
                source.chart,
                source.target_revision,
                charts_dir,
            )
            out = await self._runner(
                command.Command(
                    [TAR_BIN, "xf", str(archive), "-C", str(charts_dir)],
                    exc=ExtractException,
                )
            )
            if out.strip():
                _LOGGER.info(out.strip())

    async def render(
        self, app: Application, workspace: Workspace, label: RevisionLabel
    ) -> None:
        """Run `helm template` for every chart source."""
        for source in app.sources:
            release_name = app.release_name(source)
            _LOGGER.debug(
                "Rendering [%s] chart's version [%s] templates using release name [%s]",
                source.chart,
                source.target_revision,
                release_name,
            )
            args = [
                HELM_BIN,
                "template",
                release_name,
                str(workspace.chart_dir(source.chart, label)),
                "--output-dir",
                str(workspace.templates_dir(label)),
                "--values",
                str(workspace.values_file(source.chart, label)),
            ]
            if namespace := app.release_namespace:
                args.extend(["--namespace", namespace])
            await self._runner(command.Command(args, exc=HelmException))

    async def template(
        self, app: Application, workspace: Workspace, label: RevisionLabel
    ) -> None:
        """Render all chart sources of the Application for one side."""
        with trace_context(f"Render {label.value} {app.name}"):
            with trace_context("Values"):
                await self.generate_values(app, workspace, label)
            with trace_context("Fetch"):
                await self.ensure_charts(app)
            with trace_context("Extract"):
                await self.extract_charts(app, workspace, label)
            with trace_context("Template"):
                await self.render(app, workspace, label)
