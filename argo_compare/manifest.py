"""Representation of an Argo CD Application manifest.

An `Application` is parsed from the raw bytes of a manifest file and validated
before any chart is rendered for it. Parsing is pure: callers read the bytes
(from the working tree or from a git blob) and hand them over.

```python
from argo_compare.manifest import parse_application

app = parse_application(pathlib.Path("apps/podinfo.yaml").read_bytes())
for source in app.sources:
    print(f"{app.name} uses chart {source.chart} version {source.target_revision}")
```
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import InvalidFieldValue, MissingField
import yaml

from .exceptions import (
    ConflictingSourcesError,
    EmptyFileError,
    InvalidApplicationError,
    NotApplicationError,
    UnsupportedAppConfigurationError,
)

__all__ = [
    "parse_application",
    "Application",
    "Source",
    "HelmSource",
    "SingleSource",
    "MultiSource",
    "APPLICATION_KIND",
    "MANIFEST_SUFFIX",
]

APPLICATION_KIND = "Application"
MANIFEST_SUFFIX = ".yaml"


@dataclass(frozen=True)
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True)
class HelmSource(BaseManifest):
    """The `helm` block of an Application source."""

    release_name: Optional[str] = field(
        metadata=field_options(alias="releaseName"), default=None
    )
    """Overrides the release name, which defaults to the Application name."""

    values: Optional[str] = None
    """Inline values as a literal YAML string."""

    values_object: Optional[dict[str, Any]] = field(
        metadata=field_options(alias="valuesObject"), default=None
    )
    """Values as a structured map."""

    value_files: list[str] = field(
        metadata=field_options(alias="valueFiles"), default_factory=list
    )
    """Value files referenced by the source (informational only)."""


@dataclass(frozen=True)
class Source(BaseManifest):
    """A reference to one helm chart."""

    repo_url: str = field(metadata=field_options(alias="repoURL"))
    """The chart repository; either an http(s) URL or a registry host/path."""

    chart: str
    """The name of the chart within the repository."""

    target_revision: str = field(metadata=field_options(alias="targetRevision"))
    """The chart version."""

    path: Optional[str] = None
    """Path within a git repository for path based sources."""

    helm: HelmSource = field(default_factory=HelmSource)
    """Helm specific rendering parameters."""

    @classmethod
    def parse_doc(cls, doc: Any) -> "Source":
        """Parse a Source from an entry of `spec.source` or `spec.sources`."""
        if not isinstance(doc, dict):
            raise InvalidApplicationError(f"Invalid source, expected a mapping: {doc}")
        helm_doc = doc.get("helm") or {}
        if not isinstance(helm_doc, dict):
            raise InvalidApplicationError(f"Invalid source helm block: {helm_doc}")
        try:
            helm = HelmSource.from_dict(helm_doc)
        except (MissingField, InvalidFieldValue) as err:
            raise InvalidApplicationError(f"Invalid source helm block: {err}") from err
        return cls(
            repo_url=_scalar(doc.get("repoURL")),
            chart=_scalar(doc.get("chart")),
            target_revision=_scalar(doc.get("targetRevision")),
            path=doc.get("path"),
            helm=helm,
        )

    @property
    def values_content(self) -> str | None:
        """Return the values file content for this source.

        The inline `values` text wins over `valuesObject`.
        """
        if self.helm.values:
            return self.helm.values
        if self.helm.values_object:
            return yaml.dump(self.helm.values_object, sort_keys=False)
        return None


@dataclass(frozen=True)
class SingleSource:
    """An Application rendered from exactly one chart."""

    source: Source

    @property
    def sources(self) -> list[Source]:
        return [self.source]


@dataclass(frozen=True)
class MultiSource:
    """An Application rendered from an ordered list of charts."""

    items: tuple[Source, ...]

    @property
    def sources(self) -> list[Source]:
        return list(self.items)


@dataclass(frozen=True)
class Application:
    """A validated Argo CD Application."""

    name: str
    """The metadata name, also the default helm release name."""

    namespace: str | None
    """The metadata namespace of the Application object itself."""

    spec_source: SingleSource | MultiSource
    """The chart source(s) of the Application."""

    destination_namespace: str | None = None
    """The namespace that rendered resources are deployed to."""

    @classmethod
    def parse_doc(cls, doc: Any) -> "Application":
        """Parse and validate an Application from a decoded YAML document."""
        if _is_empty(doc):
            raise EmptyFileError("empty file")
        if not isinstance(doc, dict) or doc.get("kind") != APPLICATION_KIND:
            raise NotApplicationError("not an application")
        metadata = doc.get("metadata") or {}
        spec = doc.get("spec") or {}
        if not isinstance(metadata, dict) or not isinstance(spec, dict):
            raise InvalidApplicationError(f"Invalid Application structure: {doc}")

        source = spec.get("source")
        sources = spec.get("sources")
        if source and sources:
            raise ConflictingSourcesError(
                "both 'source' and 'sources' fields cannot be set at the same time"
            )
        if not source and not sources:
            raise InvalidApplicationError(
                "Application has neither 'source' nor 'sources' set"
            )

        spec_source: SingleSource | MultiSource
        if sources:
            if not isinstance(sources, list):
                raise InvalidApplicationError(f"Invalid 'sources', expected a list: {sources}")
            spec_source = MultiSource(tuple(Source.parse_doc(s) for s in sources))
        else:
            spec_source = SingleSource(Source.parse_doc(source))

        # Only helm repository based charts are supported as a source
        if any(not s.chart for s in spec_source.sources):
            raise UnsupportedAppConfigurationError("unsupported configuration")

        destination = spec.get("destination") or {}
        return cls(
            name=_scalar(metadata.get("name")),
            namespace=metadata.get("namespace"),
            spec_source=spec_source,
            destination_namespace=(
                destination.get("namespace") if isinstance(destination, dict) else None
            ),
        )

    @property
    def multi_source(self) -> bool:
        return isinstance(self.spec_source, MultiSource)

    @property
    def sources(self) -> list[Source]:
        return self.spec_source.sources

    @property
    def release_namespace(self) -> str | None:
        """Namespace passed to the templating engine."""
        return self.destination_namespace or self.namespace

    def release_name(self, source: Source) -> str:
        """Return the helm release name used when rendering the source."""
        return source.helm.release_name or self.name


def _scalar(value: Any) -> str:
    """Return a YAML scalar as a string, e.g. an unquoted version like `1.10`."""
    if value is None:
        return ""
    return str(value)


def _is_empty(doc: Any) -> bool:
    """Return True if nothing of the Application shape was decoded."""
    if not doc:
        return True
    if not isinstance(doc, dict):
        return False
    metadata = doc.get("metadata")
    spec = doc.get("spec")
    if doc.get("kind"):
        return False
    if isinstance(metadata, dict) and (metadata.get("name") or metadata.get("namespace")):
        return False
    if isinstance(spec, dict) and (spec.get("source") or spec.get("sources")):
        return False
    return True


def parse_application(content: bytes | str) -> Application:
    """Decode and validate the first YAML document of a manifest."""
    try:
        doc = next(iter(yaml.safe_load_all(content)), None)
    except yaml.YAMLError as err:
        raise InvalidApplicationError(f"Unable to parse manifest: {err}") from err
    return Application.parse_doc(doc)
