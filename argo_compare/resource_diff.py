"""Module for reconciling the two rendered output trees of an Application.

The working tree version is rendered into `templates/src` and the target branch
version into `templates/dst`. Every rendered `.yaml` file is addressed by its
path relative to its tree and compared by content hash:

- **added**: only rendered from the working tree
- **removed**: only rendered from the target branch
- **changed**: rendered from both with different content

Files with equal content on both sides are dropped.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
import difflib
import hashlib
import logging
from pathlib import Path
import re

from .context import trace_context
from .helm import RevisionLabel, Workspace
from .manifest import MANIFEST_SUFFIX

__all__ = [
    "Compare",
    "ComparisonResult",
    "DiffOutput",
    "RenderedFile",
    "HELM_LABELS",
    "strip_helm_labels",
    "file_hashes",
    "classify",
    "unified_diff",
]

_LOGGER = logging.getLogger(__name__)

HELM_LABELS = (
    "app.kubernetes.io/managed-by",
    "helm.sh/chart",
    "chart",
    "app.kubernetes.io/version",
)
"""Labels injected by helm whose values change with every chart release."""

_HELM_LABEL_RE = re.compile(
    r"^[ \t]*(?:{keys})[ \t]*:.*(?:\r?\n|$)".format(
        keys="|".join(
            rf"{quote}{re.escape(label)}{quote}"
            for label in HELM_LABELS
            for quote in ("", '"', "'")
        )
    ),
    re.MULTILINE,
)


@dataclass(frozen=True)
class RenderedFile:
    """A rendered resource file within one output tree."""

    path: str
    """Path relative to the root of the output tree, using `/` separators."""

    sha: str
    """Hex digest of the file content."""


@dataclass(frozen=True)
class DiffOutput:
    """A reconciled file and its unified diff text."""

    file: RenderedFile
    diff: str = ""


@dataclass
class ComparisonResult:
    """Files affected by a change to an Application."""

    added: list[DiffOutput] = field(default_factory=list)
    removed: list[DiffOutput] = field(default_factory=list)
    changed: list[DiffOutput] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


def strip_helm_labels_from_text(content: str) -> str:
    """Remove the lines defining one of the churn-only labels."""
    return _HELM_LABEL_RE.sub("", content)


def strip_helm_labels(root: Path) -> None:
    """Strip the churn-only labels from every rendered file under `root`."""
    for path in sorted(root.rglob(f"*{MANIFEST_SUFFIX}")):
        if not path.is_file():
            continue
        content = path.read_text()
        stripped = strip_helm_labels_from_text(content)
        if stripped != content:
            path.write_text(stripped)


def file_hashes(root: Path) -> dict[str, str]:
    """Return a map of relative path to content hash for a rendered tree."""
    if not root.is_dir():
        return {}
    hashes: dict[str, str] = {}
    for path in sorted(root.rglob(f"*{MANIFEST_SUFFIX}")):
        if path.is_file():
            hashes[path.relative_to(root).as_posix()] = hashlib.sha256(
                path.read_bytes()
            ).hexdigest()
    return hashes


def classify(
    src: dict[str, str], dst: dict[str, str]
) -> tuple[list[RenderedFile], list[RenderedFile], list[RenderedFile]]:
    """Return the (added, removed, changed) files of two rendered trees."""
    added = [RenderedFile(path, sha) for path, sha in src.items() if path not in dst]
    removed = [RenderedFile(path, sha) for path, sha in dst.items() if path not in src]
    changed = [
        RenderedFile(path, sha)
        for path, sha in src.items()
        if path in dst and dst[path] != sha
    ]
    return added, removed, changed


def _lines(content: str) -> list[str]:
    lines = content.splitlines(keepends=True)
    if lines and not lines[-1].endswith("\n"):
        lines[-1] += "\n"
    return lines


def unified_diff(name: str, dst_content: str, src_content: str) -> str:
    """Return the unified diff from the target branch to the working tree version."""
    return "".join(
        difflib.unified_diff(
            _lines(dst_content),
            _lines(src_content),
            fromfile=f"{RevisionLabel.DESTINATION.value}/{name}",
            tofile=f"{RevisionLabel.SOURCE.value}/{name}",
            n=3,
        )
    )


def _read(path: Path) -> str:
    """Return the file content, or empty when the file was not rendered."""
    try:
        return path.read_text()
    except FileNotFoundError:
        return ""


class Compare:
    """Reconciles the rendered trees of a workspace."""

    def __init__(
        self,
        workspace: Workspace,
        preserve_helm_labels: bool = False,
        show_added: bool = False,
        show_removed: bool = False,
    ) -> None:
        """Initialize Compare."""
        self._workspace = workspace
        self._preserve_helm_labels = preserve_helm_labels
        self._show_added = show_added
        self._show_removed = show_removed

    def _diffs(self, files: Iterable[RenderedFile]) -> list[DiffOutput]:
        src_root = self._workspace.templates_dir(RevisionLabel.SOURCE)
        dst_root = self._workspace.templates_dir(RevisionLabel.DESTINATION)
        return [
            DiffOutput(
                file,
                unified_diff(
                    file.path, _read(dst_root / file.path), _read(src_root / file.path)
                ),
            )
            for file in files
        ]

    async def execute(self) -> ComparisonResult:
        """Compare the source and destination trees of the workspace."""
        templates_root = self._workspace.templates_root
        with trace_context("Compare"):
            if not self._preserve_helm_labels:
                await asyncio.to_thread(strip_helm_labels, templates_root)

            src, dst = await asyncio.gather(
                asyncio.to_thread(
                    file_hashes, self._workspace.templates_dir(RevisionLabel.SOURCE)
                ),
                asyncio.to_thread(
                    file_hashes,
                    self._workspace.templates_dir(RevisionLabel.DESTINATION),
                ),
            )
            added, removed, changed = classify(src, dst)
            _LOGGER.debug(
                "Rendered files: %d added, %d removed, %d changed",
                len(added),
                len(removed),
                len(changed),
            )
            return ComparisonResult(
                added=(
                    self._diffs(added)
                    if self._show_added
                    else [DiffOutput(f) for f in added]
                ),
                removed=(
                    self._diffs(removed)
                    if self._show_removed
                    else [DiffOutput(f) for f in removed]
                ),
                changed=self._diffs(changed),
            )
