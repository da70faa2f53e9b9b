"""Render a comparison result as Markdown comment bodies.

The body starts with a header naming the Application and a summary of the
counts per section, followed by a collapsible `<details>` block per rendered
file. CRD manifests are usually huge and are listed in a notes section rather
than inlined.

GitLab rejects notes longer than 1,000,000 characters, so a result that does
not fit is split on line boundaries into several bodies that each repeat the
header.
"""

from ..resource_diff import ComparisonResult, DiffOutput

__all__ = [
    "build_comment_bodies",
    "NOTE_LENGTH_LIMIT",
    "PART_RESERVE",
    "NO_DIFFERENCES",
]

NOTE_LENGTH_LIMIT = 1_000_000
PART_RESERVE = 32
"""Room kept free for the `_Part i of n_` suffix."""

NO_DIFFERENCES = "No manifest differences detected :white_check_mark:"

ADDED = "Added"
REMOVED = "Removed"
CHANGED = "Changed"

_CLOSING = "```\n</details>\n\n"
_DIFF_HEADERS = ("diff --git ", "index ", "--- ", "+++ ")


def _ensure_trailing_newline(body: str) -> str:
    return body.rstrip("\n") + "\n"


def _max_per_comment(header_len: int, limit: int) -> int:
    max_per_comment = limit - PART_RESERVE
    if max_per_comment <= 0:
        max_per_comment = limit
    if header_len >= max_per_comment:
        max_per_comment = header_len + 1
    return max_per_comment


def summary_lines(result: ComparisonResult, show_added: bool, show_removed: bool) -> str:
    lines = []
    for label, entries, shown in (
        (ADDED, result.added, show_added),
        (REMOVED, result.removed, show_removed),
    ):
        if shown or entries:
            line = f"- {label}: {len(entries)}"
            if not shown:
                line += " (not shown)"
            lines.append(line)
    lines.append(f"- {CHANGED}: {len(result.changed)}")
    return "**Summary**\n" + "\n".join(lines) + "\n\n"


def strip_diff_headers(diff: str) -> str:
    """Remove the leading file header lines of a unified diff."""
    lines = diff.split("\n")
    start = 0
    while start < len(lines) and lines[start].startswith(_DIFF_HEADERS):
        start += 1
    return "\n".join(lines[start:])


def is_crd_manifest(entry: DiffOutput) -> bool:
    """Return True when the entry looks like a CustomResourceDefinition."""
    name = entry.file.path.strip("/").lower()
    for segment in name.split("/") if name else ():
        if segment == "crds" or segment.endswith((".crd.yaml", "-crd.yaml")):
            return True
    return "kind: customresourcedefinition" in entry.diff.lower()


def split_content(content: str, limit: int) -> tuple[str, str]:
    """Split content at the last line break that fits within the limit."""
    if limit <= 0 or len(content) <= limit:
        return content, ""
    cut = content.rfind("\n", 0, limit)
    if cut <= 0:
        cut = limit
    return content[:cut], content[cut:].removeprefix("\n")


def _entry_chunks(section: str, entry: DiffOutput, max_len: int) -> list[str]:
    file_name = entry.file.path.lstrip("/") or "unknown"
    diff = strip_diff_headers(entry.diff.rstrip("\n") or "(no diff output)")
    chunks = []
    part = 1
    remaining = diff
    while remaining:
        label = f"{section} • {file_name}"
        if part > 1:
            label += f" (part {part})"
        opening = f"<details>\n<summary>{label}</summary>\n\n```diff\n"
        available = max(max_len - len(opening) - len(_CLOSING), 1)
        chunk, remaining = split_content(remaining, available)
        if not chunk.endswith("\n"):
            chunk += "\n"
        chunks.append(opening + chunk + _CLOSING)
        part += 1
    return chunks


def _section_chunks(
    section: str, entries: list[DiffOutput], max_len: int
) -> tuple[list[str], list[str]]:
    chunks: list[str] = []
    notices: list[str] = []
    for entry in entries:
        if is_crd_manifest(entry):
            file_name = entry.file.path.lstrip("/") or "unknown"
            notices.append(
                f"> CRD manifest `{file_name}` detected in the {section.lower()} "
                "section. Diff omitted to keep merge request comments concise. "
                "Review the job logs for full details.\n"
            )
            continue
        chunks.extend(_entry_chunks(section, entry, max_len))
    return chunks, notices


def _omitted_notice(section: str, count: int) -> str:
    return (
        f"> {section} manifests ({count}) are present but not shown "
        "with the current settings.\n\n"
    )


def _assemble(header: str, chunks: list[str], limit: int) -> list[str]:
    max_per_comment = _max_per_comment(len(header), limit)
    bodies = []
    body = header
    for chunk in chunks:
        if not chunk.strip():
            continue
        if len(body) + len(chunk) > max_per_comment and len(body) > len(header):
            bodies.append(_ensure_trailing_newline(body))
            body = header
        body += chunk
    if len(body) > len(header) or not bodies:
        bodies.append(_ensure_trailing_newline(body))
    return bodies


def build_comment_bodies(
    result: ComparisonResult,
    application: str,
    show_added: bool = False,
    show_removed: bool = False,
    limit: int = NOTE_LENGTH_LIMIT,
) -> list[str]:
    """Return the comment bodies to post for an Application, in order.

    When more than one body is returned each one ends with a `_Part i of n_`
    marker.
    """
    app_label = (application.strip() or "unknown").replace("`", "\\`")
    header = f"## Argo Compare Results\n\n**Application:** `{app_label}`\n\n"
    header += summary_lines(result, show_added, show_removed)
    if result.is_empty():
        return [_ensure_trailing_newline(header + NO_DIFFERENCES + "\n")]

    max_per_comment = _max_per_comment(len(header), limit)
    max_chunk_len = max_per_comment - len(header)
    if max_chunk_len <= 0:
        max_chunk_len = max_per_comment // 2

    chunks: list[str] = []
    notices: list[str] = []
    for section, entries, shown in (
        (ADDED, result.added, show_added),
        (REMOVED, result.removed, show_removed),
        (CHANGED, result.changed, True),
    ):
        if shown:
            section_chunks, section_notices = _section_chunks(
                section, entries, max_chunk_len
            )
            chunks.extend(section_chunks)
            notices.extend(section_notices)
        elif entries:
            chunks.append(_omitted_notice(section, len(entries)))
    if notices:
        chunks.append("**CRD Notes**\n" + "".join(notices) + "\n")

    bodies = _assemble(header, chunks, limit)
    if len(bodies) == 1:
        return bodies
    return [
        _ensure_trailing_newline(
            body.rstrip("\n") + f"\n\n_Part {index} of {len(bodies)}_"
        )
        for index, body in enumerate(bodies, start=1)
    ]
