from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from file_concatenator.config import (
    ConcatenationOptions,
    HeaderFormat,
    SortKey,
    SortOrder,
    utc_now,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from file_concatenator.config import ProcessedFile

BOX_RULE = "*" * 50
REPORT_TITLE = "File Concatenation Report"

_PLACEHOLDER = re.compile(r"\{(path|name|size|modified)\}")


def iso_utc(value: datetime) -> str:
    """Format a timestamp as UTC ISO 8601 with milliseconds and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def local_timestamp(value: datetime) -> str:
    """Format a timestamp in local time for human-facing markdown headers."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def framing_active(options: ConcatenationOptions) -> bool:
    # ``none`` drops the report header as well as the per-file headers.
    return options.include_headers and options.header_format is not HeaderFormat.NONE


def document_header(file_count: int, header_format: HeaderFormat, generated_at: datetime) -> str:
    """Build the report header emitted once, before the first file.

    Args:
        file_count (int): number of files in the output
        header_format (HeaderFormat): markdown gets a heading, other formats a boxed comment
        generated_at (datetime): generation timestamp

    Returns:
        str: the header, without a trailing newline
    """
    if header_format is HeaderFormat.MARKDOWN:
        lines = [
            f"# {REPORT_TITLE}",
            f"Generated: {local_timestamp(generated_at)}",
            f"Total Files: {file_count}",
        ]
    else:
        lines = [
            f"/*{BOX_RULE}",
            f" * {REPORT_TITLE}",
            f" * Generated: {iso_utc(generated_at)}",
            f" * Total Files: {file_count}",
            f" {BOX_RULE}*/",
        ]
    return "\n".join(lines)


def _comment_header(file: ProcessedFile) -> str:
    return "\n".join(
        [
            f"/*{BOX_RULE}",
            f" * File: {file.path}",
            f" * Size: {file.size} bytes",
            f" * Modified: {iso_utc(file.last_modified)}",
            f" {BOX_RULE}*/",
            "",
        ],
    )


def _markdown_header(file: ProcessedFile) -> str:
    return "\n".join(
        [
            f"## {file.path}",
            "",
            f"- **Size:** {file.size} bytes",
            f"- **Modified:** {local_timestamp(file.last_modified)}",
            "",
            "```",
            "",
        ],
    )


def render_template(template: str, file: ProcessedFile) -> str:
    """Substitute ``{path}``, ``{name}``, ``{size}`` and ``{modified}`` in one pass.

    Substituted values are not scanned again, so a path containing ``{name}`` stays
    literal. Unknown braces are left untouched.
    """
    values = {
        "path": file.path,
        "name": file.name,
        "size": str(file.size),
        "modified": iso_utc(file.last_modified),
    }
    return _PLACEHOLDER.sub(lambda m: values[m.group(1)], template)


def file_header(
    file: ProcessedFile,
    header_format: HeaderFormat,
    custom_template: str | None = None,
) -> str:
    """Build the per-file header for a framing dialect.

    Custom framing without a template falls back to comment framing.

    Args:
        file (ProcessedFile): the file being framed
        header_format (HeaderFormat): the framing dialect
        custom_template (str | None, optional): template used by custom framing. Defaults to None.

    Returns:
        str: the header text; empty for ``HeaderFormat.NONE``
    """
    if header_format is HeaderFormat.COMMENT:
        return _comment_header(file)
    if header_format is HeaderFormat.MARKDOWN:
        return _markdown_header(file)
    if header_format is HeaderFormat.CUSTOM:
        if custom_template:
            return render_template(custom_template, file) + "\n"
        return _comment_header(file)
    return ""


def file_footer(header_format: HeaderFormat) -> str:
    if header_format is HeaderFormat.MARKDOWN:
        return "\n```\n"
    return ""


def concatenate(
    files: Sequence[ProcessedFile],
    options: ConcatenationOptions,
    *,
    generated_at: datetime | None = None,
) -> str:
    """Merge files into one string, in the order given.

    The output is made of parts joined with a newline: an optional report header,
    then for every file an optional header, its raw content, an optional footer and,
    for all but the last file, the separator. File contents are never modified.

    Args:
        files (Sequence[ProcessedFile]): the files to merge, already filtered and ordered
        options (ConcatenationOptions): framing and separator settings
        generated_at (datetime | None, optional): timestamp for the report header.
            Defaults to the current time.

    Returns:
        str: the concatenated text, or "" when ``files`` is empty
    """
    if not files:
        return ""

    framed = framing_active(options)
    header_format = options.header_format
    parts: list[str] = []
    if framed:
        parts.append(document_header(len(files), header_format, generated_at or utc_now()))

    last = len(files) - 1
    for index, file in enumerate(files):
        if framed:
            parts.append(file_header(file, header_format, options.custom_header_template))
        parts.append(file.content)
        if framed:
            footer = file_footer(header_format)
            if footer:
                parts.append(footer)
        if index < last:
            parts.append(options.separator)

    return "\n".join(parts)


def default_options() -> ConcatenationOptions:
    return ConcatenationOptions()


_SORT_KEYS: dict[SortKey, Callable[[ProcessedFile], object]] = {
    SortKey.NAME: lambda f: f.name.lower(),
    SortKey.PATH: lambda f: f.path.lower(),
    SortKey.SIZE: lambda f: f.size,
    SortKey.MODIFIED: lambda f: f.last_modified,
}


def sort_files(
    files: Sequence[ProcessedFile],
    sort_by: SortKey = SortKey.NAME,
    sort_order: SortOrder = SortOrder.ASC,
) -> list[ProcessedFile]:
    """Order files before concatenation.

    The sort is stable; names and paths compare case-insensitively.

    Args:
        files (Sequence[ProcessedFile]): the files to order
        sort_by (SortKey, optional): the attribute to sort by. Defaults to name.
        sort_order (SortOrder, optional): ascending or descending. Defaults to ascending.

    Returns:
        list[ProcessedFile]: a new, sorted list
    """
    return sorted(
        files,
        key=_SORT_KEYS[SortKey(sort_by)],  # type: ignore[arg-type]
        reverse=SortOrder(sort_order) is SortOrder.DESC,
    )
