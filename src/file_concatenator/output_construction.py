from __future__ import annotations

import io
import json
import re
from datetime import datetime
from html import escape as html_escape
from typing import TYPE_CHECKING
from xml.sax.saxutils import escape as xml_escape

from pydantic import BaseModel, ConfigDict, Field

from file_concatenator.concatenation import REPORT_TITLE, iso_utc, local_timestamp
from file_concatenator.config import (
    ExclusionRule,
    ExportFormat,
    HeaderFormat,
    ProcessedFile,
    utc_now,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    ExporterFn = Callable[[str, "ExportMetadata"], str]

EXPORTERS: dict[ExportFormat, Callable[[str, ExportMetadata], str]] = {}

_SECTION_MARKER = re.compile(r"^=== (.+) ===$", re.MULTILINE)


class ConcatenationStats(BaseModel):
    """Aggregate metrics over a list of files."""

    model_config = ConfigDict(frozen=True)

    file_count: int = 0
    total_size_bytes: int = 0
    total_lines: int = 0
    file_type_histogram: dict[str, int] = Field(default_factory=dict)
    average_file_size: int = 0


class ExportMetadata(BaseModel):
    """Everything an export envelope needs besides the concatenated body.

    Attributes:
        generated_at: Timestamp printed in the envelope.
        file_count: Number of files in the body.
        total_size: Sum of file sizes in bytes.
        exclude_rules: The enabled rules that were in effect.
        files: Files listed with their metadata; empty when metadata is not included.
    """

    model_config = ConfigDict(frozen=True)

    generated_at: datetime = Field(default_factory=utc_now)
    file_count: int = 0
    total_size: int = 0
    exclude_rules: list[ExclusionRule] = Field(default_factory=list)
    files: list[ProcessedFile] = Field(default_factory=list)


def _half_up(numerator: int, denominator: int) -> int:
    return (2 * numerator + denominator) // (2 * denominator)


def file_type_key(name: str) -> str:
    """Histogram key for a file name: its lower-cased extension, or the whole name."""
    key = name.rsplit(".", 1)[-1].lower()
    return key or "unknown"


def count_lines(content: str) -> int:
    """Count newline-delimited segments; a trailing newline adds one empty segment."""
    return len(content.split("\n"))


def stats(files: Sequence[ProcessedFile]) -> ConcatenationStats:
    """Compute aggregate metrics for a list of files.

    Args:
        files (Sequence[ProcessedFile]): the files, typically those being concatenated

    Returns:
        ConcatenationStats: counts, sizes, line totals and a file type histogram;
            all zero for an empty list
    """
    if not files:
        return ConcatenationStats()

    total_size = sum(f.size for f in files)
    histogram: dict[str, int] = {}
    for f in files:
        key = file_type_key(f.name)
        histogram[key] = histogram.get(key, 0) + 1
    return ConcatenationStats(
        file_count=len(files),
        total_size_bytes=total_size,
        total_lines=sum(count_lines(f.content) for f in files),
        file_type_histogram=histogram,
        average_file_size=_half_up(total_size, len(files)),
    )


def build_export_metadata(
    files: Sequence[ProcessedFile],
    rules: Sequence[ExclusionRule],
    *,
    include_files: bool = True,
    generated_at: datetime | None = None,
) -> ExportMetadata:
    return ExportMetadata(
        generated_at=generated_at or utc_now(),
        file_count=len(files),
        total_size=sum(f.size for f in files),
        exclude_rules=[r for r in rules if r.enabled],
        files=list(files) if include_files else [],
    )


def header_format_for_export(fmt: ExportFormat) -> HeaderFormat:
    """Framing used for the body of an export: markdown for markdown, comments otherwise."""
    return HeaderFormat.MARKDOWN if ExportFormat(fmt) is ExportFormat.MARKDOWN else HeaderFormat.COMMENT


def register_exporter(fmt: ExportFormat) -> Callable[[ExporterFn], ExporterFn]:
    """Decorator to register an envelope builder for an export format.

    Args:
        fmt (ExportFormat): the format the decorated function renders

    Returns:
        Callable[[ExporterFn], ExporterFn]: a decorator that records the function in
            ``EXPORTERS`` and returns it unchanged
    """

    def decorator(func: ExporterFn) -> ExporterFn:
        EXPORTERS[fmt] = func
        return func

    return decorator


@register_exporter(ExportFormat.PLAIN)
def export_plain(body: str, metadata: ExportMetadata) -> str:  # noqa: ARG001
    return body


@register_exporter(ExportFormat.MARKDOWN)
def export_markdown(body: str, metadata: ExportMetadata) -> str:
    """Prefix a report header and turn ``=== path ===`` lines into fenced sections."""
    out = io.StringIO()
    out.write(f"# {REPORT_TITLE}\n\n")
    out.write(f"**Generated:** {local_timestamp(metadata.generated_at)}  \n")
    out.write(f"**Total Files:** {metadata.file_count}  \n")
    out.write(f"**Total Size:** {metadata.total_size} bytes  \n")
    out.write(f"**Excluded Patterns:** {len(metadata.exclude_rules)}\n\n")
    out.write("---\n\n")
    out.write(_SECTION_MARKER.sub(lambda m: f"## {m.group(1)}\n\n```", body))
    return out.getvalue()


@register_exporter(ExportFormat.JSON)
def export_json(body: str, metadata: ExportMetadata) -> str:  # noqa: ARG001
    document = {
        "generated_at": iso_utc(metadata.generated_at),
        "metadata": {
            "file_count": metadata.file_count,
            "total_size": metadata.total_size,
            "exclude_rules": [r.model_dump(mode="json") for r in metadata.exclude_rules],
        },
        "files": [
            {
                "path": f.path,
                "name": f.name,
                "size": f.size,
                "media_type": f.media_type,
                "content": f.content,
            }
            for f in metadata.files
        ],
    }
    return json.dumps(document, indent=2, ensure_ascii=False)


def escape_cdata(content: str) -> str:
    """Split every ``]]>`` so the content can sit inside a single CDATA section."""
    return content.replace("]]>", "]]]]><![CDATA[>")


@register_exporter(ExportFormat.XML)
def export_xml(body: str, metadata: ExportMetadata) -> str:  # noqa: ARG001
    out = io.StringIO()
    out.write('<?xml version="1.0" encoding="UTF-8"?>\n')
    out.write("<concatenation>\n")
    out.write("    <metadata>\n")
    out.write(f"        <generatedAt>{iso_utc(metadata.generated_at)}</generatedAt>\n")
    out.write(f"        <fileCount>{metadata.file_count}</fileCount>\n")
    out.write(f"        <totalSize>{metadata.total_size}</totalSize>\n")
    out.write(f"        <excludePatterns>{len(metadata.exclude_rules)}</excludePatterns>\n")
    out.write("    </metadata>\n")
    out.write("    <files>\n")
    for f in metadata.files:
        out.write("        <file>\n")
        out.write(f"            <path>{xml_escape(f.path)}</path>\n")
        out.write(f"            <name>{xml_escape(f.name)}</name>\n")
        out.write(f"            <size>{f.size}</size>\n")
        out.write(f"            <type>{xml_escape(f.media_type)}</type>\n")
        out.write(f"            <lastModified>{iso_utc(f.last_modified)}</lastModified>\n")
        out.write(f"            <content><![CDATA[{escape_cdata(f.content)}]]></content>\n")
        out.write("        </file>\n")
    out.write("    </files>\n")
    out.write("</concatenation>\n")
    return out.getvalue()


_HTML_STYLE = """\
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; margin: 40px; }
        .header { border-bottom: 2px solid #e5e7eb; padding-bottom: 20px; margin-bottom: 30px; }
        .file-section { margin-bottom: 40px; border: 1px solid #e5e7eb; border-radius: 8px; overflow: hidden; }
        .file-section h3 { margin: 0; padding: 15px; background: #f9fafb; border-bottom: 1px solid #e5e7eb; }
        .file-meta { padding: 10px 15px; background: #f3f4f6; font-size: 14px; color: #6b7280; }
        .file-meta span { margin-right: 20px; }
        pre { margin: 0; padding: 20px; overflow-x: auto; background: #1f2937; color: #f9fafb; }
        code { font-family: 'SF Mono', Monaco, 'Cascadia Code', monospace; }
"""


def _html_section(f: ProcessedFile) -> str:
    return (
        '    <div class="file-section">\n'
        f"        <h3>{html_escape(f.path)}</h3>\n"
        '        <div class="file-meta">\n'
        f"            <span>Size: {f.size} bytes</span>\n"
        f"            <span>Type: {html_escape(f.media_type)}</span>\n"
        f"            <span>Modified: {local_timestamp(f.last_modified)}</span>\n"
        "        </div>\n"
        f"        <pre><code>{html_escape(f.content, quote=False)}</code></pre>\n"
        "    </div>\n"
    )


@register_exporter(ExportFormat.HTML)
def export_html(body: str, metadata: ExportMetadata) -> str:  # noqa: ARG001
    out = io.StringIO()
    out.write("<!DOCTYPE html>\n<html>\n<head>\n")
    out.write('    <meta charset="utf-8">\n')
    out.write(f"    <title>{REPORT_TITLE}</title>\n")
    out.write(f"    <style>\n{_HTML_STYLE}    </style>\n")
    out.write("</head>\n<body>\n")
    out.write('    <div class="header">\n')
    out.write(f"        <h1>{REPORT_TITLE}</h1>\n")
    out.write(f"        <p><strong>Generated:</strong> {local_timestamp(metadata.generated_at)}</p>\n")
    out.write(
        f"        <p><strong>Total Files:</strong> {metadata.file_count} | "
        f"<strong>Total Size:</strong> {metadata.total_size} bytes</p>\n",
    )
    out.write("    </div>\n")
    for f in metadata.files:
        out.write(_html_section(f))
    out.write("</body>\n</html>\n")
    return out.getvalue()


def render_export(fmt: ExportFormat, body: str, metadata: ExportMetadata) -> str:
    """Wrap a concatenated body in the envelope registered for ``fmt``.

    Args:
        fmt (ExportFormat): the target envelope
        body (str): the concatenated text
        metadata (ExportMetadata): counts, rules and (optionally) the files themselves

    Returns:
        str: the export document
    """
    return EXPORTERS[ExportFormat(fmt)](body, metadata)
