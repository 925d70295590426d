import json
from datetime import UTC, datetime

import pytest

from file_concatenator.config import ExportFormat, HeaderFormat, ProcessedFile
from file_concatenator.exclusion import create_rule, toggle_rule
from file_concatenator.output_construction import (
    EXPORTERS,
    build_export_metadata,
    count_lines,
    escape_cdata,
    file_type_key,
    header_format_for_export,
    render_export,
    stats,
)

STAMP = datetime(2024, 3, 1, 8, 0, 0, tzinfo=UTC)


def _file(path: str, content: str) -> ProcessedFile:
    return ProcessedFile.from_text(path, content, media_type="text/plain", last_modified=STAMP)


@pytest.mark.unit
def test_stats_of_empty_list_is_all_zero() -> None:
    s = stats([])

    assert s.file_count == 0
    assert s.total_size_bytes == 0
    assert s.total_lines == 0
    assert s.file_type_histogram == {}
    assert s.average_file_size == 0


@pytest.mark.unit
def test_trailing_newline_counts_an_extra_line() -> None:
    assert count_lines("line1\nline2\n") == 3
    assert count_lines("") == 1


@pytest.mark.unit
def test_stats_aggregates() -> None:
    files = [_file("a.py", "x\ny"), _file("b.PY", "abc"), _file("Makefile", "all:\n"), _file("c.ts", "")]

    s = stats(files)

    assert s.file_count == 4
    assert s.total_size_bytes == 3 + 3 + 5 + 0
    assert s.total_lines == 2 + 1 + 2 + 1
    assert s.file_type_histogram == {"py": 2, "makefile": 1, "ts": 1}


@pytest.mark.unit
def test_average_file_size_rounds_half_up() -> None:
    assert stats([_file("a", "x"), _file("b", "xx")]).average_file_size == 2
    assert stats([_file("a", "x"), _file("b", "x"), _file("c", "xx")]).average_file_size == 1


@pytest.mark.unit
def test_file_type_key() -> None:
    assert file_type_key("archive.TAR.GZ") == "gz"
    assert file_type_key("README") == "readme"
    assert file_type_key("trailing.") == "unknown"


@pytest.mark.unit
def test_build_export_metadata_keeps_enabled_rules_only() -> None:
    on = create_rule("log", description="logs")
    off = toggle_rule(create_rule("tmp"))
    files = [_file("a.py", "abc")]

    metadata = build_export_metadata(files, [on, off], generated_at=STAMP)

    assert metadata.exclude_rules == [on]
    assert metadata.file_count == 1
    assert metadata.total_size == 3
    assert build_export_metadata(files, [], include_files=False).files == []


@pytest.mark.unit
def test_every_export_format_is_registered() -> None:
    assert set(EXPORTERS) == set(ExportFormat)


@pytest.mark.unit
def test_header_format_for_export() -> None:
    assert header_format_for_export(ExportFormat.MARKDOWN) is HeaderFormat.MARKDOWN
    assert header_format_for_export(ExportFormat.JSON) is HeaderFormat.COMMENT


@pytest.mark.unit
def test_plain_export_is_the_body() -> None:
    metadata = build_export_metadata([], [], generated_at=STAMP)

    assert render_export(ExportFormat.PLAIN, "body", metadata) == "body"


@pytest.mark.unit
def test_markdown_export_header_and_section_markers() -> None:
    files = [_file("a.py", "abc")]
    metadata = build_export_metadata(files, [create_rule("dist")], generated_at=STAMP)

    out = render_export(ExportFormat.MARKDOWN, "=== src/a.py ===\nprint()\n", metadata)

    assert out.startswith("# File Concatenation Report\n\n**Generated:** ")
    assert "**Total Files:** 1  \n**Total Size:** 3 bytes  \n**Excluded Patterns:** 1\n\n---\n\n" in out
    assert out.endswith("## src/a.py\n\n```\nprint()\n")


@pytest.mark.unit
def test_json_export_document() -> None:
    files = [_file("docs/ünïcode.md", "héllo")]
    rule = create_rule("dist")
    metadata = build_export_metadata(files, [rule], generated_at=STAMP)

    out = render_export(ExportFormat.JSON, "ignored", metadata)
    document = json.loads(out)

    assert "ünïcode" in out
    assert document["generated_at"] == "2024-03-01T08:00:00.000Z"
    assert document["metadata"]["file_count"] == 1
    assert document["metadata"]["total_size"] == len("héllo".encode())
    assert document["metadata"]["exclude_rules"][0]["pattern"] == "dist"
    assert document["files"] == [
        {
            "path": "docs/ünïcode.md",
            "name": "ünïcode.md",
            "size": 6,
            "media_type": "text/plain",
            "content": "héllo",
        },
    ]


@pytest.mark.unit
def test_json_export_without_file_listing() -> None:
    metadata = build_export_metadata([_file("a.py", "abc")], [], include_files=False, generated_at=STAMP)

    document = json.loads(render_export(ExportFormat.JSON, "", metadata))

    assert document["files"] == []
    assert document["metadata"]["file_count"] == 1


@pytest.mark.unit
def test_xml_export_escapes_text_and_splits_cdata_end() -> None:
    files = [_file("a&b<c>.xml", "x ]]> y")]
    metadata = build_export_metadata(files, [], generated_at=STAMP)

    out = render_export(ExportFormat.XML, "", metadata)

    assert out.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<concatenation>\n')
    assert "<path>a&amp;b&lt;c&gt;.xml</path>" in out
    assert "<generatedAt>2024-03-01T08:00:00.000Z</generatedAt>" in out
    assert "<content><![CDATA[x ]]]]><![CDATA[> y]]></content>" in out
    assert escape_cdata("]]>]]>") == "]]]]><![CDATA[>]]]]><![CDATA[>"


@pytest.mark.unit
def test_html_export_escapes_path_and_content() -> None:
    files = [_file("<evil>.html", "<script>alert('x') & more</script>")]
    metadata = build_export_metadata(files, [], generated_at=STAMP)

    out = render_export(ExportFormat.HTML, "", metadata)

    assert out.startswith("<!DOCTYPE html>")
    assert "<title>File Concatenation Report</title>" in out
    assert "<h3>&lt;evil&gt;.html</h3>" in out
    assert "&lt;script&gt;alert('x') &amp; more&lt;/script&gt;" in out
    assert "<script>" not in out
    assert out.count('class="file-section"') == 1
