from __future__ import annotations

from pathlib import Path

import pytest

from file_concatenator import __version__, cli
from file_concatenator.config import ExportFormat, HeaderFormat, RuleKind, SortKey
from file_concatenator.exceptions import InvalidPatternError
from file_concatenator.settings import Settings


def _concat_settings(*argv: str) -> Settings:
    return cli.parse_settings(cli.build_parser().parse_args(["concat", *argv]))


@pytest.mark.unit
def test_parse_concat_options() -> None:
    settings = _concat_settings(
        "--repo",
        "project",
        "--format",
        "markdown",
        "--header-format",
        "custom",
        "--custom-template",
        "== {path} ==",
        "--sort-by",
        "size",
        "--exclude-ext",
        "log",
        "--exclude-ext",
        "map",
        "--preset",
        "testing",
        "--batch-size",
        "4",
    )

    assert settings.repo == Path("project")
    assert settings.format is ExportFormat.MARKDOWN
    assert settings.header_format is HeaderFormat.CUSTOM
    assert settings.custom_template == "== {path} =="
    assert settings.sort_by is SortKey.SIZE
    assert settings.exclude_ext == ["log", "map"]
    assert settings.preset == ["testing"]
    assert settings.batch_size == 4


@pytest.mark.unit
def test_collections_dir_falls_back_to_default_when_not_given() -> None:
    assert _concat_settings().collections_dir == Settings().collections_dir
    assert _concat_settings("--collections-dir", "store").collections_dir == Path("store")


@pytest.mark.unit
def test_separator_escapes_are_decoded() -> None:
    assert _concat_settings("--separator", r"\n---\n").separator == "\n---\n"
    assert cli.decode_separator(r"a\tb\\n") == "a\tb\\n"
    assert cli.decode_separator("plain") == "plain"


@pytest.mark.unit
def test_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--version"])

    assert exc_info.value.code == 0
    assert __version__ in capsys.readouterr().out


@pytest.mark.unit
@pytest.mark.parametrize("value", ["0", "-3", "many"])
def test_batch_size_must_be_a_positive_int(value: str, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        _concat_settings("--batch-size", value)

    assert exc_info.value.code == 2
    assert "--batch-size" in capsys.readouterr().err
    assert cli.positive_int("1") == 1


@pytest.mark.unit
def test_unknown_preset_is_rejected_by_the_parser() -> None:
    with pytest.raises(SystemExit):
        _concat_settings("--preset", "nope")


@pytest.mark.unit
def test_build_rules_order(tmp_path: Path) -> None:
    rules_file = tmp_path / "rules.yaml"
    rules_file.write_text("- {kind: path, pattern: vendor}\n", encoding="utf-8")
    settings = Settings(
        rules_file=rules_file,
        preset=["logs-temp"],
        exclude_ext=["map"],
        exclude_glob=["*.min.*"],
        exclude_regex=[r"\.snap$"],
        exclude_path=["dist"],
    )

    rules = cli.build_rules(settings)

    assert rules[0].pattern == "vendor"
    assert [r.pattern for r in rules[1:5]] == ["log", "tmp", "temp", "*.cache"]
    assert [(r.kind, r.pattern) for r in rules[5:]] == [
        (RuleKind.EXTENSION, "map"),
        (RuleKind.GLOB, "*.min.*"),
        (RuleKind.REGEX, r"\.snap$"),
        (RuleKind.PATH, "dist"),
    ]


@pytest.mark.unit
def test_build_rules_strict_rejects_invalid_pattern() -> None:
    with pytest.raises(InvalidPatternError):
        cli.build_rules(Settings(exclude_regex=["[invalid("], strict_rules=True))

    assert cli.build_rules(Settings(exclude_regex=["[invalid("]))[0].pattern == "[invalid("


@pytest.mark.unit
def test_validate_command(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["validate", "*.test.js", "--kind", "glob"]) == 0
    assert capsys.readouterr().out == "valid\n"

    assert cli.main(["validate", "../etc"]) == 1
    assert capsys.readouterr().out == "invalid: Path traversal patterns are not allowed\n"


@pytest.mark.unit
def test_presets_command(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["presets"]) == 0

    out = capsys.readouterr().out
    assert "web-development: Web Development - Common files to exclude in web projects" in out
    assert "node_modules" in out


@pytest.mark.unit
def test_library_errors_map_to_exit_code_2(tmp_path: Path) -> None:
    code = cli.main(["concat", "--collection", "5", "--collections-dir", str(tmp_path)])

    assert code == 2
