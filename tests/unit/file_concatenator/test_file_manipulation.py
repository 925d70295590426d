from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from file_concatenator.config import RuleKind
from file_concatenator.exceptions import RulesFileError
from file_concatenator.file_manipulation import (
    SkippedFile,
    candidates_from_paths,
    iter_directory,
    load_candidate,
    load_candidates,
    load_directory,
    load_rules_file,
    make_candidate,
    read_sample,
    relpath,
)

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


def _write(path: Path, data: str | bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, bytes):
        path.write_bytes(data)
    else:
        path.write_text(data, encoding="utf-8")
    return path


@pytest.mark.unit
def test_relpath_uses_posix_separators(tmp_path: Path) -> None:
    assert relpath(tmp_path / "a" / "b.py", tmp_path) == "a/b.py"


@pytest.mark.unit
def test_iter_directory_walks_in_case_insensitive_order_and_prunes_vcs(tmp_path: Path) -> None:
    _write(tmp_path / "b.txt", "b")
    _write(tmp_path / "A.txt", "a")
    _write(tmp_path / "sub" / "c.txt", "c")
    _write(tmp_path / "Lib" / "d.txt", "d")
    _write(tmp_path / ".git" / "HEAD", "ref")

    rels = [c.rel for c in iter_directory(tmp_path)]

    assert rels == ["A.txt", "b.txt", "Lib/d.txt", "sub/c.txt"]


@pytest.mark.unit
def test_iter_directory_is_restartable(tmp_path: Path) -> None:
    _write(tmp_path / "a.txt", "a")

    assert [c.rel for c in iter_directory(tmp_path)] == [c.rel for c in iter_directory(tmp_path)]


@pytest.mark.unit
def test_iter_directory_handles_deep_trees(tmp_path: Path) -> None:
    depth = 60
    deep = tmp_path.joinpath(*[f"d{i}" for i in range(depth)])
    _write(deep / "leaf.txt", "leaf")

    (candidate,) = list(iter_directory(tmp_path))

    assert candidate.rel.count("/") == depth
    assert candidate.name == "leaf.txt"


@pytest.mark.unit
def test_make_candidate_guesses_media_type(tmp_path: Path) -> None:
    candidate = make_candidate(_write(tmp_path / "page.html", "<p>"), tmp_path)

    assert candidate.media_type == "text/html"
    assert candidate.size == 3


@pytest.mark.unit
def test_candidates_from_paths_drops_missing_files(tmp_path: Path) -> None:
    kept = _write(tmp_path / "src" / "a.py", "x")

    candidates = candidates_from_paths([kept, tmp_path / "missing.py", tmp_path / "src"], tmp_path)

    assert [c.rel for c in candidates] == ["src/a.py"]


@pytest.mark.unit
def test_candidates_outside_root_are_named_by_file_name(tmp_path: Path) -> None:
    outside = _write(tmp_path / "elsewhere" / "b.py", "x")

    (candidate,) = candidates_from_paths([outside], tmp_path / "repo")

    assert candidate.rel == "b.py"


@pytest.mark.unit
def test_relative_paths_are_resolved_against_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write(tmp_path / "sub" / "a.py", "x")
    monkeypatch.chdir(tmp_path)

    (candidate,) = candidates_from_paths([Path("sub/a.py")], Path.cwd())

    assert candidate.rel == "sub/a.py"
    assert candidate.path.is_absolute()


@pytest.mark.unit
def test_read_sample_returns_none_for_unreadable(tmp_path: Path) -> None:
    assert read_sample(tmp_path / "missing") is None
    assert read_sample(_write(tmp_path / "f", b"0123456789"), 4) == b"0123"


@pytest.mark.unit
def test_load_candidate_keeps_content_byte_for_byte(tmp_path: Path) -> None:
    path = _write(tmp_path / "win.txt", b"one\r\ntwo\r\n")

    loaded = load_candidate(make_candidate(path, tmp_path))

    assert not isinstance(loaded, SkippedFile)
    assert loaded.content == "one\r\ntwo\r\n"
    assert loaded.path == "win.txt"
    assert loaded.size == len(b"one\r\ntwo\r\n")
    assert loaded.last_modified.tzinfo is not None


@pytest.mark.unit
def test_load_candidate_skips_binary(tmp_path: Path) -> None:
    path = _write(tmp_path / "blob.bin", b"\x00\x01\x02\x03")

    loaded = load_candidate(make_candidate(path, tmp_path))

    assert loaded == SkippedFile(rel="blob.bin", reason="binary file")


@pytest.mark.unit
def test_load_candidate_reports_read_errors(tmp_path: Path, mocker: MockerFixture) -> None:
    path = _write(tmp_path / "a.py", "x")
    candidate = make_candidate(path, tmp_path)
    mocker.patch.object(Path, "read_bytes", side_effect=PermissionError("denied"))

    loaded = load_candidate(candidate)

    assert isinstance(loaded, SkippedFile)
    assert loaded.reason.startswith("read error:")


@pytest.mark.unit
def test_load_candidates_keeps_input_order_and_reports_progress(tmp_path: Path) -> None:
    paths = [_write(tmp_path / f"f{i:02d}.txt", str(i)) for i in range(7)]
    paths.insert(3, _write(tmp_path / "blob.bin", b"\x00"))
    progress: list[tuple[int, int | None]] = []

    report = load_candidates(
        candidates_from_paths(paths, tmp_path),
        batch_size=3,
        on_progress=lambda done, total: progress.append((done, total)),
    )

    assert [f.content for f in report.files] == [str(i) for i in range(7)]
    assert [s.rel for s in report.skipped] == ["blob.bin"]
    assert progress == [(3, 8), (6, 8), (8, 8)]


@pytest.mark.unit
def test_load_candidates_from_lazy_walk_has_unknown_total(tmp_path: Path) -> None:
    _write(tmp_path / "a.txt", "a")
    progress: list[tuple[int, int | None]] = []

    report = load_candidates(iter_directory(tmp_path), on_progress=lambda d, t: progress.append((d, t)))

    assert len(report.files) == 1
    assert progress == [(1, None)]


@pytest.mark.unit
def test_load_directory_gives_unique_ids(tmp_path: Path) -> None:
    for name in ("a.py", "b.py", "c.md"):
        _write(tmp_path / name, name)

    report = load_directory(tmp_path)

    assert [f.path for f in report.files] == ["a.py", "b.py", "c.md"]
    assert len({f.id for f in report.files}) == 3


@pytest.mark.unit
def test_load_rules_file_accepts_mapping_and_list(tmp_path: Path) -> None:
    mapping = _write(
        tmp_path / "rules.yaml",
        "rules:\n"
        "  - kind: extension\n"
        "    pattern: log\n"
        "  - kind: glob\n"
        "    pattern: '*.min.*'\n"
        "    enabled: false\n"
        "    description: Minified\n",
    )
    bare = _write(tmp_path / "bare.yaml", "- {kind: path, pattern: dist}\n")

    rules = load_rules_file(mapping)

    assert [(r.kind, r.pattern, r.enabled) for r in rules] == [
        (RuleKind.EXTENSION, "log", True),
        (RuleKind.GLOB, "*.min.*", False),
    ]
    assert rules[1].description == "Minified"
    assert load_rules_file(bare)[0].kind is RuleKind.PATH
    assert load_rules_file(_write(tmp_path / "empty.yaml", "")) == []


@pytest.mark.unit
@pytest.mark.parametrize(
    "text",
    [
        "rules: nope\n",
        "- just a string\n",
        "- {kind: wildcard, pattern: x}\n",
        "- {kind: path}\n",
        "rules: [unclosed\n",
    ],
)
def test_load_rules_file_rejects_malformed(tmp_path: Path, text: str) -> None:
    path = _write(tmp_path / "rules.yaml", text)

    with pytest.raises(RulesFileError) as exc_info:
        load_rules_file(path)

    assert exc_info.value.path == path


@pytest.mark.unit
def test_load_rules_file_missing(tmp_path: Path) -> None:
    with pytest.raises(RulesFileError):
        load_rules_file(tmp_path / "missing.yaml")
