from __future__ import annotations

import mimetypes
import os
import stat
from collections.abc import Sized
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from file_concatenator.classifier import classify
from file_concatenator.config import (
    DEFAULT_PRUNED_DIRS,
    SAMPLE_BYTES,
    ExclusionRule,
    FileKind,
    ProcessedFile,
    new_id,
)
from file_concatenator.exceptions import RulesFileError
from file_concatenator.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Sequence

    ProgressFn = Callable[[int, int | None], None]

DEFAULT_BATCH_SIZE = 32


class FileCandidate(BaseModel):
    """A file offered by an ingestion source, before classification.

    Attributes:
        path: Location on disk.
        rel: Slash-separated path relative to the ingestion root.
        name: Base filename.
        size: Size in bytes.
        mtime: POSIX modification time (seconds).
        media_type: Best-effort media type guessed from the name, may be empty.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="File location on disk")
    rel: str = Field(..., min_length=1, description="Path relative to the ingestion root")
    name: str = Field(..., description="Base filename")
    size: int = Field(..., ge=0, description="File size in bytes")
    mtime: float = Field(..., description="POSIX modification time (seconds)")
    media_type: str = Field(default="", description="Guessed media type")


class SkippedFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    rel: str
    reason: str


class IngestionReport(BaseModel):
    """Files accepted into the working set and the ones left out, both in input order."""

    files: list[ProcessedFile] = Field(default_factory=list)
    skipped: list[SkippedFile] = Field(default_factory=list)


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path).replace("\\", "/")


def guess_media_type(name: str) -> str:
    media_type, _encoding = mimetypes.guess_type(name, strict=False)
    return media_type or ""


def is_regular_file(path: Path) -> bool:
    """Check if a file is regular.

    Args:
        path (Path): path to test.

    Returns:
        bool: True if the file is regular, False otherwise.
    """
    try:
        st = path.stat()
    except OSError:
        return False
    return stat.S_ISREG(st.st_mode)


def make_candidate(path: Path, root: Path) -> FileCandidate:
    """Describe a file on disk as an ingestion candidate.

    Raises:
        OSError: if the file cannot be stat-ed
    """
    st = path.stat()
    return FileCandidate(
        path=path,
        rel=relpath(path, root),
        name=path.name,
        size=st.st_size,
        mtime=st.st_mtime,
        media_type=guess_media_type(path.name),
    )


def iter_directory(
    root: Path,
    *,
    pruned_dirs: Iterable[str] = DEFAULT_PRUNED_DIRS,
) -> Iterator[FileCandidate]:
    """Lazily walk ``root`` and yield a candidate for every regular file.

    The walk uses an explicit stack rather than recursion, so arbitrarily deep trees
    are fine. Entries are visited in case-insensitive name order, directories whose
    name is in ``pruned_dirs`` are skipped, and symlinked directories are not
    followed. Each call starts a fresh walk.

    Args:
        root (Path): the directory to walk
        pruned_dirs (Iterable[str], optional): directory names never descended into.
            Defaults to VCS metadata directories.

    Yields:
        Iterator[FileCandidate]: one candidate per regular file, in walk order
    """
    pruned = frozenset(pruned_dirs)
    stack: list[Path] = [root]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name.lower())
        except OSError as e:
            logger.warning("Cannot list %s: %s", current, e)
            continue

        subdirs: list[Path] = []
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    if entry.name not in pruned:
                        subdirs.append(Path(entry.path))
                    continue
                if not entry.is_file():
                    continue
                yield make_candidate(Path(entry.path), root)
            except OSError as e:
                logger.warning("Skipping %s: %s", entry.path, e)
        # Reversed so the first subdirectory is popped first.
        stack.extend(reversed(subdirs))


def candidates_from_paths(paths: Sequence[Path], root: Path | None = None) -> list[FileCandidate]:
    """Turn explicitly chosen files into candidates.

    Paths are reported relative to ``root`` when given and when they live under it,
    otherwise by their name. Paths that are not regular files are logged and dropped.

    Args:
        paths (Sequence[Path]): the chosen files
        root (Path | None, optional): base directory for relative paths. Defaults to None.

    Returns:
        list[FileCandidate]: candidates in the order given
    """
    out: list[FileCandidate] = []
    base_dir = root.resolve() if root is not None else None
    for p in paths:
        if not is_regular_file(p):
            logger.warning("Skipping %s: not a regular file", p)
            continue
        # Both sides absolute, or relative paths never compare as under root.
        rp = p.resolve()
        base = base_dir if base_dir is not None and rp.is_relative_to(base_dir) else rp.parent
        try:
            out.append(make_candidate(rp, base))
        except OSError as e:
            logger.warning("Skipping %s: %s", p, e)
    return out


def read_sample(path: Path, nbytes: int = SAMPLE_BYTES) -> bytes | None:
    """Read the first ``nbytes`` of a file.

    Args:
        path (Path): the file to sample
        nbytes (int, optional): number of bytes to read. Defaults to 1024.

    Returns:
        bytes | None: the leading bytes, or None if the file cannot be read
    """
    try:
        with path.open("rb") as f:
            return f.read(nbytes)
    except OSError as e:
        logger.warning("Cannot sample %s: %s", path, e)
        return None


def load_candidate(candidate: FileCandidate) -> ProcessedFile | SkippedFile:
    """Classify a candidate and, if it is text, read it into a ProcessedFile.

    Content is decoded as UTF-8 without newline translation; undecodable bytes are
    replaced rather than failing the read.

    Args:
        candidate (FileCandidate): the file to load

    Returns:
        ProcessedFile | SkippedFile: the loaded file, or the reason it was left out
    """
    kind = classify(candidate.name, candidate.media_type, read_sample(candidate.path))
    if kind is FileKind.BINARY:
        return SkippedFile(rel=candidate.rel, reason="binary file")
    try:
        content = candidate.path.read_bytes().decode("utf-8", errors="replace")
    except OSError as e:
        return SkippedFile(rel=candidate.rel, reason=f"read error: {e}")
    return ProcessedFile(
        id=new_id(),
        name=candidate.name,
        path=candidate.rel,
        content=content,
        size=candidate.size,
        media_type=candidate.media_type,
        last_modified=datetime.fromtimestamp(candidate.mtime, tz=UTC),
    )


def load_candidates(
    candidates: Iterable[FileCandidate],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    on_progress: ProgressFn | None = None,
) -> IngestionReport:
    """Load candidates in bounded batches, keeping the input order.

    Each batch is read concurrently on a thread pool; ``Executor.map`` hands results
    back in submission order so the working set matches the candidate order.

    Args:
        candidates (Iterable[FileCandidate]): the candidates, possibly a lazy walk
        batch_size (int, optional): files read concurrently per batch. Defaults to 32.
        on_progress (ProgressFn | None, optional): called with ``(done, total)`` after
            each batch; ``total`` is None when the candidates are a lazy iterable.
            Defaults to None.

    Returns:
        IngestionReport: loaded files and skipped paths
    """
    size = max(1, batch_size)
    total = len(candidates) if isinstance(candidates, Sized) else None
    report = IngestionReport()
    done = 0
    with ThreadPoolExecutor(max_workers=size) as executor:
        for batch in _batched(candidates, size):
            for result in executor.map(load_candidate, batch):
                if isinstance(result, SkippedFile):
                    logger.info("Skipping %s: %s", result.rel, result.reason)
                    report.skipped.append(result)
                else:
                    report.files.append(result)
            done += len(batch)
            if on_progress is not None:
                on_progress(done, total)
    return report


def _batched(items: Iterable[FileCandidate], size: int) -> Iterator[list[FileCandidate]]:
    batch: list[FileCandidate] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def load_directory(
    root: Path,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    on_progress: ProgressFn | None = None,
) -> IngestionReport:
    return load_candidates(iter_directory(root), batch_size=batch_size, on_progress=on_progress)


def load_rules_file(path: Path) -> list[ExclusionRule]:
    """Load exclusion rules from a YAML file.

    The document is either a list of rules or a mapping with a ``rules`` list. Each
    rule needs ``kind`` and ``pattern``; ``enabled`` defaults to true, ``description``
    and ``id`` are optional.

    Args:
        path (Path): the YAML file

    Raises:
        RulesFileError: if the file cannot be read, parsed or validated

    Returns:
        list[ExclusionRule]: the rules, in file order
    """
    try:
        data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise RulesFileError(path=path, message=f"Cannot read rules from {path}: {e}") from e

    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("rules", [])
    if not isinstance(data, list):
        raise RulesFileError(path=path, message=f"{path}: expected a list of rules")

    rules: list[ExclusionRule] = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise RulesFileError(path=path, message=f"{path}: rule #{index + 1} is not a mapping")
        try:
            rules.append(ExclusionRule.model_validate(item))
        except ValidationError as e:
            raise RulesFileError(path=path, message=f"{path}: rule #{index + 1} is invalid: {e}") from e
    return rules
