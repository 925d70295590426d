"""
file-concat: filter and concatenate many text files into one document.

Usage
-----
Run ``file-concat --help`` for the full option list. Common examples:
    - Walk a directory and write a plain text bundle with comment headers:
        file-concat concat --repo . --output bundle.txt

    - Markdown export, skipping tests and source maps:
        file-concat concat --repo . --preset testing --exclude-ext map --output bundle.md

    - JSON export of two chosen files to stdout:
        file-concat concat --file a.py --file b.py --format json

    - Check a pattern before using it:
        file-concat validate "*.min.*" --kind glob
"""

from __future__ import annotations

import argparse
import re
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from file_concatenator import __version__
from file_concatenator.collection_store import CollectionStore
from file_concatenator.config import (
    PATTERN_PRESETS,
    ExportFormat,
    HeaderFormat,
    RuleKind,
    SortKey,
    SortOrder,
)
from file_concatenator.exceptions import FileConcatenatorError
from file_concatenator.exclusion import apply_preset, create_rule, describe_rule, validate
from file_concatenator.file_manipulation import (
    candidates_from_paths,
    load_candidates,
    load_directory,
    load_rules_file,
)
from file_concatenator.logging import logger, setup_logging
from file_concatenator.session import Session
from file_concatenator.settings import Settings, default_collections_dir

if TYPE_CHECKING:
    from collections.abc import Sequence

    from file_concatenator.config import ExclusionRule

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "\\": "\\"}
_ESCAPE_PATTERN = re.compile(r"\\([ntr0\\])")

_EXCLUDE_OPTIONS: tuple[tuple[str, RuleKind], ...] = (
    ("exclude_ext", RuleKind.EXTENSION),
    ("exclude_glob", RuleKind.GLOB),
    ("exclude_regex", RuleKind.REGEX),
    ("exclude_path", RuleKind.PATH),
)


def decode_separator(value: str) -> str:
    r"""Turn ``\n``, ``\t``, ``\r``, ``\0`` and ``\\`` typed on the command line into characters."""
    return _ESCAPE_PATTERN.sub(lambda m: _ESCAPES[m.group(1)], value)


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _add_concat_parser(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("concat", help="Concatenate files into one document.")
    p.add_argument("--repo", type=Path, default=None, help="Directory to walk.")
    p.add_argument("--file", type=Path, action="append", default=[], help="File to include (repeatable).")
    p.add_argument("--output", type=Path, default=None, help="Output file (default: stdout).")
    p.add_argument(
        "--format",
        type=str,
        choices=[f.value for f in ExportFormat],
        default=None,
        help="Export format (default: from the output suffix, else plain).",
    )
    p.add_argument("--log-file", type=str, default="", help="Log file path.")

    p.add_argument(
        "--header-format",
        type=str,
        choices=[h.value for h in HeaderFormat],
        default=HeaderFormat.COMMENT.value,
        help="Per-file header dialect.",
    )
    p.add_argument(
        "--custom-template",
        type=str,
        default=None,
        help="Header template for --header-format custom; {path} {name} {size} {modified}.",
    )
    p.add_argument("--no-headers", action="store_true", help="Do not emit any headers.")
    p.add_argument(
        "--separator",
        type=decode_separator,
        default="\n\n",
        help=r"Text between files; \n and \t escapes are decoded.",
    )
    p.add_argument("--sort-by", type=str, choices=[s.value for s in SortKey], default=SortKey.NAME.value)
    p.add_argument("--sort-order", type=str, choices=[s.value for s in SortOrder], default=SortOrder.ASC.value)

    p.add_argument("--exclude-ext", action="append", default=[], help="Exclude extension (repeatable).")
    p.add_argument("--exclude-glob", action="append", default=[], help="Exclude glob (repeatable).")
    p.add_argument("--exclude-regex", action="append", default=[], help="Exclude regex (repeatable).")
    p.add_argument(
        "--exclude-path",
        action="append",
        default=[],
        help="Exclude paths containing this text (repeatable).",
    )
    p.add_argument(
        "--preset",
        action="append",
        default=[],
        choices=list(PATTERN_PRESETS),
        help="Apply a pattern preset (repeatable).",
    )
    p.add_argument("--rules-file", type=Path, default=None, help="YAML file of exclusion rules.")
    p.add_argument("--strict-rules", action="store_true", help="Fail on invalid exclusion patterns.")

    p.add_argument("--no-metadata", action="store_true", help="Leave file listings out of the export.")
    p.add_argument("--stats", action="store_true", help="Print statistics to stderr.")

    p.add_argument("--collection", type=int, default=None, help="Start from a saved collection id.")
    p.add_argument("--save-collection", type=str, default="", help="Save the session under this name.")
    p.add_argument("--collections-dir", type=Path, default=None, help="Collections directory.")
    p.add_argument("--batch-size", type=positive_int, default=32, help="Files read concurrently.")


def build_parser() -> argparse.ArgumentParser:
    """Build the ``file-concat`` parser and its subcommands.

    Returns:
        argparse.ArgumentParser: Configured parser.
    """
    parser = argparse.ArgumentParser(
        prog="file-concat",
        description="Filter and concatenate text files into a single document.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    _add_concat_parser(sub)

    v = sub.add_parser("validate", help="Check an exclusion pattern.")
    v.add_argument("pattern", type=str)
    v.add_argument("--kind", type=str, choices=[k.value for k in RuleKind], default=RuleKind.PATH.value)

    sub.add_parser("presets", help="List pattern presets.")

    c = sub.add_parser("collections", help="Manage saved collections.")
    c.add_argument("--collections-dir", type=Path, default=None, help="Collections directory.")
    c_sub = c.add_subparsers(dest="action", required=True)
    c_sub.add_parser("list", help="List saved collections.")
    d = c_sub.add_parser("delete", help="Delete a saved collection.")
    d.add_argument("collection_id", type=int)
    return parser


def parse_settings(args: argparse.Namespace) -> Settings:
    values = {k: v for k, v in vars(args).items() if k != "command"}
    if values.get("collections_dir") is None:
        values.pop("collections_dir", None)
    return Settings(**values)


def build_rules(settings: Settings) -> list[ExclusionRule]:
    """Collect rules in evaluation order: rules file, presets, then the --exclude-* options.

    Raises:
        RulesFileError: if the rules file is malformed
        InvalidPatternError: with ``--strict-rules``, for a pattern that fails validation
    """
    rules: list[ExclusionRule] = []
    if settings.rules_file is not None:
        rules.extend(load_rules_file(settings.rules_file))
    for preset_id in settings.preset:
        rules.extend(apply_preset(preset_id))
    for option, kind in _EXCLUDE_OPTIONS:
        for pattern in getattr(settings, option):
            check = validate(pattern, kind)
            if not check.valid and not settings.strict_rules:
                logger.warning("Rule %s %r may not match anything: %s", kind, pattern, check.error)
            rules.append(create_rule(pattern, kind, strict=settings.strict_rules))
    return rules


def build_session(settings: Settings) -> Session:
    """Assemble the working set described by the ``concat`` options.

    A saved collection, when given, provides the starting files, rules and settings.
    Otherwise the session settings come from the command line. Files from ``--repo``
    and ``--file`` are added on top; with no source at all the current directory is
    walked.
    """
    if settings.collection is not None:
        collection = CollectionStore(settings.collections_dir).load(settings.collection)
        session = Session.from_collection(collection)
    else:
        session = Session(settings=settings.collection_settings())

    if settings.repo is None and not settings.file and settings.collection is None:
        settings = settings.model_copy(update={"repo": Path.cwd()})

    if settings.repo is not None:
        report = load_directory(settings.repo, batch_size=settings.batch_size)
        session.add_files(report.files)
    if settings.file:
        root = settings.repo or Path.cwd()
        report = load_candidates(candidates_from_paths(settings.file, root), batch_size=settings.batch_size)
        session.add_files(report.files)

    session.add_rules(build_rules(settings))
    return session


def run_concat(settings: Settings) -> int:
    if settings.log_file:
        setup_logging(settings.log_file)

    session = build_session(settings)
    fmt = settings.export_format()
    document = session.export(fmt, include_files=not settings.no_metadata)
    included = len(session.included_files())
    logger.info("Concatenated %d of %d files", included, len(session.files))

    if settings.stats:
        print(session.stats().model_dump_json(indent=2), file=sys.stderr)

    if settings.save_collection:
        store = CollectionStore(settings.collections_dir)
        collection_id = store.save(settings.save_collection, session.files, session.rules, session.settings)
        print(f"Saved collection {collection_id}", file=sys.stderr)

    if settings.output is None:
        sys.stdout.write(document)
        return 0

    settings.output.parent.mkdir(parents=True, exist_ok=True)
    settings.output.write_text(document, encoding="utf-8")
    print(f"Wrote {settings.output} format={fmt} files={included}")
    return 0


def run_validate(pattern: str, kind: str) -> int:
    check = validate(pattern, RuleKind(kind))
    if check.valid:
        print("valid")
        return 0
    print(f"invalid: {check.error}")
    return 1


def run_presets() -> int:
    for preset in PATTERN_PRESETS.values():
        print(f"{preset.id}: {preset.name} - {preset.description}")
        for rule in preset.rules:
            print(f"    {rule.kind:<9} {rule.pattern:<14} {rule.description}")
    return 0


def run_collections(args: argparse.Namespace) -> int:
    store = CollectionStore(args.collections_dir or default_collections_dir())
    if args.action == "delete":
        store.delete(args.collection_id)
        print(f"Deleted collection {args.collection_id}")
        return 0
    for collection in store.list_collections():
        rules = ", ".join(describe_rule(r) for r in collection.rules) or "-"
        print(
            f"{collection.id}\t{collection.name}\t{len(collection.files)} files\t"
            f"{collection.updated_at:%Y-%m-%d %H:%M}\t{rules}",
        )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.command == "concat":
            return run_concat(parse_settings(args))
        if args.command == "validate":
            return run_validate(args.pattern, args.kind)
        if args.command == "presets":
            return run_presets()
        return run_collections(args)
    except FileConcatenatorError as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
