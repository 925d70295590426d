from __future__ import annotations

import re
from typing import TYPE_CHECKING

from file_concatenator.config import (
    PATTERN_PRESETS,
    SUGGESTED_DIRECTORIES,
    ExclusionResult,
    ExclusionRule,
    PatternValidation,
    RuleKind,
    new_id,
)
from file_concatenator.exceptions import InvalidPatternError, UnknownPresetError
from file_concatenator.patterns import glob_to_regex, matches

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from file_concatenator.config import ProcessedFile

_EXTENSION_PATTERN = re.compile(r"\.?[a-zA-Z0-9]+")


def evaluate(path: str, rules: Sequence[ExclusionRule]) -> ExclusionResult:
    """Evaluate an ordered list of rules against a path.

    Rules are tried left to right and the first one that matches is reported, even
    when later rules match too.

    Args:
        path (str): the slash-separated relative path of the file
        rules (Sequence[ExclusionRule]): the rules, in evaluation order

    Returns:
        ExclusionResult: ``excluded=True`` with the first matching rule, or
            ``excluded=False`` without a rule when nothing matches
    """
    for rule in rules:
        if matches(path, rule):
            return ExclusionResult(excluded=True, matched_rule=rule)
    return ExclusionResult(excluded=False)


def validate(pattern: str, kind: RuleKind) -> PatternValidation:
    """Check a pattern at rule-authoring time.

    Validation is advisory: matching never consults it.

    Args:
        pattern (str): the raw pattern typed by the user
        kind (RuleKind): the dialect the pattern is written in

    Returns:
        PatternValidation: ``valid=True``, or ``valid=False`` with a user-facing error
    """
    if not pattern.strip():
        return PatternValidation(valid=False, error="Pattern cannot be empty")

    kind = RuleKind(kind)
    if kind is RuleKind.EXTENSION:
        if not _EXTENSION_PATTERN.fullmatch(pattern):
            return PatternValidation(valid=False, error="Extension must contain only letters and numbers")
    elif kind is RuleKind.GLOB:
        try:
            glob_to_regex(pattern)
        except re.error:
            return PatternValidation(valid=False, error="Invalid glob pattern")
    elif kind is RuleKind.REGEX:
        try:
            re.compile(pattern)
        except re.error as e:
            return PatternValidation(valid=False, error=f"Invalid regex: {e}")
    elif kind is RuleKind.PATH and ".." in pattern:
        return PatternValidation(valid=False, error="Path traversal patterns are not allowed")
    return PatternValidation(valid=True)


def create_rule(
    pattern: str,
    kind: RuleKind = RuleKind.PATH,
    description: str | None = None,
    *,
    strict: bool = False,
) -> ExclusionRule:
    """Create a new, enabled rule with a fresh id.

    Args:
        pattern (str): the raw pattern
        kind (RuleKind, optional): the pattern dialect. Defaults to ``RuleKind.PATH``.
        description (str | None, optional): human description. Defaults to None.
        strict (bool, optional): validate the pattern first. Defaults to False.

    Raises:
        InvalidPatternError: in strict mode, when the pattern fails validation

    Returns:
        ExclusionRule: the new rule
    """
    kind = RuleKind(kind)
    if strict:
        check = validate(pattern, kind)
        if not check.valid:
            raise InvalidPatternError(
                pattern=pattern,
                kind=str(kind),
                message=f"{kind} pattern {pattern!r}: {check.error}",
            )
    return ExclusionRule(id=new_id("rule-"), kind=kind, pattern=pattern, enabled=True, description=description)


def toggle_rule(rule: ExclusionRule) -> ExclusionRule:
    return rule.model_copy(update={"enabled": not rule.enabled})


def describe_rule(rule: ExclusionRule) -> str:
    """Return a human-readable description of what a rule matches."""
    if rule.description:
        return rule.description
    if rule.kind is RuleKind.EXTENSION:
        return f"Files with .{rule.pattern.removeprefix('.')} extension"
    if rule.kind is RuleKind.GLOB:
        return f"Files matching pattern: {rule.pattern}"
    if rule.kind is RuleKind.REGEX:
        return f"Files matching regex: {rule.pattern}"
    return f"Files containing: {rule.pattern}"


def filter_files(
    files: Sequence[ProcessedFile],
    rules: Sequence[ExclusionRule],
) -> tuple[list[ProcessedFile], list[tuple[ProcessedFile, ExclusionResult]]]:
    """Split files into included and excluded, both in input order.

    Args:
        files (Sequence[ProcessedFile]): the working set
        rules (Sequence[ExclusionRule]): the rules, in evaluation order

    Returns:
        tuple: the included files, and the excluded files paired with their result
    """
    included: list[ProcessedFile] = []
    excluded: list[tuple[ProcessedFile, ExclusionResult]] = []
    for f in files:
        result = evaluate(f.path, rules)
        if result.excluded:
            excluded.append((f, result))
        else:
            included.append(f)
    return included, excluded


def apply_preset(preset_id: str) -> list[ExclusionRule]:
    """Create fresh, enabled rules from a named preset.

    Raises:
        UnknownPresetError: if no preset has this id
    """
    preset = PATTERN_PRESETS.get(preset_id)
    if preset is None:
        raise UnknownPresetError(
            preset_id=preset_id,
            message=f"Unknown preset {preset_id!r}; known presets: {', '.join(PATTERN_PRESETS)}",
        )
    return [create_rule(r.pattern, r.kind, r.description) for r in preset.rules]


def suggest_rules(paths: Iterable[str]) -> list[ExclusionRule]:
    """Suggest rules based on the extensions and directories found in ``paths``.

    Extension-driven suggestions come first (test/spec files, minified files, source
    maps, logs), followed by one path rule per well-known directory, in the order the
    directories were first seen.

    Args:
        paths (Iterable[str]): slash-separated relative paths of the working set

    Returns:
        list[ExclusionRule]: suggested rules, enabled, with descriptions
    """
    extensions: set[str] = set()
    directories: dict[str, None] = {}
    for path in paths:
        parts = path.replace("\\", "/").split("/")
        ext = parts[-1].rsplit(".", 1)[-1].lower()
        if ext:
            extensions.add(ext)
        for part in parts:
            if part in SUGGESTED_DIRECTORIES:
                directories.setdefault(part, None)

    suggestions: list[ExclusionRule] = []
    if extensions & {"test", "spec"}:
        suggestions.append(create_rule("*.test.*", RuleKind.GLOB, "Test files"))
        suggestions.append(create_rule("*.spec.*", RuleKind.GLOB, "Spec files"))
    if "min" in extensions:
        suggestions.append(create_rule("*.min.*", RuleKind.GLOB, "Minified files"))
    if "map" in extensions:
        suggestions.append(create_rule("map", RuleKind.EXTENSION, "Source maps"))
    if "log" in extensions:
        suggestions.append(create_rule("log", RuleKind.EXTENSION, "Log files"))
    suggestions.extend(
        create_rule(directory, RuleKind.PATH, SUGGESTED_DIRECTORIES[directory]) for directory in directories
    )
    return suggestions
