from __future__ import annotations

import re
from functools import lru_cache
from typing import TYPE_CHECKING, assert_never

from file_concatenator.config import ExclusionRule, RuleKind
from file_concatenator.logging import logger

if TYPE_CHECKING:
    from re import Pattern

# Regex metacharacters escaped when translating a glob; `*` and `?` are translated instead.
_GLOB_SPECIALS = re.compile(r"[.+^${}()|\[\]\\]")


def glob_to_regex(pattern: str) -> Pattern[str]:
    """Convert a glob pattern to an anchored, case-insensitive regular expression.

    ``*`` matches any run of characters (slashes included) and ``?`` exactly one
    character. Every other regex metacharacter is escaped.

    Args:
        pattern (str): the glob pattern, e.g. ``*.test.js`` or ``node_modules/*``

    Raises:
        re.error: if the translated expression does not compile

    Returns:
        Pattern[str]: the compiled expression, anchored at both ends
    """
    escaped = _GLOB_SPECIALS.sub(lambda m: "\\" + m.group(0), pattern)
    translated = escaped.replace("*", ".*").replace("?", ".")
    return re.compile(f"^{translated}$", re.IGNORECASE)


def normalize_extension(pattern: str) -> str:
    lowered = pattern.lower()
    return lowered if lowered.startswith(".") else f".{lowered}"


def compile_rule_pattern(rule: ExclusionRule) -> Pattern[str] | None:
    """Compile the expression behind a glob or regex rule.

    A pattern that does not compile yields None, and callers treat it as a rule that
    matches nothing. One malformed rule never aborts a filtering pass.

    Args:
        rule (ExclusionRule): a glob or regex rule

    Returns:
        Pattern[str] | None: the compiled expression, or None for non-compiling patterns
            and for dialects that are not expression based
    """
    if rule.kind is RuleKind.GLOB:
        return _compile_expression(RuleKind.GLOB, rule.pattern.lower())
    if rule.kind is RuleKind.REGEX:
        return _compile_expression(RuleKind.REGEX, rule.pattern)
    return None


@lru_cache(maxsize=1024)
def _compile_expression(kind: RuleKind, pattern: str) -> Pattern[str] | None:
    try:
        if kind is RuleKind.GLOB:
            return glob_to_regex(pattern)
        return re.compile(pattern, re.IGNORECASE)
    except (re.error, RecursionError, OverflowError) as e:
        logger.debug("Pattern does not compile", kind=str(kind), pattern=pattern, error=str(e))
        return None


def matches(path: str, rule: ExclusionRule) -> bool:
    """Return whether ``rule`` matches ``path``.

    Matching is case-insensitive in every dialect and disabled rules never match.

    - extension: suffix test, a missing leading dot is added to the pattern;
    - glob: anchored match of the translated glob against the lower-cased path;
    - regex: search of the raw pattern in the original-case path;
    - path: substring test.

    Args:
        path (str): the slash-separated relative path of the file
        rule (ExclusionRule): the rule to evaluate

    Returns:
        bool: True if the rule matches the path, False otherwise
    """
    if not rule.enabled:
        return False

    normalized_path = path.lower()
    kind = rule.kind
    if kind is RuleKind.EXTENSION:
        return normalized_path.endswith(normalize_extension(rule.pattern))
    if kind is RuleKind.GLOB:
        compiled = compile_rule_pattern(rule)
        return compiled is not None and compiled.search(normalized_path) is not None
    if kind is RuleKind.REGEX:
        compiled = compile_rule_pattern(rule)
        return compiled is not None and compiled.search(path) is not None
    if kind is RuleKind.PATH:
        return rule.pattern.lower() in normalized_path
    assert_never(kind)
