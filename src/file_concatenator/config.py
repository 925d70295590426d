from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum, auto

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FileKind(StrEnum):
    """Outcome of text/binary classification for a candidate file."""

    TEXT = auto()
    BINARY = auto()


class RuleKind(StrEnum):
    """Dialect of an exclusion rule pattern.

    The set is closed: a rule built with any other tag fails model validation.
    """

    EXTENSION = auto()
    GLOB = auto()
    REGEX = auto()
    PATH = auto()


class HeaderFormat(StrEnum):
    """Framing dialect used around each file during concatenation."""

    NONE = auto()
    COMMENT = auto()
    MARKDOWN = auto()
    CUSTOM = auto()


class ExportFormat(StrEnum):
    """Outer envelope wrapped around the concatenated body for export."""

    PLAIN = auto()
    MARKDOWN = auto()
    JSON = auto()
    XML = auto()
    HTML = auto()


class SortKey(StrEnum):
    NAME = auto()
    PATH = auto()
    SIZE = auto()
    MODIFIED = auto()


class SortOrder(StrEnum):
    ASC = auto()
    DESC = auto()


TEXT_EXTENSIONS: frozenset[str] = frozenset(
    {
        "asm",
        "bash",
        "bat",
        "c",
        "cmd",
        "conf",
        "config",
        "cpp",
        "cs",
        "css",
        "csv",
        "dockerignore",
        "env",
        "gitignore",
        "go",
        "gradle",
        "graphql",
        "groovy",
        "h",
        "hpp",
        "html",
        "ini",
        "java",
        "js",
        "json",
        "jsx",
        "kt",
        "lua",
        "md",
        "mdx",
        "php",
        "pl",
        "plist",
        "properties",
        "ps1",
        "py",
        "r",
        "rb",
        "rs",
        "s",
        "sass",
        "scss",
        "sh",
        "sql",
        "svelte",
        "swift",
        "tf",
        "toml",
        "ts",
        "tsv",
        "tsx",
        "txt",
        "vue",
        "xml",
        "yaml",
        "yml",
    },
)

TEXT_MEDIA_TYPES: frozenset[str] = frozenset(
    {
        "application/json",
        "application/xml",
        "application/javascript",
    },
)

SAMPLE_BYTES = 1024

# Directory names that are never descended into by the directory walk.
DEFAULT_PRUNED_DIRS: frozenset[str] = frozenset({".git", ".hg", ".svn"})

DEFAULT_SEPARATOR = "\n\n"

EXPORT_EXTENSIONS: dict[ExportFormat, str] = {
    ExportFormat.PLAIN: "txt",
    ExportFormat.MARKDOWN: "md",
    ExportFormat.JSON: "json",
    ExportFormat.XML: "xml",
    ExportFormat.HTML: "html",
}


def new_id(prefix: str = "") -> str:
    """Return an opaque unique token, optionally prefixed (e.g. ``rule-``)."""
    token = uuid.uuid4().hex
    return f"{prefix}{token}" if prefix else token


def utc_now() -> datetime:
    return datetime.now(UTC)


class ProcessedFile(BaseModel):
    """A text file accepted into the working set.

    Attributes:
        id: Opaque token, unique within a working set.
        name: Base filename.
        path: Slash-separated relative path; the value every exclusion rule sees.
        content: Full decoded text.
        size: Byte length (on-disk size, or UTF-8 length of ``content``).
        media_type: Free-form type hint (MIME type or extension), may be empty.
        last_modified: Timezone-aware modification timestamp.
        is_text: Always True; binary files never become a ProcessedFile.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id, description="Unique token")
    name: str = Field(..., description="Base filename")
    path: str = Field(..., min_length=1, description="Slash-separated relative path")
    content: str = Field(default="", description="Decoded text content")
    size: int = Field(..., ge=0, description="Size in bytes")
    media_type: str = Field(default="", description="Declared media type")
    last_modified: datetime = Field(default_factory=utc_now, description="Modification time")
    is_text: bool = Field(default=True, description="Text files only")

    @field_validator("path")
    @classmethod
    def _posix_path(cls, value: str) -> str:
        return value.replace("\\", "/")

    @field_validator("last_modified")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @classmethod
    def from_text(
        cls,
        path: str,
        content: str,
        *,
        media_type: str = "",
        last_modified: datetime | None = None,
    ) -> ProcessedFile:
        """Build a file from in-memory text, deriving name and UTF-8 size."""
        norm = path.replace("\\", "/")
        return cls(
            name=norm.rsplit("/", 1)[-1],
            path=norm,
            content=content,
            size=len(content.encode("utf-8")),
            media_type=media_type,
            last_modified=last_modified or utc_now(),
        )


class ExclusionRule(BaseModel):
    """One user-authored filter. List position decides which rule is reported."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("rule-"), description="Unique token")
    kind: RuleKind = Field(default=RuleKind.PATH, description="Pattern dialect")
    pattern: str = Field(..., description="Raw, dialect-specific pattern")
    enabled: bool = Field(default=True, description="Disabled rules never match")
    description: str | None = Field(default=None, description="Human description")


class ConcatenationOptions(BaseModel):
    """Controls a single concatenation run."""

    model_config = ConfigDict(frozen=True)

    include_headers: bool = Field(default=True, description="Emit document and file framing")
    header_format: HeaderFormat = Field(default=HeaderFormat.COMMENT, description="Framing dialect")
    custom_header_template: str | None = Field(
        default=None,
        description="Template with {path}, {name}, {size}, {modified}; used by custom framing",
    )
    separator: str = Field(default=DEFAULT_SEPARATOR, description="Inserted between file blocks")


class CollectionSettings(BaseModel):
    """Concatenation settings persisted with a collection, plus ordering."""

    include_headers: bool = True
    header_format: HeaderFormat = HeaderFormat.COMMENT
    custom_header_template: str | None = None
    separator: str = DEFAULT_SEPARATOR
    sort_by: SortKey = SortKey.NAME
    sort_order: SortOrder = SortOrder.ASC

    def to_options(self) -> ConcatenationOptions:
        return ConcatenationOptions(
            include_headers=self.include_headers,
            header_format=self.header_format,
            custom_header_template=self.custom_header_template,
            separator=self.separator,
        )


class Collection(BaseModel):
    """A named, timestamped bundle of files, rules and settings."""

    id: int | None = Field(default=None, description="Assigned by the store")
    name: str = Field(..., description="Collection name")
    files: list[ProcessedFile] = Field(default_factory=list)
    rules: list[ExclusionRule] = Field(default_factory=list)
    settings: CollectionSettings = Field(default_factory=CollectionSettings)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ExclusionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    excluded: bool = False
    matched_rule: ExclusionRule | None = None


class PatternValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    error: str | None = None


class PresetRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: RuleKind
    pattern: str
    description: str


class PatternPreset(BaseModel):
    """A named bundle of rules users apply in one go."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    rules: tuple[PresetRule, ...]


def _preset(id_: str, name: str, description: str, *rules: tuple[RuleKind, str, str]) -> PatternPreset:
    return PatternPreset(
        id=id_,
        name=name,
        description=description,
        rules=tuple(PresetRule(kind=k, pattern=p, description=d) for k, p, d in rules),
    )


PATTERN_PRESETS: dict[str, PatternPreset] = {
    preset.id: preset
    for preset in (
        _preset(
            "web-development",
            "Web Development",
            "Common files to exclude in web projects",
            (RuleKind.PATH, "node_modules", "Node.js dependencies"),
            (RuleKind.PATH, "dist", "Build output"),
            (RuleKind.PATH, "build", "Build directory"),
            (RuleKind.EXTENSION, "map", "Source maps"),
            (RuleKind.GLOB, "*.min.*", "Minified files"),
        ),
        _preset(
            "testing",
            "Test Files",
            "Exclude test and spec files",
            (RuleKind.GLOB, "*.test.*", "Test files"),
            (RuleKind.GLOB, "*.spec.*", "Spec files"),
            (RuleKind.PATH, "__tests__", "Test directories"),
            (RuleKind.PATH, "coverage", "Coverage reports"),
        ),
        _preset(
            "version-control",
            "Version Control",
            "Git and other VCS files",
            (RuleKind.PATH, ".git", "Git repository"),
            (RuleKind.EXTENSION, "gitignore", "Git ignore files"),
            (RuleKind.PATH, ".svn", "SVN files"),
            (RuleKind.PATH, ".hg", "Mercurial files"),
        ),
        _preset(
            "logs-temp",
            "Logs & Temporary",
            "Log files and temporary data",
            (RuleKind.EXTENSION, "log", "Log files"),
            (RuleKind.EXTENSION, "tmp", "Temporary files"),
            (RuleKind.EXTENSION, "temp", "Temp files"),
            (RuleKind.GLOB, "*.cache", "Cache files"),
        ),
        _preset(
            "config-env",
            "Config & Environment",
            "Configuration and environment files",
            (RuleKind.EXTENSION, "env", "Environment files"),
            (RuleKind.GLOB, ".env.*", "Environment variants"),
            (RuleKind.EXTENSION, "config", "Config files"),
            (RuleKind.EXTENSION, "ini", "INI files"),
        ),
        _preset(
            "documentation",
            "Documentation",
            "Documentation and readme files",
            (RuleKind.EXTENSION, "md", "Markdown files"),
            (RuleKind.EXTENSION, "txt", "Text files"),
            (RuleKind.GLOB, "README*", "README files"),
            (RuleKind.GLOB, "CHANGELOG*", "Changelog files"),
        ),
    )
}

# Directory names that trigger a path rule suggestion when seen as a path segment.
SUGGESTED_DIRECTORIES: dict[str, str] = {
    "node_modules": "Node.js dependencies",
    "dist": "Distribution files",
    "build": "Build output",
    "__tests__": "Test directories",
    ".git": "Git repository",
    "coverage": "Coverage reports",
}
