from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from file_concatenator.config import (
    DEFAULT_SEPARATOR,
    EXPORT_EXTENSIONS,
    CollectionSettings,
    ExportFormat,
    HeaderFormat,
    SortKey,
    SortOrder,
)

ENV_FILE = find_dotenv(usecwd=True)
if ENV_FILE:
    load_dotenv(ENV_FILE)

COLLECTIONS_DIR_ENV = "FILE_CONCAT_COLLECTIONS_DIR"
DEFAULT_COLLECTIONS_DIR = Path(".file_concat") / "collections"


def default_collections_dir() -> Path:
    """Collections directory from ``FILE_CONCAT_COLLECTIONS_DIR``, else ``.file_concat/collections``."""
    value = os.environ.get(COLLECTIONS_DIR_ENV, "").strip()
    return Path(value) if value else DEFAULT_COLLECTIONS_DIR


class Settings(BaseModel):
    """Configuration settings for the ``concat`` command."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    repo: Path | None = Field(default=None, description="Directory to walk.")
    file: list[Path] = Field(default_factory=list, description="Explicit files to include.")
    output: Path | None = Field(default=None, description="Output file; stdout when unset.")
    format: ExportFormat | None = Field(
        default=None,
        description="Export envelope; inferred from the output suffix when unset.",
    )
    log_file: str = Field(default="", description="Log file path.")

    header_format: HeaderFormat = Field(default=HeaderFormat.COMMENT, description="Framing dialect.")
    custom_template: str | None = Field(default=None, description="Template for custom framing.")
    no_headers: bool = Field(default=False, description="Disable document and file framing.")
    separator: str = Field(default=DEFAULT_SEPARATOR, description="Text inserted between files.")
    sort_by: SortKey = Field(default=SortKey.NAME, description="Sort key.")
    sort_order: SortOrder = Field(default=SortOrder.ASC, description="Sort direction.")

    exclude_ext: list[str] = Field(default_factory=list, description="Exclude extension.")
    exclude_glob: list[str] = Field(default_factory=list, description="Exclude glob.")
    exclude_regex: list[str] = Field(default_factory=list, description="Exclude regex.")
    exclude_path: list[str] = Field(default_factory=list, description="Exclude path substring.")
    preset: list[str] = Field(default_factory=list, description="Pattern presets to apply.")
    rules_file: Path | None = Field(default=None, description="YAML rules file.")
    strict_rules: bool = Field(default=False, description="Reject invalid patterns.")

    no_metadata: bool = Field(default=False, description="Leave file listings out of envelopes.")
    stats: bool = Field(default=False, description="Print statistics to stderr.")

    collection: int | None = Field(default=None, description="Start from a saved collection.")
    save_collection: str = Field(default="", description="Save the session under this name.")
    collections_dir: Path = Field(
        default_factory=default_collections_dir,
        description="Directory holding saved collections.",
    )
    batch_size: int = Field(default=32, ge=1, description="Files read concurrently.")

    def export_format(self) -> ExportFormat:
        """Return the requested format, else the one matching the output suffix, else plain."""
        if self.format is not None:
            return self.format
        if self.output is not None:
            suffix = self.output.suffix.lower().lstrip(".")
            for fmt, extension in EXPORT_EXTENSIONS.items():
                if suffix == extension:
                    return fmt
        return ExportFormat.PLAIN

    def collection_settings(self) -> CollectionSettings:
        return CollectionSettings(
            include_headers=not self.no_headers,
            header_format=self.header_format,
            custom_header_template=self.custom_template,
            separator=self.separator,
            sort_by=self.sort_by,
            sort_order=self.sort_order,
        )
