from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from file_concatenator import concatenation, exclusion, output_construction
from file_concatenator.config import (
    Collection,
    CollectionSettings,
    ExclusionResult,
    ExclusionRule,
    ExportFormat,
    ProcessedFile,
)
from file_concatenator.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable


class Session(BaseModel):
    """The working set a user is assembling: files, exclusion rules and settings.

    The session is owned by its caller and passed explicitly; core functions only see
    what a session hands them. Files and rules are never edited in place, every
    change reassigns the list.
    """

    files: list[ProcessedFile] = Field(default_factory=list, description="Working set, in arrival order")
    rules: list[ExclusionRule] = Field(default_factory=list, description="Rules, in evaluation order")
    settings: CollectionSettings = Field(default_factory=CollectionSettings)

    def add_files(self, files: Iterable[ProcessedFile]) -> int:
        """Append files to the working set, skipping ids already present.

        Args:
            files (Iterable[ProcessedFile]): the files to add

        Returns:
            int: how many files were added
        """
        seen = {f.id for f in self.files}
        added: list[ProcessedFile] = []
        for f in files:
            if f.id in seen:
                logger.warning("Skipping %s: duplicate file id %s", f.path, f.id)
                continue
            seen.add(f.id)
            added.append(f)
        self.files = [*self.files, *added]
        return len(added)

    def set_files(self, files: Iterable[ProcessedFile]) -> None:
        self.files = []
        self.add_files(files)

    def remove_file(self, file_id: str) -> bool:
        kept = [f for f in self.files if f.id != file_id]
        removed = len(kept) != len(self.files)
        self.files = kept
        return removed

    def clear_files(self) -> None:
        self.files = []

    def add_rule(self, rule: ExclusionRule) -> None:
        self.rules = [*self.rules, rule]

    def add_rules(self, rules: Iterable[ExclusionRule]) -> None:
        self.rules = [*self.rules, *rules]

    def remove_rule(self, rule_id: str) -> bool:
        kept = [r for r in self.rules if r.id != rule_id]
        removed = len(kept) != len(self.rules)
        self.rules = kept
        return removed

    def toggle_rule(self, rule_id: str) -> ExclusionRule | None:
        """Flip the ``enabled`` flag of a rule.

        Returns:
            ExclusionRule | None: the updated rule, or None when no rule has this id
        """
        toggled: ExclusionRule | None = None
        rules: list[ExclusionRule] = []
        for r in self.rules:
            if r.id == rule_id:
                toggled = exclusion.toggle_rule(r)
                rules.append(toggled)
            else:
                rules.append(r)
        self.rules = rules
        return toggled

    def apply_preset(self, preset_id: str) -> list[ExclusionRule]:
        """Append the rules of a named preset.

        Raises:
            UnknownPresetError: if no preset has this id
        """
        rules = exclusion.apply_preset(preset_id)
        self.add_rules(rules)
        return rules

    def included_files(self) -> list[ProcessedFile]:
        """Files that survive the rules, ordered by the session settings."""
        included, _excluded = exclusion.filter_files(self.files, self.rules)
        return concatenation.sort_files(included, self.settings.sort_by, self.settings.sort_order)

    def excluded_files(self) -> list[tuple[ProcessedFile, ExclusionResult]]:
        _included, excluded = exclusion.filter_files(self.files, self.rules)
        return excluded

    def render(self, *, generated_at: datetime | None = None) -> str:
        return concatenation.concatenate(
            self.included_files(),
            self.settings.to_options(),
            generated_at=generated_at,
        )

    def stats(self) -> output_construction.ConcatenationStats:
        return output_construction.stats(self.included_files())

    def export(
        self,
        fmt: ExportFormat,
        *,
        include_files: bool = True,
        generated_at: datetime | None = None,
    ) -> str:
        """Render the included files and wrap them in an export envelope.

        Plain exports use the session framing as is. Markdown exports use markdown
        framing and the structured formats comment framing; the other session
        settings (separator, headers on/off) still apply.

        Args:
            fmt (ExportFormat): the envelope to produce
            include_files (bool, optional): list the files in structured envelopes.
                Defaults to True.
            generated_at (datetime | None, optional): timestamp for headers. Defaults to now.

        Returns:
            str: the export document
        """
        fmt = ExportFormat(fmt)
        files = self.included_files()
        metadata = output_construction.build_export_metadata(
            files,
            self.rules,
            include_files=include_files,
            generated_at=generated_at,
        )
        options = self.settings.to_options()
        if fmt is not ExportFormat.PLAIN:
            options = options.model_copy(
                update={"header_format": output_construction.header_format_for_export(fmt)},
            )
        body = concatenation.concatenate(files, options, generated_at=metadata.generated_at)
        return output_construction.render_export(fmt, body, metadata)

    def to_collection(self, name: str) -> Collection:
        return Collection(
            name=name,
            files=list(self.files),
            rules=list(self.rules),
            settings=self.settings.model_copy(),
        )

    @classmethod
    def from_collection(cls, collection: Collection) -> Session:
        session = cls(rules=list(collection.rules), settings=collection.settings.model_copy())
        session.add_files(collection.files)
        return session
