from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class FileConcatenatorError(Exception):
    """Base exception for errors in the file_concatenator package."""

    message: str = "file_concatenator error"

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class InvalidPatternError(FileConcatenatorError):
    """Raised when a rule is created in strict mode with a pattern that fails validation."""

    pattern: str = ""
    kind: str = ""
    message: str = "Invalid exclusion pattern."


@dataclass(frozen=True)
class UnknownPresetError(FileConcatenatorError):
    """Raised when a preset id does not name any known preset."""

    preset_id: str = ""
    message: str = "Unknown pattern preset."


@dataclass(frozen=True)
class RulesFileError(FileConcatenatorError):
    """Raised when a rules file cannot be read or does not describe valid rules."""

    path: Path = Path()
    message: str = "Invalid rules file."


@dataclass(frozen=True)
class CollectionNotFoundError(FileConcatenatorError):
    """Raised when a collection id is not present in the store."""

    collection_id: int = 0
    message: str = "Collection not found."


@dataclass(frozen=True)
class CollectionStoreError(FileConcatenatorError):
    """Raised when a stored collection document cannot be read back."""

    path: Path = Path()
    message: str = "Unreadable collection document."
