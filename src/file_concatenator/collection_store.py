from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError

from file_concatenator.config import Collection, CollectionSettings, utc_now
from file_concatenator.exceptions import CollectionNotFoundError, CollectionStoreError
from file_concatenator.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from file_concatenator.config import ExclusionRule, ProcessedFile


class CollectionSummary(BaseModel):
    total_collections: int = 0
    total_files: int = 0
    total_size: int = 0
    average_files_per_collection: int = 0


class CollectionStore:
    """Saves collections as one JSON document per collection in a directory.

    Documents are named ``<id>.json``; ids are positive integers handed out in
    increasing order. The next id is kept in a ``_next_id`` file so an id is never
    reused, even after the newest collection is deleted.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, collection_id: int) -> Path:
        return self.directory / f"{collection_id}.json"

    def _ids(self) -> list[int]:
        if not self.directory.is_dir():
            return []
        return sorted(int(p.stem) for p in self.directory.glob("*.json") if p.stem.isdigit())

    def _counter_path(self) -> Path:
        return self.directory / "_next_id"

    def _next_id(self) -> int:
        ids = self._ids()
        candidate = (ids[-1] + 1) if ids else 1
        try:
            stored = int(self._counter_path().read_text(encoding="utf-8").strip())
        except FileNotFoundError:
            return candidate
        except (OSError, ValueError) as e:
            logger.warning("Ignoring id counter %s: %s", self._counter_path(), e)
            return candidate
        return max(stored, candidate)

    def _write_counter(self, next_id: int) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self._counter_path()
        tmp = target.with_suffix(".tmp")
        tmp.write_text(f"{next_id}\n", encoding="utf-8")
        tmp.replace(target)

    def _write(self, collection: Collection) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self._path(collection.id or 0)
        tmp = target.with_suffix(".json.tmp")
        tmp.write_text(collection.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(target)

    def save(
        self,
        name: str,
        files: Sequence[ProcessedFile],
        rules: Sequence[ExclusionRule],
        settings: CollectionSettings | None = None,
    ) -> int:
        """Store a new collection and return its id."""
        collection_id = self._next_id()
        now = utc_now()
        collection = Collection(
            id=collection_id,
            name=name,
            files=list(files),
            rules=list(rules),
            settings=settings or CollectionSettings(),
            created_at=now,
            updated_at=now,
        )
        self._write(collection)
        self._write_counter(collection_id + 1)
        logger.info("Saved collection %s (%s) with %d files", collection.id, name, len(files))
        return collection.id or 0

    def update(
        self,
        collection_id: int,
        name: str,
        files: Sequence[ProcessedFile],
        rules: Sequence[ExclusionRule],
        settings: CollectionSettings,
    ) -> None:
        """Replace the contents of an existing collection, keeping its creation time.

        Raises:
            CollectionNotFoundError: if no collection has this id
        """
        current = self.load(collection_id)
        updated = current.model_copy(
            update={
                "name": name,
                "files": list(files),
                "rules": list(rules),
                "settings": settings,
                "updated_at": utc_now(),
            },
        )
        self._write(updated)

    def load(self, collection_id: int) -> Collection:
        """Read a collection back.

        Args:
            collection_id (int): the id returned by ``save``

        Raises:
            CollectionNotFoundError: if no collection has this id
            CollectionStoreError: if the stored document is not a valid collection

        Returns:
            Collection: the stored collection
        """
        path = self._path(collection_id)
        if not path.is_file():
            raise CollectionNotFoundError(
                collection_id=collection_id,
                message=f"Collection {collection_id} not found in {self.directory}",
            )
        try:
            return Collection.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise CollectionStoreError(path=path, message=f"Cannot read collection {path}: {e}") from e

    def list_collections(self) -> list[Collection]:
        """Return every readable collection, most recently updated first.

        Unreadable documents are logged and left out.
        """
        out: list[Collection] = []
        for collection_id in self._ids():
            try:
                out.append(self.load(collection_id))
            except CollectionStoreError as e:
                logger.warning("Ignoring collection %s: %s", collection_id, e)
        return sorted(out, key=lambda c: c.updated_at, reverse=True)

    def delete(self, collection_id: int) -> None:
        """Remove a collection.

        Raises:
            CollectionNotFoundError: if no collection has this id
        """
        path = self._path(collection_id)
        if not path.is_file():
            raise CollectionNotFoundError(
                collection_id=collection_id,
                message=f"Collection {collection_id} not found in {self.directory}",
            )
        path.unlink()

    def search(self, query: str) -> list[Collection]:
        needle = query.lower()
        return [c for c in self.list_collections() if needle in c.name.lower()]

    def summary(self) -> CollectionSummary:
        collections = self.list_collections()
        if not collections:
            return CollectionSummary()
        total_files = sum(len(c.files) for c in collections)
        count = len(collections)
        return CollectionSummary(
            total_collections=count,
            total_files=total_files,
            total_size=sum(f.size for c in collections for f in c.files),
            average_files_per_collection=(2 * total_files + count) // (2 * count),
        )
