"""
JSON snapshot store for active parties.

Every save rewrites the whole active set. The new document is written to a
temporary file in the target directory, fsynced, then swapped into place
with ``os.replace`` so a crash mid-write leaves the previous snapshot intact.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ..exceptions import ErrorContext, PersistenceError
from ..game.roster import Party
from ..schemas.party_snapshot import SnapshotFile, build_snapshot, record_to_party
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


class PartyStore:
    """Whole-snapshot persistence for the active-party set."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def save(self, parties: dict[str, Party]) -> None:
        """
        Persist the full active-party set atomically.

        Raises:
            PersistenceError: If the snapshot could not be written
        """
        payload = build_snapshot(parties).model_dump_json(indent=2)
        tmp_path: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_fd, tmp_path = tempfile.mkstemp(prefix="parties_", suffix=".json", dir=str(self._path.parent))
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self._path)
        except OSError as error:
            raise PersistenceError(
                f"Failed to save party data: {error}",
                context=ErrorContext(operation="save"),
                path=str(self._path),
            ) from error
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
        logger.debug("Saved parties to disk", count=len(parties), path=str(self._path))

    def load(self) -> dict[str, Party]:
        """
        Read the active-party set back from disk.

        A missing file is an empty store.

        Raises:
            PersistenceError: If the file is unreadable or does not match the schema
        """
        if not self._path.exists():
            logger.debug("No party data file found", path=str(self._path))
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
            snapshot = SnapshotFile.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as error:
            raise PersistenceError(
                f"Failed to load party data: {error}",
                context=ErrorContext(operation="load"),
                path=str(self._path),
            ) from error

        parties = {party_id: record_to_party(party_id, record) for party_id, record in snapshot.parties.items()}
        logger.info("Loaded parties from disk", count=len(parties), path=str(self._path))
        return parties
