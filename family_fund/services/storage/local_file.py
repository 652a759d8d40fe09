"""
Local Snapshot Store

The whole fund state is written as ONE JSON document, replacing the previous
file atomically (write a temp file next to it, then rename over it). A crash
mid-write leaves the previous snapshot intact, so an account balance and the
ledger/history row that explains it are always persisted together.

The document may also carry an "unsynced" flag: the remote store is behind
this snapshot and must be overwritten from it on the next successful connect.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError

from family_fund.models.fund import FundState
from family_fund.services.storage.interface import StorageError


UNSYNCED_KEY = "unsynced"


class LocalStateStore:
    """Reads and writes the fund snapshot file."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> Optional[FundState]:
        """
        Load the snapshot.

        Returns:
            The stored state, or None if there is no snapshot yet

        Raises:
            StorageError: If the file exists but can't be read or parsed
        """
        if not self._path.exists():
            return None
        try:
            return FundState.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, PydanticValidationError) as e:
            raise StorageError(f"Failed to load fund snapshot from {self._path}: {e}")

    def has_unsynced_changes(self) -> bool:
        """True if the last save was flagged as not yet mirrored remotely."""
        if not self._path.exists():
            return False
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read fund snapshot {self._path}: {e}")
        return isinstance(document, dict) and document.get(UNSYNCED_KEY) is True

    def save(self, state: FundState, unsynced: bool = False) -> None:
        """Atomically replace the snapshot with the given state."""
        document = state.to_document()
        if unsynced:
            document[UNSYNCED_KEY] = True
        payload = json.dumps(document, indent=2, ensure_ascii=False)
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                dir=directory,
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StorageError(f"Failed to save fund snapshot to {self._path}: {e}")

    def clear(self) -> None:
        """Remove the snapshot file if present."""
        try:
            self._path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove fund snapshot {self._path}: {e}")
