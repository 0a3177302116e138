"""Import status lifecycle persisted on the project record.

``unset → importing → completed | failed``. Both end states are terminal.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from repo_importer.lib.store import WorkspaceStore

__all__ = ["ImportStatus", "ImportStatusTracker"]

logger = logging.getLogger(__name__)


class ImportStatus(str, Enum):
    UNSET = "unset"
    IMPORTING = "importing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportStatus.COMPLETED, ImportStatus.FAILED)


_ALLOWED: dict[ImportStatus, frozenset[ImportStatus]] = {
    ImportStatus.UNSET: frozenset({ImportStatus.IMPORTING}),
    ImportStatus.IMPORTING: frozenset({ImportStatus.COMPLETED, ImportStatus.FAILED}),
    ImportStatus.COMPLETED: frozenset(),
    ImportStatus.FAILED: frozenset(),
}


class ImportStatusTracker:
    """Drive one project's status through the import lifecycle."""

    def __init__(
        self,
        store: WorkspaceStore,
        project_id: str,
        *,
        status: ImportStatus = ImportStatus.UNSET,
    ) -> None:
        self._store = store
        self.project_id = project_id
        self.status = status

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def _transition(self, target: ImportStatus) -> None:
        if target not in _ALLOWED[self.status]:
            msg = (
                f"Illegal import status transition for {self.project_id}: "
                f"{self.status.value} -> {target.value}"
            )
            raise ValueError(msg)
        self._store.set_import_status(self.project_id, target)
        logger.info(
            "Project %s import status %s -> %s",
            self.project_id,
            self.status.value,
            target.value,
        )
        self.status = target

    def begin(self) -> None:
        self._transition(ImportStatus.IMPORTING)

    def complete(self) -> None:
        self._transition(ImportStatus.COMPLETED)

    def fail(self) -> None:
        self._transition(ImportStatus.FAILED)
