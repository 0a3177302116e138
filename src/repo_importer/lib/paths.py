"""Run-scoped map from remote path to the id of the node created for it."""

from __future__ import annotations

import logging

__all__ = ["PathResolver"]

logger = logging.getLogger(__name__)


class PathResolver:
    """Write-once path → node id mapping for a single import run.

    ``register`` must be called as soon as a node's create call returns, and
    before anything that may depend on it (its children) is processed.
    """

    def __init__(self) -> None:
        self._ids: dict[str, str] = {}

    def register(self, path: str, node_id: str) -> None:
        """Record *node_id* for *path*; the first registration wins."""
        existing = self._ids.get(path)
        if existing is not None:
            logger.warning(
                "Path %r already registered as %s; ignoring duplicate node %s",
                path,
                existing,
                node_id,
            )
            return
        self._ids[path] = node_id

    def resolve(self, parent_path: str) -> str | None:
        """Return the node id for *parent_path*, or ``None`` for the root.

        An unknown non-empty path also yields ``None`` so the child attaches
        at the project root instead of failing the import.
        """
        if not parent_path:
            return None
        node_id = self._ids.get(parent_path)
        if node_id is None:
            logger.warning(
                "Parent %r was never materialized; attaching child at project root",
                parent_path,
            )
        return node_id

    def get(self, path: str) -> str | None:
        return self._ids.get(path)

    def __contains__(self, path: object) -> bool:
        return path in self._ids

    def __len__(self) -> int:
        return len(self._ids)
