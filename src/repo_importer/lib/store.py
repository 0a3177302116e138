"""Workspace store: project records and the folder/file nodes under them.

The importer only needs the single-record operations on ``WorkspaceStore``.
``RedisWorkspaceStore`` persists each record as a JSON document in Redis.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import redis

from repo_importer.lib.errors import PersistenceError
from repo_importer.lib.status import ImportStatus

__all__ = [
    "FileSystemNode",
    "ProjectRecord",
    "RedisWorkspaceStore",
    "WorkspaceStore",
    "generate_node_id",
    "generate_project_id",
]

logger = logging.getLogger(__name__)

_KEY_PREFIX = "repo_importer:"
_PROJECT_PREFIX = f"{_KEY_PREFIX}project:"
_NODE_PREFIX = f"{_KEY_PREFIX}node:"


def _now() -> str:
    return datetime.now(UTC).isoformat()


def generate_project_id() -> str:
    return f"proj_{uuid.uuid4().hex[:12]}"


def generate_node_id() -> str:
    return f"node_{uuid.uuid4().hex[:12]}"


@dataclass
class ProjectRecord:
    """The part of a workspace project the importer owns."""

    project_id: str
    name: str
    owner_id: str
    import_status: ImportStatus = ImportStatus.UNSET
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.updated_at:
            self.updated_at = _now()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "project_id": self.project_id,
            "name": self.name,
            "owner_id": self.owner_id,
            "import_status": self.import_status.value,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectRecord:
        """Create from dictionary."""
        return cls(
            project_id=data["project_id"],
            name=data["name"],
            owner_id=data["owner_id"],
            import_status=ImportStatus(data.get("import_status") or "unset"),
            updated_at=data.get("updated_at", ""),
        )


@dataclass
class FileSystemNode:
    """A folder or file in a project's hierarchy.

    ``parent_id`` of ``None`` means the node sits at the project root.
    Folders always have ``content`` of ``None``.
    """

    node_id: str
    project_id: str
    name: str
    kind: str
    parent_id: str | None = None
    content: str | None = None

    @property
    def is_folder(self) -> bool:
        return self.kind == "folder"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "node_id": self.node_id,
            "project_id": self.project_id,
            "name": self.name,
            "kind": self.kind,
            "parent_id": self.parent_id,
            "content": self.content,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileSystemNode:
        """Create from dictionary."""
        return cls(
            node_id=data["node_id"],
            project_id=data["project_id"],
            name=data["name"],
            kind=data["kind"],
            parent_id=data.get("parent_id"),
            content=data.get("content"),
        )


class WorkspaceStore(Protocol):
    """Single-record operations the import pipeline depends on."""

    def create_project(self, name: str, owner_id: str) -> str: ...

    def set_import_status(self, project_id: str, status: ImportStatus) -> None: ...

    def create_folder_node(
        self, project_id: str, parent_id: str | None, name: str
    ) -> str: ...

    def create_file_node(
        self, project_id: str, parent_id: str | None, name: str, content: str
    ) -> str: ...

    def update_file_node_content(self, node_id: str, content: str) -> None: ...

    def get_project(self, project_id: str) -> ProjectRecord | None: ...

    def list_nodes(self, project_id: str) -> list[FileSystemNode]: ...


class RedisWorkspaceStore:
    """Workspace store backed by Redis JSON documents."""

    def __init__(self, client: Any) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> RedisWorkspaceStore:
        return cls(redis.Redis.from_url(url))

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    @staticmethod
    def _project_key(project_id: str) -> str:
        return f"{_PROJECT_PREFIX}{project_id}"

    @staticmethod
    def _project_nodes_key(project_id: str) -> str:
        return f"{_PROJECT_PREFIX}{project_id}:nodes"

    @staticmethod
    def _node_key(node_id: str) -> str:
        return f"{_NODE_PREFIX}{node_id}"

    # ------------------------------------------------------------------
    # Low-level access
    # ------------------------------------------------------------------

    def _get_json(self, key: str) -> dict[str, Any] | None:
        try:
            data = self._redis.get(key)
        except redis.RedisError as exc:
            raise PersistenceError(f"failed to read {key}: {exc}") from exc
        if data is None:
            return None
        return json.loads(data)

    def _load_project(self, project_id: str) -> ProjectRecord:
        data = self._get_json(self._project_key(project_id))
        if data is None:
            raise PersistenceError(f"project {project_id} does not exist")
        return ProjectRecord.from_dict(data)

    def _load_node(self, node_id: str) -> FileSystemNode:
        data = self._get_json(self._node_key(node_id))
        if data is None:
            raise PersistenceError(f"node {node_id} does not exist")
        return FileSystemNode.from_dict(data)

    def _save_project(self, project: ProjectRecord) -> None:
        try:
            self._redis.set(
                self._project_key(project.project_id),
                json.dumps(project.to_dict()),
            )
        except redis.RedisError as exc:
            msg = f"failed to save project {project.project_id}: {exc}"
            raise PersistenceError(msg) from exc

    def _save_node(self, node: FileSystemNode, *, index: bool) -> None:
        try:
            pipe = self._redis.pipeline()
            pipe.set(self._node_key(node.node_id), json.dumps(node.to_dict()))
            if index:
                pipe.sadd(self._project_nodes_key(node.project_id), node.node_id)
            pipe.execute()
        except redis.RedisError as exc:
            raise PersistenceError(f"failed to save node {node.node_id}: {exc}") from exc

    def _check_parent(self, project_id: str, parent_id: str | None) -> None:
        if parent_id is None:
            return
        parent = self._load_node(parent_id)
        if parent.project_id != project_id:
            msg = (
                f"parent {parent_id} belongs to project {parent.project_id}, "
                f"not {project_id}"
            )
            raise PersistenceError(msg)
        if not parent.is_folder:
            raise PersistenceError(f"parent {parent_id} is not a folder")

    def _create_node(
        self,
        project_id: str,
        parent_id: str | None,
        name: str,
        *,
        kind: str,
        content: str | None,
    ) -> str:
        self._load_project(project_id)
        self._check_parent(project_id, parent_id)
        node = FileSystemNode(
            node_id=generate_node_id(),
            project_id=project_id,
            name=name,
            kind=kind,
            parent_id=parent_id,
            content=content,
        )
        self._save_node(node, index=True)
        return node.node_id

    # ------------------------------------------------------------------
    # WorkspaceStore
    # ------------------------------------------------------------------

    def create_project(self, name: str, owner_id: str) -> str:
        project = ProjectRecord(
            project_id=generate_project_id(),
            name=name,
            owner_id=owner_id,
        )
        self._save_project(project)
        logger.info("Created project %s (%s) for %s", project.project_id, name, owner_id)
        return project.project_id

    def set_import_status(self, project_id: str, status: ImportStatus) -> None:
        project = self._load_project(project_id)
        project.import_status = ImportStatus(status)
        project.updated_at = _now()
        self._save_project(project)

    def create_folder_node(
        self, project_id: str, parent_id: str | None, name: str
    ) -> str:
        return self._create_node(
            project_id, parent_id, name, kind="folder", content=None
        )

    def create_file_node(
        self, project_id: str, parent_id: str | None, name: str, content: str
    ) -> str:
        return self._create_node(
            project_id, parent_id, name, kind="file", content=content
        )

    def update_file_node_content(self, node_id: str, content: str) -> None:
        node = self._load_node(node_id)
        if node.is_folder:
            raise PersistenceError(f"node {node_id} is a folder and has no content")
        node.content = content
        self._save_node(node, index=False)

    def get_project(self, project_id: str) -> ProjectRecord | None:
        data = self._get_json(self._project_key(project_id))
        if data is None:
            return None
        return ProjectRecord.from_dict(data)

    def list_nodes(self, project_id: str) -> list[FileSystemNode]:
        try:
            members = self._redis.smembers(self._project_nodes_key(project_id))
        except redis.RedisError as exc:
            msg = f"failed to list nodes of {project_id}: {exc}"
            raise PersistenceError(msg) from exc
        nodes = []
        for member in members:
            node_id = member.decode() if isinstance(member, bytes) else member
            data = self._get_json(self._node_key(node_id))
            if data is not None:
                nodes.append(FileSystemNode.from_dict(data))
        return sorted(nodes, key=lambda n: (n.parent_id or "", n.name, n.node_id))
