"""Shared fakes for the import pipeline tests."""

from __future__ import annotations

import base64
import threading
import time
from dataclasses import dataclass, field
from typing import Any

import pytest

from repo_importer.lib.content import RemoteContent
from repo_importer.lib.errors import PersistenceError
from repo_importer.lib.github import RepoMetadata
from repo_importer.lib.hierarchy import TreeNode
from repo_importer.lib.status import ImportStatus
from repo_importer.lib.store import FileSystemNode, ProjectRecord


def b64(text: str, *, wrap: int = 0) -> str:
    """Encode *text* the way GitHub does, optionally wrapping lines."""
    encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
    if not wrap:
        return encoded
    return "\n".join(encoded[i : i + wrap] for i in range(0, len(encoded), wrap))


class FakeStore:
    """In-memory workspace store that records every call in order."""

    def __init__(self) -> None:
        self.projects: dict[str, ProjectRecord] = {}
        self.nodes: dict[str, FileSystemNode] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.status_history: list[ImportStatus] = []
        self.fail_on_file: str | None = None
        self._lock = threading.Lock()
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        with self._lock:
            self._counter += 1
            return f"{prefix}_{self._counter}"

    def create_project(self, name: str, owner_id: str) -> str:
        project_id = self._next_id("proj")
        self.projects[project_id] = ProjectRecord(
            project_id=project_id, name=name, owner_id=owner_id
        )
        self.calls.append(("create_project", name, owner_id))
        return project_id

    def set_import_status(self, project_id: str, status: ImportStatus) -> None:
        self.projects[project_id].import_status = ImportStatus(status)
        self.status_history.append(ImportStatus(status))
        self.calls.append(("set_import_status", project_id, ImportStatus(status)))

    def _check_parent(self, project_id: str, parent_id: str | None) -> None:
        if parent_id is None:
            return
        parent = self.nodes.get(parent_id)
        if parent is None or parent.project_id != project_id:
            raise PersistenceError(f"forward reference to {parent_id}")

    def create_folder_node(
        self, project_id: str, parent_id: str | None, name: str
    ) -> str:
        self._check_parent(project_id, parent_id)
        node_id = self._next_id("folder")
        self.nodes[node_id] = FileSystemNode(
            node_id=node_id,
            project_id=project_id,
            name=name,
            kind="folder",
            parent_id=parent_id,
        )
        self.calls.append(("create_folder_node", name, parent_id))
        return node_id

    def create_file_node(
        self, project_id: str, parent_id: str | None, name: str, content: str
    ) -> str:
        if self.fail_on_file == name:
            raise PersistenceError(f"cannot write {name}")
        self._check_parent(project_id, parent_id)
        node_id = self._next_id("file")
        self.nodes[node_id] = FileSystemNode(
            node_id=node_id,
            project_id=project_id,
            name=name,
            kind="file",
            parent_id=parent_id,
            content=content,
        )
        self.calls.append(("create_file_node", name, parent_id))
        return node_id

    def update_file_node_content(self, node_id: str, content: str) -> None:
        node = self.nodes.get(node_id)
        if node is None or node.is_folder:
            raise PersistenceError(f"no file node {node_id}")
        node.content = content
        self.calls.append(("update_file_node_content", node_id))

    def get_project(self, project_id: str) -> ProjectRecord | None:
        return self.projects.get(project_id)

    def list_nodes(self, project_id: str) -> list[FileSystemNode]:
        return [n for n in self.nodes.values() if n.project_id == project_id]

    # helpers ----------------------------------------------------------

    def find(self, name: str) -> FileSystemNode:
        matches = [n for n in self.nodes.values() if n.name == name]
        assert len(matches) == 1, f"expected one node named {name}, got {matches}"
        return matches[0]

    def children(self, parent_id: str | None) -> list[str]:
        return sorted(n.name for n in self.nodes.values() if n.parent_id == parent_id)


@dataclass
class FakeClient:
    """Remote repository double serving a fixed tree and contents."""

    tree: list[TreeNode] = field(default_factory=list)
    contents: dict[str, RemoteContent] = field(default_factory=dict)
    blobs: dict[str, RemoteContent] = field(default_factory=dict)
    errors: dict[str, Exception] = field(default_factory=dict)
    metadata_error: Exception | None = None
    tree_error: Exception | None = None
    delay: float = 0.0
    name: str = "hello-world"
    default_branch: str = "main"
    calls: list[tuple[Any, ...]] = field(default_factory=list)
    in_flight: int = 0
    max_in_flight: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def fetch_repository_metadata(self, full_name: str) -> RepoMetadata:
        self.calls.append(("metadata", full_name))
        if self.metadata_error is not None:
            raise self.metadata_error
        return RepoMetadata(
            name=self.name, full_name=full_name, default_branch=self.default_branch
        )

    def fetch_tree(self, full_name: str, branch: str) -> list[TreeNode]:
        self.calls.append(("tree", full_name, branch))
        if self.tree_error is not None:
            raise self.tree_error
        return list(self.tree)

    def _enter(self) -> None:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

    def _leave(self) -> None:
        with self._lock:
            self.in_flight -= 1

    def fetch_file_content_by_path(
        self, full_name: str, path: str, *, ref: str | None = None
    ) -> RemoteContent:
        self.calls.append(("by_path", path, ref))
        self._enter()
        try:
            if self.delay:
                time.sleep(self.delay)
            if path in self.errors:
                raise self.errors[path]
            return self.contents[path]
        finally:
            self._leave()

    def fetch_file_content(self, locator: str) -> RemoteContent:
        self.calls.append(("blob", locator))
        self._enter()
        try:
            if self.delay:
                time.sleep(self.delay)
            if locator in self.errors:
                raise self.errors[locator]
            return self.blobs[locator]
        finally:
            self._leave()


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()
