"""Repository import pipeline.

``RepoImporter.import_repository`` runs one import end to end:

1. fetch repository metadata (no project exists yet, errors simply propagate)
2. create the project record and mark it ``importing``
3. fetch the recursive tree and build a depth-ordered plan
4. create folders one at a time, shallowest first, registering each path
5. create files in fixed-size batches, fetching small files' content inline
6. mark the project ``completed``; any exception in 3-6 marks it ``failed``

Files that were not populated inline come back in ``ImportResult.deferred`` and
can be completed later with ``RepoImporter.fetch_file_contents``.

All blocking calls (GitHub, the store) run in worker threads through
``asyncio.to_thread``; a batch runs concurrently and batches run one after
another, so at most ``batch_size`` requests are in flight.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from repo_importer.lib.config import DEFAULT_BATCH_SIZE, Config
from repo_importer.lib.content import (
    INLINE_FETCH_LIMIT,
    RemoteContent,
    decode_content,
    should_fetch_inline,
)
from repo_importer.lib.errors import CredentialInvalidError
from repo_importer.lib.hierarchy import TreeNode, build_hierarchy
from repo_importer.lib.paths import PathResolver
from repo_importer.lib.status import ImportStatusTracker
from repo_importer.lib.store import WorkspaceStore

__all__ = [
    "FetchSummary",
    "ImportResult",
    "PendingContent",
    "RemoteRepositoryClient",
    "RepoImporter",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[str, str], None]


class RemoteRepositoryClient(Protocol):
    """The subset of ``GitHubClient`` the pipeline calls."""

    def fetch_repository_metadata(self, full_name: str) -> Any: ...

    def fetch_tree(self, full_name: str, branch: str) -> list[TreeNode]: ...

    def fetch_file_content(self, locator: str) -> RemoteContent: ...

    def fetch_file_content_by_path(
        self, full_name: str, path: str, *, ref: str | None = None
    ) -> RemoteContent: ...


@dataclass(frozen=True)
class PendingContent:
    """A file node whose content still has to be fetched."""

    node_id: str
    locator: str

    def to_dict(self) -> dict[str, str]:
        return {"node_id": self.node_id, "locator": self.locator}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingContent:
        return cls(node_id=str(data["node_id"]), locator=str(data["locator"]))


@dataclass
class ImportResult:
    """Outcome of a completed import run."""

    project_id: str
    repo: str
    branch: str
    folder_count: int = 0
    file_count: int = 0
    inline_count: int = 0
    deferred: list[PendingContent] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "repo": self.repo,
            "branch": self.branch,
            "folder_count": self.folder_count,
            "file_count": self.file_count,
            "inline_count": self.inline_count,
            "deferred": [item.to_dict() for item in self.deferred],
        }


@dataclass
class FetchSummary:
    """Counts from one background content sweep."""

    updated: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"updated": self.updated, "failed": self.failed, "skipped": self.skipped}


def _batched(items: Sequence[T], size: int) -> list[Sequence[T]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


@dataclass
class _FileOutcome:
    node_id: str
    inline: bool
    pending: PendingContent | None = None


class RepoImporter:
    """Import a remote repository into a workspace project."""

    def __init__(
        self,
        client: RemoteRepositoryClient,
        store: WorkspaceStore,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        inline_fetch_limit: int = INLINE_FETCH_LIMIT,
        progress: ProgressCallback | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self._client = client
        self._store = store
        self.batch_size = batch_size
        self.inline_fetch_limit = inline_fetch_limit
        self._progress = progress

    @classmethod
    def from_config(
        cls,
        client: RemoteRepositoryClient,
        store: WorkspaceStore,
        config: Config,
        *,
        progress: ProgressCallback | None = None,
    ) -> RepoImporter:
        return cls(
            client,
            store,
            batch_size=config.batch_size,
            inline_fetch_limit=config.inline_fetch_limit,
            progress=progress,
        )

    def _report(self, stage: str, message: str) -> None:
        logger.info("[%s] %s", stage, message)
        if self._progress is not None:
            self._progress(stage, message)

    # ------------------------------------------------------------------
    # Full import
    # ------------------------------------------------------------------

    async def import_repository(
        self,
        repo: str,
        owner_id: str,
        *,
        branch: str | None = None,
    ) -> ImportResult:
        """Import *repo* (``owner/repo``) as a new project owned by *owner_id*.

        Raises whatever fetching the metadata raises before any project
        exists. Once the project is ``importing``, any failure marks it
        ``failed`` and is re-raised; the project itself is kept.
        """
        metadata = await asyncio.to_thread(
            self._client.fetch_repository_metadata, repo
        )
        ref = branch or metadata.default_branch
        project_id = await asyncio.to_thread(
            self._store.create_project, metadata.name, owner_id
        )
        tracker = ImportStatusTracker(self._store, project_id)
        await asyncio.to_thread(tracker.begin)
        self._report("importing", f"Importing {repo}@{ref} into {project_id}")

        try:
            result = await self._build_project(project_id, repo, ref)
            await asyncio.to_thread(tracker.complete)
        except Exception as exc:
            logger.error("Import of %s into %s failed: %s", repo, project_id, exc)
            try:
                await asyncio.to_thread(tracker.fail)
            except Exception:
                logger.exception("Could not mark project %s as failed", project_id)
            raise

        self._report(
            "completed",
            (
                f"Imported {result.folder_count} folders and {result.file_count} "
                f"files ({len(result.deferred)} pending content)"
            ),
        )
        return result

    async def _build_project(self, project_id: str, repo: str, ref: str) -> ImportResult:
        tree = await asyncio.to_thread(self._client.fetch_tree, repo, ref)
        plan = build_hierarchy(tree)
        self._report(
            "tree",
            f"{len(plan.folders)} folders, {len(plan.files)} files "
            f"(max depth {plan.max_depth})",
        )

        resolver = PathResolver()
        await self.materialize_folders(project_id, plan.folders, resolver)
        outcomes = await self.populate_files(project_id, repo, ref, plan.files, resolver)

        return ImportResult(
            project_id=project_id,
            repo=repo,
            branch=ref,
            folder_count=len(plan.folders),
            file_count=len(outcomes),
            inline_count=sum(1 for outcome in outcomes if outcome.inline),
            deferred=[o.pending for o in outcomes if o.pending is not None],
        )

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    async def materialize_folders(
        self,
        project_id: str,
        folders: Sequence[TreeNode],
        resolver: PathResolver,
    ) -> None:
        """Create *folders* one by one in the given (depth-ascending) order."""
        for folder in folders:
            parent_id = resolver.resolve(folder.parent_path)
            node_id = await asyncio.to_thread(
                self._store.create_folder_node, project_id, parent_id, folder.name
            )
            resolver.register(folder.path, node_id)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def populate_files(
        self,
        project_id: str,
        repo: str,
        ref: str,
        files: Sequence[TreeNode],
        resolver: PathResolver,
    ) -> list[_FileOutcome]:
        """Create file nodes in batches, fetching small files inline.

        Each batch settles completely before the next starts. A store failure
        in any file of the batch is raised once the batch has settled.
        """
        outcomes: list[_FileOutcome] = []
        batches = _batched(files, self.batch_size)
        for index, batch in enumerate(batches, start=1):
            results = await asyncio.gather(
                *(
                    self._import_file(project_id, repo, ref, node, resolver)
                    for node in batch
                ),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
                outcomes.append(result)
            self._report("files", f"Batch {index}/{len(batches)} done")
        return outcomes

    async def _import_file(
        self,
        project_id: str,
        repo: str,
        ref: str,
        node: TreeNode,
        resolver: PathResolver,
    ) -> _FileOutcome:
        content = ""
        inline = False
        if should_fetch_inline(node.size, limit=self.inline_fetch_limit):
            text = await self._fetch_inline(repo, ref, node)
            if text is not None:
                content, inline = text, True

        parent_id = resolver.resolve(node.parent_path)
        node_id = await asyncio.to_thread(
            self._store.create_file_node, project_id, parent_id, node.name, content
        )
        resolver.register(node.path, node_id)

        pending = None
        if not inline and node.size > 0 and node.locator:
            pending = PendingContent(node_id=node_id, locator=node.locator)
        return _FileOutcome(node_id=node_id, inline=inline, pending=pending)

    async def _fetch_inline(self, repo: str, ref: str, node: TreeNode) -> str | None:
        """Return the decoded content of *node*, or ``None`` when it can't be had."""
        try:
            payload = await asyncio.to_thread(
                self._client.fetch_file_content_by_path, repo, node.path, ref=ref
            )
            return decode_content(payload)
        except CredentialInvalidError:
            raise
        except Exception as exc:
            logger.warning("Leaving %s empty: %s", node.path, exc)
            return None

    # ------------------------------------------------------------------
    # Background content sweep
    # ------------------------------------------------------------------

    async def fetch_file_contents(self, items: Sequence[PendingContent]) -> FetchSummary:
        """Fetch each blob and write it onto its existing node.

        One item failing never stops the sweep. A node listed more than once
        is written only once.
        """
        summary = FetchSummary()
        unique: list[PendingContent] = []
        seen: set[str] = set()
        for item in items:
            if item.node_id in seen:
                summary.skipped += 1
                continue
            seen.add(item.node_id)
            unique.append(item)

        for batch in _batched(unique, self.batch_size):
            results = await asyncio.gather(*(self._fetch_one(item) for item in batch))
            for ok in results:
                if ok:
                    summary.updated += 1
                else:
                    summary.failed += 1

        logger.info(
            "Content sweep finished: %d updated, %d failed, %d skipped",
            summary.updated,
            summary.failed,
            summary.skipped,
        )
        return summary

    async def _fetch_one(self, item: PendingContent) -> bool:
        try:
            payload = await asyncio.to_thread(
                self._client.fetch_file_content, item.locator
            )
            content = decode_content(payload)
            await asyncio.to_thread(
                self._store.update_file_node_content, item.node_id, content
            )
        except Exception as exc:
            logger.warning("Could not fetch content for %s: %s", item.node_id, exc)
            return False
        return True
