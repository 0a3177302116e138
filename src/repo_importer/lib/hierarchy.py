"""Turn a flat remote tree listing into a parent-before-child insertion plan.

The remote listing is order-independent. Folders are grouped by depth and
emitted shallowest first, so by the time a folder is created every folder
above it has already been created and registered. Files always hang off a
folder (or the root), so they only need to run after all folders exist.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal

__all__ = ["FOLDER", "FILE", "ImportPlan", "TreeNode", "build_hierarchy"]

logger = logging.getLogger(__name__)

FOLDER = "folder"
FILE = "file"

NodeType = Literal["folder", "file"]


@dataclass(frozen=True)
class TreeNode:
    """One entry of a recursive remote tree listing."""

    path: str
    type: NodeType
    size: int = 0
    locator: str = ""

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def parent_path(self) -> str:
        """Path with the final segment removed; ``""`` means the project root."""
        if "/" not in self.path:
            return ""
        return self.path.rsplit("/", 1)[0]

    @property
    def depth(self) -> int:
        return len(self.path.split("/"))

    @property
    def is_folder(self) -> bool:
        return self.type == FOLDER


@dataclass(frozen=True)
class ImportPlan:
    """Depth-ordered folders plus files, ready to be materialized."""

    folders: tuple[TreeNode, ...] = field(default_factory=tuple)
    files: tuple[TreeNode, ...] = field(default_factory=tuple)

    @property
    def max_depth(self) -> int:
        return max((node.depth for node in self.folders), default=0)


def build_hierarchy(nodes: Iterable[TreeNode]) -> ImportPlan:
    """Partition *nodes* into folders (depth ascending) and files.

    Folders are bucketed by depth and the buckets are drained in ascending
    order; listing order is kept inside a bucket. Files keep listing order.
    Duplicate paths are kept as-is and will produce duplicate nodes.
    """
    by_depth: dict[int, list[TreeNode]] = defaultdict(list)
    files: list[TreeNode] = []
    seen: Counter[str] = Counter()

    for node in nodes:
        seen[node.path] += 1
        if node.is_folder:
            by_depth[node.depth].append(node)
        else:
            files.append(node)

    duplicates = sorted(path for path, count in seen.items() if count > 1)
    if duplicates:
        logger.debug(
            "Remote listing repeats %d path(s); keeping every entry: %s",
            len(duplicates),
            ", ".join(duplicates[:10]),
        )

    folders: list[TreeNode] = []
    for depth in sorted(by_depth):
        folders.extend(by_depth[depth])

    return ImportPlan(folders=tuple(folders), files=tuple(files))
