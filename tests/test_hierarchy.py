"""Tests for repo_importer.lib.hierarchy."""

from __future__ import annotations

from repo_importer.lib.hierarchy import ImportPlan, TreeNode, build_hierarchy


def _folder(path: str) -> TreeNode:
    return TreeNode(path=path, type="folder")


def _file(path: str, size: int = 1) -> TreeNode:
    return TreeNode(path=path, type="file", size=size, locator=f"o/r@{path}")


class TestTreeNode:
    def test_nested_path_fields(self) -> None:
        node = _file("src/pkg/mod.py")
        assert node.name == "mod.py"
        assert node.parent_path == "src/pkg"
        assert node.depth == 3

    def test_root_level_path_fields(self) -> None:
        node = _folder("docs")
        assert node.name == "docs"
        assert node.parent_path == ""
        assert node.depth == 1
        assert node.is_folder


class TestBuildHierarchy:
    def test_partitions_folders_and_files(self) -> None:
        plan = build_hierarchy([_folder("a"), _file("a/x"), _file("y")])
        assert [n.path for n in plan.folders] == ["a"]
        assert [n.path for n in plan.files] == ["a/x", "y"]

    def test_folders_sorted_by_depth(self) -> None:
        plan = build_hierarchy(
            [
                _folder("a/b/c/d"),
                _folder("a/b"),
                _folder("q"),
                _folder("a/b/c"),
                _folder("a"),
                _folder("q/r"),
            ]
        )
        assert [n.path for n in plan.folders] == [
            "q",
            "a",
            "a/b",
            "q/r",
            "a/b/c",
            "a/b/c/d",
        ]
        assert plan.max_depth == 4

    def test_files_keep_listing_order(self) -> None:
        plan = build_hierarchy([_file("z/deep/f"), _file("a"), _file("m/f")])
        assert [n.path for n in plan.files] == ["z/deep/f", "a", "m/f"]

    def test_is_deterministic(self) -> None:
        tree = [_folder("b/c"), _file("b/c/x"), _folder("a"), _folder("b")]
        assert build_hierarchy(tree) == build_hierarchy(list(tree))

    def test_keeps_duplicates(self) -> None:
        plan = build_hierarchy([_folder("a"), _folder("a"), _file("f"), _file("f")])
        assert len(plan.folders) == 2
        assert len(plan.files) == 2

    def test_empty_listing(self) -> None:
        plan = build_hierarchy([])
        assert plan == ImportPlan()
        assert plan.max_depth == 0

    def test_handles_very_deep_trees(self) -> None:
        depth = 500
        paths = ["/".join(f"d{i}" for i in range(n)) for n in range(1, depth + 1)]
        plan = build_hierarchy(_folder(p) for p in reversed(paths))
        assert [n.depth for n in plan.folders] == list(range(1, depth + 1))
