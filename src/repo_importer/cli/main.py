"""CLI entry point: parse args, load config, run an import or a content sweep."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from repo_importer.lib.config import Config, validate_repo_ref
from repo_importer.lib.errors import RepoImportError
from repo_importer.lib.github import GitHubClient
from repo_importer.lib.importer import PendingContent, RepoImporter
from repo_importer.lib.store import RedisWorkspaceStore


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for CLI mode."""
    parser = argparse.ArgumentParser(
        prog="repo-importer",
        description="Import GitHub repositories into workspace projects.",
    )
    parser.add_argument(
        "--token",
        default=None,
        help="GitHub token (defaults to GITHUB_TOKEN / GH_TOKEN).",
    )
    parser.add_argument(
        "--redis-url",
        default=None,
        help="Workspace store URL (overrides REPO_IMPORTER_REDIS_URL / REDIS_URL).",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Files fetched concurrently per batch.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=None,
        help="Enable verbose output.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("import", help="Import a repository as a new project.")
    run.add_argument("repo", help="GitHub owner/repo reference.")
    run.add_argument("--owner", required=True, help="Owning user id.")
    run.add_argument(
        "--branch",
        default=None,
        help="Branch to import (defaults to the repository's default branch).",
    )
    run.add_argument(
        "--no-fetch-deferred",
        action="store_true",
        help="Leave large files empty instead of fetching them after the import.",
    )

    fetch = sub.add_parser(
        "fetch-contents", help="Fetch blob content onto existing file nodes."
    )
    fetch.add_argument(
        "items",
        nargs="+",
        metavar="NODE_ID=LOCATOR",
        help="Node id and blob locator (owner/repo@sha) pairs.",
    )

    status = sub.add_parser("status", help="Show a project's import status.")
    status.add_argument("project_id")

    sub.add_parser("repos", help="List repositories available for import.")
    return parser


def _parse_pending(raw_items: list[str]) -> list[PendingContent]:
    items: list[PendingContent] = []
    for raw in raw_items:
        node_id, sep, locator = raw.partition("=")
        if not sep or not node_id or not locator:
            raise ValueError(f"expected NODE_ID=LOCATOR, got {raw!r}")
        items.append(PendingContent(node_id=node_id, locator=locator))
    return items


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: list[str] | None = None) -> None:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = Config.from_env(
        overrides={
            "redis_url": args.redis_url,
            "batch_size": args.batch_size,
            "verbose": args.verbose,
        }
    )
    _configure_logging(config.verbose)
    store = RedisWorkspaceStore.from_url(config.redis_url)

    if args.command == "status":
        try:
            _print_status(store, args.project_id)
        except RepoImportError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        return

    try:
        client = GitHubClient(token=args.token or "", timeout=config.request_timeout)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    with client:
        try:
            _run_command(args, client, store, config)
        except (RepoImportError, ValueError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)


def _print_status(store: RedisWorkspaceStore, project_id: str) -> None:
    project = store.get_project(project_id)
    if project is None:
        print(f"Error: project {project_id} not found", file=sys.stderr)
        sys.exit(1)
    print(f"project_id={project.project_id}")
    print(f"name={project.name}")
    print(f"import_status={project.import_status.value}")
    print(f"updated_at={project.updated_at}")


def _run_command(
    args: argparse.Namespace,
    client: GitHubClient,
    store: RedisWorkspaceStore,
    config: Config,
) -> None:
    if args.command == "repos":
        for repo in client.list_importable_repos():
            print(f"{repo['full_name']}\t{repo['default_branch']}\t{repo['size']}")
        return

    importer = RepoImporter.from_config(client, store, config)

    if args.command == "fetch-contents":
        summary = asyncio.run(importer.fetch_file_contents(_parse_pending(args.items)))
        print(f"updated={summary.updated} failed={summary.failed}")
        return

    repo = validate_repo_ref(args.repo)
    result = asyncio.run(
        importer.import_repository(repo, args.owner, branch=args.branch)
    )
    print(f"project_id={result.project_id}")
    print(f"branch={result.branch}")
    print(f"folders={result.folder_count} files={result.file_count}")
    if result.deferred and not args.no_fetch_deferred:
        summary = asyncio.run(importer.fetch_file_contents(result.deferred))
        print(f"deferred_updated={summary.updated} deferred_failed={summary.failed}")
    elif result.deferred:
        print(f"deferred={len(result.deferred)}")


if __name__ == "__main__":
    main()
