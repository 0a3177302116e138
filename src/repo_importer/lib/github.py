"""GitHub integration: repository metadata, recursive trees, and file content.

It wraps PyGithub and translates every failure into the importer's error
taxonomy (``repo_importer.lib.errors``) so the pipeline can decide what is
fatal and what is skipped.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any

import requests
from github import Auth, Github, GithubException
from github.Repository import Repository

from repo_importer.lib.content import RemoteContent
from repo_importer.lib.errors import (
    CredentialInvalidError,
    MalformedResponseError,
    NotFoundError,
    RateLimitedError,
    RepoImportError,
    UpstreamError,
)
from repo_importer.lib.hierarchy import FILE, FOLDER, TreeNode

logger = logging.getLogger(__name__)

_TREE_TYPES = {"tree": FOLDER, "blob": FILE}

DEFAULT_API_URL = "https://api.github.com"


def _redact_sensitive(text: str) -> str:
    """Redact bearer tokens and token-bearing GitHub URLs in logs/errors."""
    text = re.sub(
        r"(https://x-access-token:)[^@]+(@github\.com/)",
        r"\1***\2",
        text,
    )
    return re.sub(r"(?i)(bearer\s+|token\s+)[A-Za-z0-9_\-.]+", r"\1***", text)


def _github_error_message(action: str, exc: GithubException) -> str:
    """Build a clear error message from a PyGithub exception.

    Args:
        action: Human-readable description of what was attempted.
        exc: The caught GithubException.

    Returns:
        An actionable error string including the HTTP status and detail.
    """
    status = getattr(exc, "status", None)
    detail = getattr(exc, "data", {})
    message = ""
    if isinstance(detail, dict):
        message = detail.get("message", "")
    hints: dict[int, str] = {
        401: "GitHub token is invalid or expired; reconnect your GitHub account",
        403: "check token permissions or GitHub rate limits",
        404: "resource not found, verify the repo name and token scope",
        429: "GitHub rate limit reached, retry later",
    }
    hint = hints.get(status, "") if status else ""
    parts = [f"GitHub API error: failed to {action}"]
    if status:
        parts.append(f"(HTTP {status})")
    if message:
        parts.append(f": {message}")
    if hint:
        parts.append(f"[hint: {hint}]")
    return _redact_sensitive(" ".join(parts))


def classify_github_error(action: str, exc: GithubException) -> RepoImportError:
    """Map a PyGithub exception onto the importer's error taxonomy."""
    status = getattr(exc, "status", None)
    msg = _github_error_message(action, exc)
    if status == 401:
        return CredentialInvalidError(msg)
    if status == 404:
        return NotFoundError(msg)
    if status in (403, 429):
        return RateLimitedError(msg)
    return UpstreamError(msg, status=status)


@dataclass(frozen=True)
class BlobLocator:
    """Opaque reference to a git blob: ``owner/repo@sha``."""

    full_name: str
    sha: str

    def __str__(self) -> str:
        return f"{self.full_name}@{self.sha}"

    @classmethod
    def parse(cls, locator: str) -> BlobLocator:
        full_name, sep, sha = locator.rpartition("@")
        if not sep or not full_name or not sha:
            raise MalformedResponseError(f"invalid blob locator {locator!r}")
        return cls(full_name=full_name, sha=sha)


@dataclass(frozen=True)
class RepoMetadata:
    """The repository fields the importer needs."""

    name: str
    full_name: str
    default_branch: str


@dataclass
class GitHubClient:
    """Authenticated GitHub client for repository import.

    The token is read from the ``token`` field, or falls back to the
    ``GITHUB_TOKEN`` / ``GH_TOKEN`` environment variable. Every call is
    blocking; async callers run them through ``asyncio.to_thread``.
    """

    token: str = ""
    timeout: int = 15
    base_url: str = DEFAULT_API_URL
    _gh: Github = field(init=False, repr=False)
    _repos: dict[str, Repository] = field(
        init=False, repr=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        resolved = self.token or os.environ.get(
            "GITHUB_TOKEN", os.environ.get("GH_TOKEN", "")
        )
        if not resolved:
            msg = (
                "No GitHub token provided. Set GITHUB_TOKEN or GH_TOKEN, "
                "or pass token= explicitly."
            )
            raise ValueError(msg)
        self.token = resolved
        # Retries and rate-limit sleeps are left to the caller; every response
        # status is classified exactly once.
        self._gh = Github(
            base_url=self.base_url,
            auth=Auth.Token(self.token),
            timeout=self.timeout,
            retry=None,
        )

    def _call(self, action: str, fn: Any, *args: Any, **kwargs: Any) -> Any:
        """Run *fn* and translate transport/API failures."""
        try:
            return fn(*args, **kwargs)
        except GithubException as exc:
            error = classify_github_error(action, exc)
            logger.error("%s", error)
            raise error from exc
        except requests.RequestException as exc:
            msg = _redact_sensitive(f"GitHub request failed: {action}: {exc}")
            logger.error(msg)
            raise UpstreamError(msg) from exc

    # ------------------------------------------------------------------
    # Auth / identity
    # ------------------------------------------------------------------

    def whoami(self) -> dict[str, Any]:
        """Return the authenticated user's login and name."""

        def _load() -> dict[str, Any]:
            user = self._gh.get_user()
            return {"login": user.login, "name": user.name, "url": user.html_url}

        return self._call("authenticate", _load)

    def list_importable_repos(self, *, limit: int = 100) -> list[dict[str, Any]]:
        """List repositories the user can pull, most recently updated first.

        Empty repositories and ones without pull permission are dropped. When
        that filter leaves nothing, the first five repositories are returned
        unfiltered so the caller still has something to show.
        """

        def _load() -> list[Any]:
            repos = self._gh.get_user().get_repos(sort="updated")
            return list(repos[:limit])

        repos = self._call("list repositories", _load)
        summaries = [_repo_summary(repo) for repo in repos]
        accessible = [
            summary
            for summary in summaries
            if summary["can_pull"] and summary["size"] > 0
        ]
        if not accessible and summaries:
            return summaries[:5]
        return accessible

    # ------------------------------------------------------------------
    # Repository
    # ------------------------------------------------------------------

    def _get_repo(self, full_name: str) -> Repository:
        repo = self._repos.get(full_name)
        if repo is None:
            repo = self._gh.get_repo(full_name, lazy=True)
            self._repos[full_name] = repo
        return repo

    def fetch_repository_metadata(self, full_name: str) -> RepoMetadata:
        """Fetch the repository's display name and default branch."""

        def _load() -> RepoMetadata:
            repo = self._gh.get_repo(full_name)
            self._repos[full_name] = repo
            return RepoMetadata(
                name=str(repo.name),
                full_name=str(repo.full_name),
                default_branch=str(repo.default_branch),
            )

        metadata = self._call(f"access repo '{full_name}'", _load)
        logger.info(
            "Resolved %s (default branch %s)",
            metadata.full_name,
            metadata.default_branch,
        )
        return metadata

    def fetch_tree(self, full_name: str, branch: str) -> list[TreeNode]:
        """Return the recursive tree listing of *branch*.

        Raises:
            MalformedResponseError: If an entry lacks a path or type.
        """
        tree = self._call(
            f"fetch tree '{branch}' of '{full_name}'",
            lambda: self._get_repo(full_name).get_git_tree(branch, recursive=True),
        )
        raw = getattr(tree, "raw_data", None)
        if isinstance(raw, dict) and raw.get("truncated"):
            logger.warning(
                "Tree listing for %s@%s was truncated by GitHub; "
                "importing the partial listing",
                full_name,
                branch,
            )

        nodes: list[TreeNode] = []
        for element in tree.tree:
            path = getattr(element, "path", None)
            kind = getattr(element, "type", None)
            if not path or not kind:
                msg = f"tree entry without path/type in '{full_name}': {element!r}"
                raise MalformedResponseError(msg)
            node_type = _TREE_TYPES.get(kind)
            if node_type is None:
                logger.debug("Skipping %s entry %s", kind, path)
                continue
            sha = getattr(element, "sha", None) or ""
            nodes.append(
                TreeNode(
                    path=path,
                    type=node_type,
                    size=int(getattr(element, "size", None) or 0),
                    locator=str(BlobLocator(full_name, sha)) if sha else "",
                )
            )
        logger.info("Fetched %d tree entries from %s@%s", len(nodes), full_name, branch)
        return nodes

    def fetch_file_content(self, locator: str) -> RemoteContent:
        """Fetch a git blob by its locator."""
        ref = BlobLocator.parse(locator)
        blob = self._call(
            f"fetch blob {ref.sha} of '{ref.full_name}'",
            lambda: self._get_repo(ref.full_name).get_git_blob(ref.sha),
        )
        if blob.content is None:
            raise MalformedResponseError(f"blob {locator} has no content")
        return RemoteContent(content=blob.content, encoding=blob.encoding or "")

    def fetch_file_content_by_path(
        self,
        full_name: str,
        path: str,
        *,
        ref: str | None = None,
    ) -> RemoteContent:
        """Fetch a single file through the contents API."""
        kwargs: dict[str, Any] = {}
        if ref:
            kwargs["ref"] = ref
        item = self._call(
            f"fetch '{path}' from '{full_name}'",
            lambda: self._get_repo(full_name).get_contents(path, **kwargs),
        )
        if isinstance(item, list):
            raise MalformedResponseError(f"'{path}' in '{full_name}' is a directory")
        if item.content is None:
            raise MalformedResponseError(
                f"no content returned for '{path}' in '{full_name}'"
            )
        return RemoteContent(content=item.content, encoding=item.encoding or "")

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the underlying GitHub connection."""
        self._gh.close()

    def __enter__(self) -> GitHubClient:
        """Enter the context manager and return self."""
        return self

    def __exit__(self, *_: Any) -> None:
        """Exit the context manager and close the connection."""
        self.close()


def _repo_summary(repo: Any) -> dict[str, Any]:
    permissions = getattr(repo, "permissions", None)
    can_pull = getattr(permissions, "pull", None) is not False
    updated_at = getattr(repo, "updated_at", None)
    return {
        "full_name": repo.full_name,
        "name": repo.name,
        "private": bool(repo.private),
        "default_branch": repo.default_branch,
        "size": int(repo.size or 0),
        "url": repo.html_url,
        "updated_at": updated_at.isoformat() if updated_at else None,
        "can_pull": can_pull,
    }
