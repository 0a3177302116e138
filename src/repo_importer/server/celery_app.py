"""Celery application and task definitions."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

from celery import Celery

from repo_importer.lib.config import Config, validate_repo_ref
from repo_importer.lib.github import GitHubClient
from repo_importer.lib.importer import PendingContent, RepoImporter
from repo_importer.lib.store import RedisWorkspaceStore

logger = logging.getLogger(__name__)


def _resolve_celery_urls() -> tuple[str, str]:
    """Resolve broker/result backend URLs with sensible env fallbacks.

    Priority order:
    1. `CELERY_BROKER_URL` / `CELERY_RESULT_BACKEND`
    2. shared `REDIS_URL`
    3. local default (`redis://localhost:6379/0`)
    """
    redis_url = os.environ.get("REDIS_URL")
    broker_url = (
        os.environ.get("CELERY_BROKER_URL") or redis_url or "redis://localhost:6379/0"
    )
    # Fall back to broker URL so polling still works when only broker is set.
    backend_url = os.environ.get("CELERY_RESULT_BACKEND") or redis_url or broker_url
    return broker_url, backend_url


_BROKER_URL, _RESULT_BACKEND_URL = _resolve_celery_urls()

celery_app = Celery(
    "repo_importer",
    broker=_BROKER_URL,
    backend=_RESULT_BACKEND_URL,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

_MAX_STORED_UPDATES = 200
_MAX_UPDATE_LINE_CHARS = 800


def _trim_updates(updates: list[str]) -> None:
    if len(updates) > _MAX_STORED_UPDATES:
        del updates[: len(updates) - _MAX_STORED_UPDATES]


def _append_update(updates: list[str], text: str) -> None:
    clean = text.strip()
    if not clean:
        return
    if len(clean) > _MAX_UPDATE_LINE_CHARS:
        clean = clean[:_MAX_UPDATE_LINE_CHARS] + " ...[truncated]"
    updates.append(clean)
    _trim_updates(updates)


def _update_progress(
    task: object,
    *,
    task_id: str | None,
    stage: str,
    updates: list[str],
    repo: str,
    owner_id: str,
) -> None:
    update_state = getattr(task, "update_state", None)
    if not callable(update_state):
        return
    meta: dict[str, Any] = {
        "task_id": task_id,
        "stage": stage,
        "repo": repo,
        "owner_id": owner_id,
        "updates": list(updates),
    }
    update_state(state="PROGRESS", meta=meta)


def _task_id(task: object) -> str | None:
    return getattr(getattr(task, "request", None), "id", None)


def run_import(
    task: object,
    *,
    repo: str,
    owner_id: str,
    github_token: str | None = None,
    branch: str | None = None,
    fetch_deferred: bool = True,
) -> dict[str, Any]:
    """Run one import inside a worker and report progress on *task*.

    Without *github_token* the worker falls back to its own ``GITHUB_TOKEN`` /
    ``GH_TOKEN``, so the credential need not travel through the broker.
    """
    task_id = _task_id(task)
    repo_ref = validate_repo_ref(repo)
    config = Config.from_env()
    updates: list[str] = []
    _append_update(updates, f"Task received. repo={repo_ref}, owner={owner_id}")
    _update_progress(
        task,
        task_id=task_id,
        stage="starting",
        updates=updates,
        repo=repo_ref,
        owner_id=owner_id,
    )

    def _progress(stage: str, message: str) -> None:
        _append_update(updates, message)
        _update_progress(
            task,
            task_id=task_id,
            stage=stage,
            updates=updates,
            repo=repo_ref,
            owner_id=owner_id,
        )

    store = RedisWorkspaceStore.from_url(config.redis_url)
    token = github_token or ""
    with GitHubClient(token=token, timeout=config.request_timeout) as client:
        importer = RepoImporter.from_config(client, store, config, progress=_progress)
        result = asyncio.run(
            importer.import_repository(repo_ref, owner_id, branch=branch)
        )

    payload = result.to_dict()
    if fetch_deferred and result.deferred:
        follow_up = fetch_file_contents.delay(
            github_token=github_token,
            items=[item.to_dict() for item in result.deferred],
        )
        payload["content_task_id"] = follow_up.id
        _append_update(
            updates,
            f"Queued content fetch for {len(result.deferred)} file(s): {follow_up.id}",
        )
    _append_update(updates, "Task complete.")
    return {"status": "ok", **payload, "updates": updates}


def run_content_fetch(
    *,
    items: list[dict[str, Any]],
    github_token: str | None = None,
) -> dict[str, Any]:
    """Fill in content for already-created file nodes."""
    config = Config.from_env()
    pending = [PendingContent.from_dict(item) for item in items]
    store = RedisWorkspaceStore.from_url(config.redis_url)
    token = github_token or ""
    with GitHubClient(token=token, timeout=config.request_timeout) as client:
        importer = RepoImporter.from_config(client, store, config)
        summary = asyncio.run(importer.fetch_file_contents(pending))
    return {"status": "ok", "requested": len(pending), **summary.to_dict()}


@celery_app.task(bind=True, name="repo_importer.import_repository")
def import_repository(
    self: object,
    repo: str,
    owner_id: str,
    github_token: str | None = None,
    branch: str | None = None,
    fetch_deferred: bool = True,
) -> dict[str, Any]:
    """Async task: import a GitHub repository into a new workspace project.

    The server enqueues this task; a worker runs the import pipeline and
    stores a summary as the task result. Files left without content are
    handed to ``fetch_file_contents`` unless ``fetch_deferred`` is false.
    """
    return run_import(
        self,
        repo=repo,
        owner_id=owner_id,
        github_token=github_token,
        branch=branch,
        fetch_deferred=fetch_deferred,
    )


@celery_app.task(name="repo_importer.fetch_file_contents")
def fetch_file_contents(
    items: list[dict[str, Any]],
    github_token: str | None = None,
) -> dict[str, Any]:
    """Async task: fetch blob content for ``{node_id, locator}`` items."""
    return run_content_fetch(items=items, github_token=github_token)
