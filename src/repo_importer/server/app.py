"""FastAPI application for app mode.

Exposes an HTTP API that enqueues repository imports via Celery and lets
clients watch a project's import status while the worker runs.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field, field_validator

from repo_importer.lib.config import Config, validate_repo_ref
from repo_importer.lib.errors import (
    CredentialInvalidError,
    NotFoundError,
    RateLimitedError,
    RepoImportError,
)
from repo_importer.lib.github import GitHubClient
from repo_importer.lib.store import FileSystemNode, RedisWorkspaceStore, WorkspaceStore
from repo_importer.server.celery_app import fetch_file_contents, import_repository
from repo_importer.server.task_result import normalize_task_result

_store: WorkspaceStore | None = None

app = FastAPI(
    title="repo_importer",
    description="Import GitHub repositories into workspace projects.",
    version="0.1.0",
)


class ImportRequest(BaseModel):
    """Request body for the /imports endpoint.

    Without ``github_token`` the worker uses its own ``GITHUB_TOKEN``.
    """

    repo: str
    owner_id: str = Field(min_length=1)
    github_token: str | None = Field(default=None, min_length=1)
    branch: str | None = None
    fetch_deferred: bool = True

    @field_validator("repo")
    @classmethod
    def _validate_repo(cls, value: str) -> str:
        return validate_repo_ref(value)


class ImportResponse(BaseModel):
    """Response for an enqueued import."""

    task_id: str
    status: str
    repo: str


class TaskStatus(BaseModel):
    """Response for checking task status."""

    task_id: str
    status: str
    result: dict[str, Any] | None = None


class ProjectResponse(BaseModel):
    """Project record with its import status."""

    project_id: str
    name: str
    owner_id: str
    import_status: str
    updated_at: str


class NodeResponse(BaseModel):
    """One folder or file node."""

    node_id: str
    name: str
    kind: str
    parent_id: str | None = None
    size: int | None = None
    content: str | None = None


class NodeListResponse(BaseModel):
    """All nodes of a project."""

    project_id: str
    nodes: list[NodeResponse]
    total: int


class PendingContentItem(BaseModel):
    node_id: str = Field(min_length=1)
    locator: str = Field(min_length=1)


class ContentFetchRequest(BaseModel):
    """Request body for re-fetching file content in the background."""

    github_token: str | None = Field(default=None, min_length=1)
    items: list[PendingContentItem] = Field(min_length=1)


class ContentFetchResponse(BaseModel):
    task_id: str
    status: str
    requested: int


class RepoListRequest(BaseModel):
    """Request body for listing importable repositories."""

    github_token: str | None = Field(default=None, min_length=1)
    limit: int = Field(default=100, ge=1, le=500)


class RepoSummary(BaseModel):
    full_name: str
    name: str
    private: bool
    default_branch: str
    size: int
    url: str
    updated_at: str | None = None
    can_pull: bool


class RepoListResponse(BaseModel):
    repos: list[RepoSummary]
    total: int


def _get_store() -> WorkspaceStore:
    """Get or create the workspace store singleton."""
    global _store
    if _store is None:
        _store = RedisWorkspaceStore.from_url(Config.from_env().redis_url)
    return _store


def _http_error(exc: RepoImportError) -> HTTPException:
    """Map importer errors onto HTTP status codes."""
    if isinstance(exc, CredentialInvalidError):
        return HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, RateLimitedError):
        return HTTPException(status_code=429, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))


def _node_to_response(node: FileSystemNode, *, include_content: bool) -> NodeResponse:
    size = None if node.is_folder else len((node.content or "").encode("utf-8"))
    return NodeResponse(
        node_id=node.node_id,
        name=node.name,
        kind=node.kind,
        parent_id=node.parent_id,
        size=size,
        content=node.content if include_content else None,
    )


@app.get("/health")
def health() -> dict[str, str]:
    """Health check."""
    return {"status": "ok"}


@app.post("/imports", response_model=ImportResponse, status_code=202)
def enqueue_import(req: ImportRequest) -> ImportResponse:
    """Enqueue an import and return the Celery task ID."""
    task = import_repository.delay(
        repo=req.repo,
        owner_id=req.owner_id,
        github_token=req.github_token,
        branch=req.branch,
        fetch_deferred=req.fetch_deferred,
    )
    return ImportResponse(task_id=task.id, status="queued", repo=req.repo)


@app.get("/imports/{task_id}", response_model=TaskStatus)
def get_import(task_id: str) -> TaskStatus:
    """Check the status of an enqueued import task."""
    result = import_repository.AsyncResult(task_id)
    raw_result = result.result if result.ready() else result.info
    return TaskStatus(
        task_id=task_id,
        status=result.status,
        result=normalize_task_result(result.status, raw_result),
    )


@app.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(project_id: str) -> ProjectResponse:
    """Return a project and its current import status."""
    project = _get_store().get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return ProjectResponse(
        project_id=project.project_id,
        name=project.name,
        owner_id=project.owner_id,
        import_status=project.import_status.value,
        updated_at=project.updated_at,
    )


@app.get("/projects/{project_id}/nodes", response_model=NodeListResponse)
def list_project_nodes(
    project_id: str, include_content: bool = False
) -> NodeListResponse:
    """List the folder/file nodes created so far for a project."""
    store = _get_store()
    if store.get_project(project_id) is None:
        raise HTTPException(status_code=404, detail="Project not found")
    nodes = store.list_nodes(project_id)
    return NodeListResponse(
        project_id=project_id,
        nodes=[_node_to_response(n, include_content=include_content) for n in nodes],
        total=len(nodes),
    )


@app.post(
    "/projects/{project_id}/contents",
    response_model=ContentFetchResponse,
    status_code=202,
)
def enqueue_content_fetch(
    project_id: str, req: ContentFetchRequest
) -> ContentFetchResponse:
    """Queue a background content fetch for file nodes of a project."""
    store = _get_store()
    if store.get_project(project_id) is None:
        raise HTTPException(status_code=404, detail="Project not found")
    file_ids = {n.node_id for n in store.list_nodes(project_id) if not n.is_folder}
    unknown = sorted({item.node_id for item in req.items} - file_ids)
    if unknown:
        raise HTTPException(
            status_code=404,
            detail=f"Not file nodes of project {project_id}: {', '.join(unknown)}",
        )
    task = fetch_file_contents.delay(
        github_token=req.github_token,
        items=[item.model_dump() for item in req.items],
    )
    return ContentFetchResponse(
        task_id=task.id, status="queued", requested=len(req.items)
    )


@app.post("/repos", response_model=RepoListResponse)
def list_repos(req: RepoListRequest) -> RepoListResponse:
    """List repositories the token's owner can import."""
    config = Config.from_env()
    try:
        with GitHubClient(
            token=req.github_token or "", timeout=config.request_timeout
        ) as client:
            repos = client.list_importable_repos(limit=req.limit)
    except RepoImportError as exc:
        raise _http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return RepoListResponse(
        repos=[RepoSummary(**repo) for repo in repos],
        total=len(repos),
    )
