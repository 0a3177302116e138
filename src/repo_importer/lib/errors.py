"""Error taxonomy shared by the remote client, the store, and the pipeline.

Fatal errors propagate out of ``RepoImporter.import_repository`` and drive the
project to ``failed``; per-file errors are caught by the content stages and
leave an empty-content node behind.
"""

from __future__ import annotations

__all__ = [
    "CredentialInvalidError",
    "MalformedResponseError",
    "NotFoundError",
    "PersistenceError",
    "RateLimitedError",
    "RepoImportError",
    "UpstreamError",
]


class RepoImportError(RuntimeError):
    """Base class for every failure raised by the import pipeline."""

    retryable = False
    user_actionable = False


class CredentialInvalidError(RepoImportError):
    """The caller-supplied credential was rejected (HTTP 401)."""

    user_actionable = True


class NotFoundError(RepoImportError):
    """The repository, branch, or blob does not exist (HTTP 404)."""


class RateLimitedError(RepoImportError):
    """The hosting API throttled the request (HTTP 403/429)."""

    retryable = True


class UpstreamError(RepoImportError):
    """Any other non-2xx response, timeout, or connection failure."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class MalformedResponseError(RepoImportError):
    """A response body did not have the expected structure."""


class PersistenceError(RepoImportError):
    """The workspace store rejected or failed a write."""
