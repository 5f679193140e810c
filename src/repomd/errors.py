from __future__ import annotations

from typing import Optional


class RepoMDError(RuntimeError):
    pass


class ConfigurationError(RepoMDError):
    pass


class FetchError(RepoMDError):
    def __init__(self, message: str, *, url: str, status: Optional[int] = None, retryable: bool = False) -> None:
        super().__init__(message)
        self.url = url
        self.status = status
        self.retryable = retryable


class ApiRequestError(RepoMDError):
    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class ResolutionError(RepoMDError):
    """
    Neither the /rev endpoint nor the project details fallback produced a revision.

    `details_error` is None when the fallback was skipped.
    """

    def __init__(
        self,
        message: str,
        *,
        project_id: str,
        rev_error: Optional[BaseException] = None,
        details_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.project_id = project_id
        self.rev_error = rev_error
        self.details_error = details_error
