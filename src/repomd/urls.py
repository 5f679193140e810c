from __future__ import annotations

import logging
from typing import Optional

from .config import DEFAULT_CDN_DOMAIN, LATEST, is_usable_project_id, normalize_rev
from .errors import ConfigurationError, ResolutionError
from .revision import RevisionResolver

logger = logging.getLogger(__name__)

SQLITE_PATH = "/content.sqlite"


def _leading_slash(path: str) -> str:
    path = path or ""
    if path and not path.startswith("/"):
        return "/" + path
    return path


class UrlGenerator:
    """
    Builds CDN URLs for one project.

    Layout:
      - <cdn>/projects/<project_id>/<revision>/<path>   revision-scoped
      - <cdn>/projects/<project_id>/_shared/<path>      shared, not revisioned
      - <cdn>/projects/<project_id>/_shared/medias/<p>  media (content-hash addressed)
    """

    def __init__(
        self,
        project_id: str,
        *,
        rev: str = LATEST,
        resolver: Optional[RevisionResolver] = None,
        active_rev: Optional[str] = None,
        cdn_domain: str = DEFAULT_CDN_DOMAIN,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.project_id = (project_id or "").strip()
        self.rev = normalize_rev(rev)
        self.cdn_domain = (cdn_domain or DEFAULT_CDN_DOMAIN).rstrip("/")
        self._resolver = resolver
        self._log = log or logger
        if self.rev == LATEST:
            if resolver is None:
                raise ValueError("a RevisionResolver is required when rev is 'latest'")
            resolver.seed(active_rev)

    def get_project_url(self, path: str = "") -> str:
        if not is_usable_project_id(self.project_id):
            raise ConfigurationError("No valid projectId provided for URL generation")
        url = f"{self.cdn_domain}/projects/{self.project_id}{_leading_slash(path)}"
        self._log.debug(f"Generated project URL: {url}")
        return url

    async def get_revision_url(self, path: str = "") -> str:
        if self.rev != LATEST:
            return self.get_project_url(f"/{self.rev}{_leading_slash(path)}")

        rev = await self._latest_resolver().resolve_latest(LATEST)
        if not rev:
            raise ResolutionError(
                f"Failed to resolve latest revision for project {self.project_id} - received empty revision",
                project_id=self.project_id,
            )
        return self.get_project_url(f"/{rev}{_leading_slash(path)}")

    def get_media_url(self, path: str) -> str:
        return self.get_project_url(f"/_shared/medias/{(path or '').lstrip('/')}")

    def get_shared_folder_url(self, path: str = "") -> str:
        return self.get_project_url(f"/_shared{_leading_slash(path)}")

    async def get_sqlite_url(self) -> str:
        return await self.get_revision_url(SQLITE_PATH)

    def get_active_revision_state(self) -> Optional[str]:
        if self.rev != LATEST:
            return self.rev
        return self._latest_resolver().cached_revision

    def _latest_resolver(self) -> RevisionResolver:
        if self._resolver is None:
            raise ValueError("a RevisionResolver is required when rev is 'latest'")
        return self._resolver
