from __future__ import annotations

import dataclasses
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import msgspec

from .api import ApiClient
from .cache import ResponseCache
from .config import RepoMDConfig
from .errors import ApiRequestError, FetchError
from .http import JsonFetcher
from .posts import MEDIAS_PATH, PostRetrieval
from .project import ProjectMetadata, ReleaseInfo, parse_project_metadata, parse_release_info
from .revision import RevisionResolver, RevisionSource
from .urls import UrlGenerator

logger = logging.getLogger(__name__)

_NO_DEFAULT = object()


class RepoMD:
    """
    Client for one repo.md project.

    Owns its fetcher, response cache, revision resolver and URL generator;
    nothing is shared between instances. Use as an async context manager or
    call `aclose()` to stop pending background revalidation.
    """

    def __init__(
        self,
        config: Optional[RepoMDConfig] = None,
        *,
        fetcher: Optional[JsonFetcher] = None,
        api: Optional[RevisionSource] = None,
        clock: Callable[[], float] = time.monotonic,
        log: Optional[logging.Logger] = None,
        **config_kwargs: Any,
    ) -> None:
        if config is None:
            config = RepoMDConfig(**config_kwargs)
        elif config_kwargs:
            config = dataclasses.replace(config, **config_kwargs)
        self.config = config
        self._log = log or logger
        if config.debug:
            logging.getLogger("repomd").setLevel(logging.DEBUG)

        self.cache = ResponseCache(max_size=config.response_cache_size, ttl_s=config.response_cache_ttl_s)
        self.fetcher = fetcher or JsonFetcher(
            timeout_s=config.timeout_s,
            max_tries=config.max_tries,
            cache=self.cache,
            log=log,
        )
        self.api = api or ApiClient(config.project_id, api_base=config.api_base, fetcher=self.fetcher, log=log)
        self.resolver = RevisionResolver(
            self.api,
            project_id=config.project_id,
            expiry_s=config.rev_expiry_s,
            clock=clock,
            log=log,
        )
        self.urls = UrlGenerator(
            config.project_id,
            rev=config.rev,
            resolver=self.resolver,
            active_rev=config.active_rev,
            cdn_domain=config.cdn_domain,
            log=log,
        )
        self.posts = PostRetrieval(self.fetch_revision_json, log=log)
        self._log.debug(f"Initialized RepoMD client: project={config.project_id or 'N/A'} rev={config.rev}")

    async def __aenter__(self) -> "RepoMD":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.resolver.aclose()

    # Revisions and URLs

    async def get_active_revision(self, force_refresh: bool = False) -> str:
        return await self.resolver.get_active_revision(force_refresh=force_refresh)

    async def resolve_revision(self) -> str:
        return await self.resolver.resolve_latest(self.config.rev)

    def get_active_revision_state(self) -> Optional[str]:
        return self.urls.get_active_revision_state()

    def get_project_url(self, path: str = "") -> str:
        return self.urls.get_project_url(path)

    async def get_revision_url(self, path: str = "") -> str:
        return await self.urls.get_revision_url(path)

    async def get_sqlite_url(self) -> str:
        return await self.urls.get_sqlite_url()

    def get_media_url(self, path: str) -> str:
        return self.urls.get_media_url(path)

    def get_shared_folder_url(self, path: str = "") -> str:
        return self.urls.get_shared_folder_url(path)

    async def fetch_revision_json(self, path: str, *, default: Any = _NO_DEFAULT, use_cache: bool = True) -> Any:
        """
        Fetch JSON stored under the active revision.

        With `default`, HTTP failures return the default instead of raising.
        Revision resolution failures always raise.
        """
        url = await self.urls.get_revision_url(path)
        try:
            return await self.fetcher.fetch_json(url, use_cache=use_cache)
        except FetchError as e:
            if default is _NO_DEFAULT:
                raise
            self._log.debug(f"Error fetching {path}, using default: {e}")
            return default

    # Project

    async def fetch_project_details(self) -> Dict[str, Any]:
        return dict(await self.api.fetch_project_details())

    async def get_project_metadata(self) -> ProjectMetadata:
        details = await self.fetch_project_details()
        try:
            return parse_project_metadata(details)
        except (ValueError, msgspec.ValidationError) as e:
            raise ApiRequestError(f"Failed to get project metadata: {e}") from e

    async def get_release_info(self) -> ReleaseInfo:
        details = await self.fetch_project_details()
        try:
            return parse_release_info(details, project_id=self.config.project_id)
        except ValueError as e:
            raise ApiRequestError(f"Failed to get release information: {e}") from e

    # Content

    async def get_all_posts(self, use_cache: bool = True, force_refresh: bool = False) -> List[Dict[str, Any]]:
        return await self.posts.get_all_posts(use_cache=use_cache, force_refresh=force_refresh)

    async def get_post_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        return await self.posts.get_post_by_slug(slug)

    async def get_post_by_hash(self, hash: str) -> Optional[Dict[str, Any]]:
        return await self.posts.get_post_by_hash(hash)

    async def get_post_by_id(self, id: str) -> Optional[Dict[str, Any]]:
        return await self.posts.get_post_by_id(id)

    async def get_recent_posts(self, count: int = 3) -> List[Dict[str, Any]]:
        return await self.posts.get_recent_posts(count)

    async def get_all_medias(self, use_cache: bool = True) -> Any:
        return await self.fetch_revision_json(MEDIAS_PATH, default={}, use_cache=use_cache)
