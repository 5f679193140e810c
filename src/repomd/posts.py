from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

POSTS_PATH = "/posts.json"
MEDIAS_PATH = "/medias.json"

FetchRevisionJson = Callable[..., Awaitable[Any]]


def find_post_by_property(posts: Optional[List[Dict[str, Any]]], prop: str, value: Any) -> Optional[Dict[str, Any]]:
    for post in posts or []:
        if isinstance(post, dict) and post.get(prop) == value:
            return post
    return None


def sort_posts_by_date(posts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Newest first; posts without a date sort last."""
    dated = [p for p in posts if p.get("date")]
    undated = [p for p in posts if not p.get("date")]
    dated.sort(key=lambda p: str(p["date"]), reverse=True)
    return dated + undated


class PostRetrieval:
    """
    Reads the revision-scoped posts index.

    Payloads come from revision URLs, so caching is keyed by revision and a
    new "latest" revision is picked up as soon as the resolver sees it.
    """

    def __init__(self, fetch_revision_json: FetchRevisionJson, *, log: Optional[logging.Logger] = None) -> None:
        self._fetch = fetch_revision_json
        self._log = log or logger

    async def get_all_posts(self, use_cache: bool = True, force_refresh: bool = False) -> List[Dict[str, Any]]:
        posts = await self._fetch(POSTS_PATH, default=[], use_cache=use_cache and not force_refresh)
        if not isinstance(posts, list):
            self._log.warning(f"Unexpected posts payload type {type(posts).__name__}; treating as empty")
            return []
        self._log.debug(f"Fetched {len(posts)} posts")
        return posts

    async def get_post_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        return find_post_by_property(await self.get_all_posts(), "slug", slug)

    async def get_post_by_hash(self, hash: str) -> Optional[Dict[str, Any]]:
        return find_post_by_property(await self.get_all_posts(), "hash", hash)

    async def get_post_by_id(self, id: str) -> Optional[Dict[str, Any]]:
        return find_post_by_property(await self.get_all_posts(), "id", id)

    async def get_recent_posts(self, count: int = 3) -> List[Dict[str, Any]]:
        return sort_posts_by_date(await self.get_all_posts())[: max(0, count)]
