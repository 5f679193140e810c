from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from .config import DEFAULT_API_BASE, is_usable_project_id
from .errors import ApiRequestError, ConfigurationError, FetchError
from .http import JsonFetcher

logger = logging.getLogger(__name__)


def _unwrap_envelope(result: Any, url: str) -> Any:
    # Public API responses look like {"success": true, "data": ...}.
    if isinstance(result, Mapping):
        if result.get("success") is False:
            raise ValueError(str(result.get("error") or f"Failed to fetch data from {url}"))
        if "data" in result:
            result = result["data"]
    if result is None:
        raise ValueError(f"Failed to fetch data from {url} - please verify your project credentials")
    return result


def _coerce_rev(data: Any) -> str:
    if isinstance(data, Mapping):
        data = data.get("activeRev") or data.get("rev") or ""
    if isinstance(data, (dict, list, bool)):
        return ""
    return str(data or "").strip()


class ApiClient:
    """
    repo.md public API client.

    Endpoints:
      - GET <api_base>/project-id/<project_id>      -> project details (includes activeRev)
      - GET <api_base>/project-id/<project_id>/rev  -> active revision id
    """

    def __init__(
        self,
        project_id: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        fetcher: Optional[JsonFetcher] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.project_id = (project_id or "").strip()
        self.api_base = (api_base or DEFAULT_API_BASE).rstrip("/")
        self._fetcher = fetcher or JsonFetcher()
        self._log = log or logger

    def project_path(self, suffix: str = "") -> str:
        if not is_usable_project_id(self.project_id):
            raise ConfigurationError("No valid projectId provided for API request")
        path = f"/project-id/{self.project_id}{suffix}"
        self._log.debug(f"Using project ID path: {path}")
        return path

    async def fetch_public_api(self, path: str = "/") -> Any:
        url = f"{self.api_base}{path}"
        try:
            result = await self._fetcher.fetch_json(url)
            return _unwrap_envelope(result, url)
        except (FetchError, ValueError) as e:
            self._log.debug(f"API Request Failed: {e} (url={url})")
            raise ApiRequestError(f"Failed to access project ID: {self.project_id}: {e}", url=url) from e

    async def fetch_project_details(self) -> Dict[str, Any]:
        path = self.project_path()
        data = await self.fetch_public_api(path)
        if not isinstance(data, dict):
            raise ApiRequestError(
                f"Invalid project details response format for project {self.project_id}",
                url=f"{self.api_base}{path}",
            )
        return data

    async def fetch_project_active_rev(self) -> str:
        path = self.project_path("/rev")
        data = await self.fetch_public_api(path)
        rev = _coerce_rev(data)
        if not rev:
            raise ApiRequestError(
                f"Empty response from /rev endpoint for project {self.project_id}",
                url=f"{self.api_base}{path}",
            )
        self._log.debug(f"Fetched revision {rev} from /rev endpoint")
        return rev
