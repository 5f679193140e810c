from .api import ApiClient
from .cache import ResponseCache
from .client import RepoMD
from .config import LATEST, RepoMDConfig
from .errors import ApiRequestError, ConfigurationError, FetchError, RepoMDError, ResolutionError
from .http import JsonFetcher
from .project import ProjectMetadata, ReleaseInfo
from .revision import RevisionCacheEntry, RevisionResolver, RevisionState
from .single_flight import SingleFlight
from .urls import UrlGenerator

__all__ = [
    "RepoMD",
    "RepoMDConfig",
    "LATEST",
    "ApiClient",
    "JsonFetcher",
    "ResponseCache",
    "RevisionResolver",
    "RevisionCacheEntry",
    "RevisionState",
    "SingleFlight",
    "UrlGenerator",
    "ProjectMetadata",
    "ReleaseInfo",
    "RepoMDError",
    "ConfigurationError",
    "FetchError",
    "ApiRequestError",
    "ResolutionError",
]
