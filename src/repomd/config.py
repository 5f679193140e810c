from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .errors import ConfigurationError

LATEST = "latest"
UNDEFINED_PROJECT_ID = "undefined-project-id"

DEFAULT_API_BASE = "https://api.repo.md/v1"
DEFAULT_CDN_DOMAIN = "https://static.repo.md"
DEFAULT_REV_EXPIRY_S = 300.0


def normalize_rev(raw: Optional[str]) -> str:
    return (raw or "").strip() or LATEST


def is_usable_project_id(project_id: Optional[str]) -> bool:
    s = (project_id or "").strip()
    return bool(s) and s != UNDEFINED_PROJECT_ID


@dataclass(frozen=True)
class RepoMDConfig:
    project_id: str = ""
    rev: str = LATEST
    active_rev: Optional[str] = None
    rev_expiry_s: float = DEFAULT_REV_EXPIRY_S
    api_base: str = DEFAULT_API_BASE
    cdn_domain: str = DEFAULT_CDN_DOMAIN
    timeout_s: int = 30
    max_tries: int = 3
    response_cache_size: int = 1000
    response_cache_ttl_s: float = 3600.0
    debug: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "project_id", (self.project_id or "").strip())
        object.__setattr__(self, "rev", normalize_rev(self.rev))
        object.__setattr__(self, "active_rev", (self.active_rev or "").strip() or None)
        object.__setattr__(self, "api_base", (self.api_base or DEFAULT_API_BASE).rstrip("/"))
        object.__setattr__(self, "cdn_domain", (self.cdn_domain or DEFAULT_CDN_DOMAIN).rstrip("/"))
        if self.rev_expiry_s < 0:
            raise ConfigurationError("rev_expiry_s must be >= 0")
        if self.max_tries < 1:
            raise ConfigurationError("max_tries must be >= 1")

    @property
    def is_latest(self) -> bool:
        return self.rev == LATEST

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "RepoMDConfig":
        """
        Build a config from REPOMD_* environment variables.

        Blank variables fall back to the defaults; explicit keyword overrides
        win over the environment (None overrides are ignored).
        """
        env = os.environ if environ is None else environ

        def _str(name: str) -> Optional[str]:
            v = (env.get(name) or "").strip()
            return v or None

        def _num(name: str, conv: Any) -> Any:
            raw = _str(name)
            if raw is None:
                return None
            try:
                return conv(raw)
            except ValueError:
                raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None

        values: dict[str, Any] = {
            "project_id": _str("REPOMD_PROJECT_ID"),
            "rev": _str("REPOMD_REV"),
            "active_rev": _str("REPOMD_ACTIVE_REV"),
            "rev_expiry_s": _num("REPOMD_REV_EXPIRY_S", float),
            "api_base": _str("REPOMD_API_BASE"),
            "cdn_domain": _str("REPOMD_CDN_DOMAIN"),
            "timeout_s": _num("REPOMD_TIMEOUT_S", int),
        }
        debug = _str("REPOMD_DEBUG")
        if debug is not None:
            values["debug"] = debug.lower() in ("1", "true", "yes", "on")
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**{k: v for k, v in values.items() if v is not None})
