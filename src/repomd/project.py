from __future__ import annotations

from typing import Any, List, Mapping, Optional

import msgspec


class ProjectMetadata(msgspec.Struct, rename="camel", frozen=True):
    id: Optional[str] = None
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    owner: Any = None
    org_slug: Optional[str] = None
    visibility: Optional[str] = None
    active_rev: Optional[str] = None
    created: Any = None
    updated: Any = None


class ReleaseInfo(msgspec.Struct, frozen=True):
    current: Any = None
    all: List[Any] = msgspec.field(default_factory=list)
    project_id: Optional[str] = None
    project_name: Optional[str] = None


def parse_project_metadata(details: Mapping[str, Any]) -> ProjectMetadata:
    if not isinstance(details, Mapping):
        raise ValueError("Invalid project configuration response")
    # Ids come back as strings or ObjectId-like numbers depending on the backend.
    data = dict(details)
    if data.get("id") is not None:
        data["id"] = str(data["id"])
    return msgspec.convert(data, ProjectMetadata)


def parse_release_info(details: Mapping[str, Any], *, project_id: Optional[str] = None) -> ReleaseInfo:
    if not isinstance(details, Mapping):
        raise ValueError("Invalid project configuration response")
    releases = details.get("releases")
    return ReleaseInfo(
        current=details.get("latest_release"),
        all=list(releases) if isinstance(releases, list) else [],
        project_id=str(details.get("id") or project_id or "") or None,
        project_name=details.get("name") or None,
    )
