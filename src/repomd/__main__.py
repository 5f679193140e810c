from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

import msgspec

from .client import RepoMD
from .config import RepoMDConfig
from .errors import ConfigurationError, RepoMDError

logger = logging.getLogger("repomd.cli")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="repomd", description="Inspect a repo.md project from the command line.")
    p.add_argument("--project-id", default=None, help="project id (default: $REPOMD_PROJECT_ID)")
    p.add_argument("--rev", default=None, help="revision to target, 'latest' or a pinned id (default: $REPOMD_REV)")
    p.add_argument("--debug", action="store_true", default=None, help="enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("rev", help="print the concrete revision id")
    sub.add_parser("sqlite-url", help="print the content.sqlite URL for the revision")
    media = sub.add_parser("media-url", help="print the URL of a shared media file")
    media.add_argument("path")
    sub.add_parser("project", help="print project metadata as JSON")
    return p


async def _run(args: argparse.Namespace) -> Any:
    config = RepoMDConfig.from_env(project_id=args.project_id, rev=args.rev, debug=args.debug)
    async with RepoMD(config) as repo:
        if args.command == "rev":
            return await repo.resolve_revision()
        if args.command == "sqlite-url":
            return await repo.get_sqlite_url()
        if args.command == "media-url":
            return repo.get_media_url(args.path)
        if args.command == "project":
            meta = await repo.get_project_metadata()
            return json.dumps(msgspec.to_builtins(meta), indent=2, sort_keys=True)
    raise ValueError(f"unknown command: {args.command}")


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        out = asyncio.run(_run(args))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except RepoMDError as e:
        logger.error(str(e))
        return 1
    print(out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
