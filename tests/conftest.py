"""Shared fixtures: in-thread aiohttp servers for API and CDN tests."""

import asyncio
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

import pytest
from aiohttp import web


@dataclass
class HttpServer:
    base_url: str
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    runner: web.AppRunner


def start_server(routes: Dict[str, Any]) -> HttpServer:
    loop = asyncio.new_event_loop()
    ready = threading.Event()
    runner: Optional[web.AppRunner] = None
    base_url: Dict[str, str] = {}

    def run() -> None:
        asyncio.set_event_loop(loop)

        async def _run() -> None:
            nonlocal runner
            app = web.Application()
            for path, handler in routes.items():
                app.router.add_route("*", path, handler)
            runner = web.AppRunner(app)
            await runner.setup()
            site = web.TCPSite(runner, "127.0.0.1", 0)
            await site.start()
            port = list(site._server.sockets)[0].getsockname()[1]  # type: ignore[attr-defined]
            base_url["v"] = f"http://127.0.0.1:{port}"

        try:
            loop.run_until_complete(_run())
        finally:
            ready.set()
        loop.run_forever()

    t = threading.Thread(target=run, daemon=True)
    t.start()
    if not ready.wait(timeout=5) or "v" not in base_url:
        raise RuntimeError("test server failed to start")
    assert runner is not None
    return HttpServer(base_url=base_url["v"], thread=t, loop=loop, runner=runner)


def stop_server(srv: HttpServer) -> None:
    fut = asyncio.run_coroutine_threadsafe(srv.runner.cleanup(), srv.loop)
    fut.result(timeout=5)
    srv.loop.call_soon_threadsafe(srv.loop.stop)
    srv.thread.join(timeout=5)


@pytest.fixture
def serve() -> Iterator[Callable[[Dict[str, Any]], HttpServer]]:
    """Start a server for a route table; every server is stopped at teardown."""
    started: List[HttpServer] = []

    def _serve(routes: Dict[str, Any]) -> HttpServer:
        srv = start_server(routes)
        started.append(srv)
        return srv

    yield _serve
    for srv in started:
        stop_server(srv)
