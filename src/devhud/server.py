"""FastAPI application exposing the live session view.

The app owns one SessionAggregator. On startup it spawns the background
watcher (or seeds demo sessions) and runs the event pump that keeps the
aggregator current; routes and the /ws endpoint only read from it.
"""

import argparse
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .config import CLAUDE_PROJECTS_DIR, DEFAULT_HOST, DEFAULT_PORT, TICK_INTERVAL_SECONDS
from .demo import create_demo_aggregator
from .errors import WatcherError
from .logging_config import get_log_handler, get_logger, parse_log_level, setup_logging
from .routes import logs_router, sessions_router
from .session import SessionAggregator
from .watcher import WatcherHandle
from .websocket import ConnectionManager, make_log_broadcaster, pump_events_loop

logger = get_logger(__name__, namespace='api')


def _no_events() -> list:
    return []


def create_app(
    projects_dir: Path | None = None,
    demo: bool = False,
    start_watcher: bool = True,
    tick_interval: float = TICK_INTERVAL_SECONDS,
) -> FastAPI:
    """Build the dev-hud API.

    Args:
        projects_dir: Root of the Claude projects tree (default from config)
        demo: Serve simulated sessions instead of watching the filesystem
        start_watcher: Spawn the watcher and event pump on startup
        tick_interval: Seconds between drain + tick rounds of the pump
    """
    projects_dir = Path(projects_dir) if projects_dir is not None else CLAUDE_PROJECTS_DIR

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        handle: WatcherHandle | None = None
        pump_task: asyncio.Task | None = None
        log_handler = get_log_handler()
        log_handler.set_broadcast_callback(
            make_log_broadcaster(app.state.ws_manager, asyncio.get_running_loop())
        )

        if start_watcher:
            drain = _no_events
            if not demo:
                try:
                    handle = WatcherHandle.spawn(projects_dir)
                    drain = handle.drain_events
                except WatcherError as e:
                    # API stays up with an empty view so the HUD can say why
                    logger.error("Session watcher not started: %s", e)
            app.state.watcher = handle
            pump_task = asyncio.create_task(
                pump_events_loop(app.state.ws_manager, app.state.aggregator, drain, tick_interval)
            )

        try:
            yield
        finally:
            if pump_task:
                pump_task.cancel()
                try:
                    await pump_task
                except asyncio.CancelledError:
                    pass
            if handle:
                handle.close()
            log_handler.set_broadcast_callback(None)

    app = FastAPI(title="dev-hud", lifespan=lifespan)
    app.state.aggregator = create_demo_aggregator() if demo else SessionAggregator()
    app.state.ws_manager = ConnectionManager()
    app.state.watcher = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(sessions_router)
    app.include_router(logs_router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Push tagged events and session updates; accepts log subscriptions."""
        ws_manager: ConnectionManager = app.state.ws_manager
        await ws_manager.connect(websocket)
        try:
            await websocket.send_json({'type': 'snapshot', **app.state.aggregator.snapshot()})
            while True:
                message = await websocket.receive_json()
                if not isinstance(message, dict):
                    continue
                if message.get('type') == 'subscribe_logs':
                    await ws_manager.subscribe_to_logs(
                        websocket,
                        enabled=bool(message.get('enabled', True)),
                        namespaces=message.get('namespaces'),
                        session_ids=message.get('sessions'),
                    )
                elif message.get('type') == 'ping':
                    await websocket.send_json({'type': 'pong'})
        except WebSocketDisconnect:
            pass
        finally:
            await ws_manager.disconnect(websocket)

    return app


def main(argv: list[str] | None = None):
    import uvicorn

    parser = argparse.ArgumentParser(description="dev-hud: live view of Claude Code sessions")
    parser.add_argument("--projects-dir", type=Path, default=CLAUDE_PROJECTS_DIR,
                        help="Claude projects directory to watch")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--demo", action="store_true", help="Serve simulated sessions")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    args = parser.parse_args(argv)

    level = None
    if args.log_level:
        try:
            level = parse_log_level(args.log_level)
        except ValueError as e:
            parser.error(str(e))
    setup_logging(level)

    app = create_app(projects_dir=args.projects_dir, demo=args.demo)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
