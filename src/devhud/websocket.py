"""WebSocket connection management and the event pump.

The pump is the embedding loop for the aggregator: on a fixed cadence it
drains the watcher, folds events into the aggregator, ticks the time-based
policies and pushes updates to connected clients.
"""

import asyncio
import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable

from fastapi import WebSocket

from .config import LOG_HISTORY_ON_SUBSCRIBE, TICK_INTERVAL_SECONDS
from .events import TaggedEvent
from .logging_config import LogEntry, get_log_handler, get_logger
from .session import SessionAggregator

logger = get_logger(__name__, namespace='ws')


@dataclass
class LogSubscription:
    """A client's log stream filter. Empty sets mean no filtering."""
    websocket: WebSocket
    namespaces: set[str] = field(default_factory=set)
    session_ids: set[str] = field(default_factory=set)

    def wants(self, log_entry: dict) -> bool:
        if self.namespaces and log_entry.get('namespace', 'general') not in self.namespaces:
            return False
        if self.session_ids and log_entry.get('sessionId') not in self.session_ids:
            return False
        return True


@dataclass
class ConnectionManager:
    """Tracks HUD clients and fans session updates and logs out to them."""
    active_connections: list[WebSocket] = field(default_factory=list)
    log_subscribers: dict[WebSocket, LogSubscription] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self.active_connections.append(websocket)
        logger.info("Client connected. Total: %d", len(self.active_connections))

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            if websocket in self.active_connections:
                self.active_connections.remove(websocket)
            self.log_subscribers.pop(websocket, None)
        logger.info("Client disconnected. Total: %d", len(self.active_connections))

    async def _send_each(
        self,
        targets: Iterable[WebSocket],
        send: Callable[[WebSocket], Awaitable[None]],
    ):
        """Send to every target; clients whose send fails are disconnected."""
        failed = []
        async with self._lock:
            for ws in list(targets):
                try:
                    await send(ws)
                except Exception:
                    failed.append(ws)
        for ws in failed:
            await self.disconnect(ws)

    async def broadcast(self, message: dict):
        """Broadcast message to all connected clients."""
        if not self.active_connections:
            return
        data = json.dumps(message)
        await self._send_each(self.active_connections, lambda ws: ws.send_text(data))

    async def subscribe_to_logs(
        self,
        websocket: WebSocket,
        enabled: bool = True,
        namespaces: list[str] | None = None,
        session_ids: list[str] | None = None,
    ):
        """Start or stop streaming logs to a client.

        Subscribing replies with a 'log_history' message holding the
        buffered entries that pass the filter.

        Args:
            websocket: The WebSocket connection
            enabled: False removes the subscription
            namespaces: Only these namespaces (None = all)
            session_ids: Only entries logged for these sessions (None = all)
        """
        async with self._lock:
            if not enabled:
                self.log_subscribers.pop(websocket, None)
                return
            subscription = LogSubscription(
                websocket=websocket,
                namespaces=set(namespaces or ()),
                session_ids=set(session_ids or ()),
            )
            self.log_subscribers[websocket] = subscription
            history = [
                entry for entry in get_log_handler().get_history(LOG_HISTORY_ON_SUBSCRIBE)
                if subscription.wants(entry)
            ]
            await websocket.send_json({
                'type': 'log_history',
                'logs': history,
                'count': len(history),
            })

    async def broadcast_log(self, log_entry: dict):
        """Send a log entry to every subscriber whose filter accepts it."""
        if not self.log_subscribers:
            return
        message = {'type': 'log', 'log': log_entry}
        targets = [ws for ws, sub in self.log_subscribers.items() if sub.wants(log_entry)]
        await self._send_each(targets, lambda ws: ws.send_json(message))

    @property
    def connection_count(self) -> int:
        return len(self.active_connections)

    @property
    def log_subscriber_count(self) -> int:
        return len(self.log_subscribers)


def make_log_broadcaster(
    manager: ConnectionManager,
    loop: asyncio.AbstractEventLoop,
) -> Callable[[LogEntry], None]:
    """Build a log-handler callback that is safe to call from any thread.

    The watcher logs from its own thread, so entries are handed to the
    event loop rather than awaited in place.
    """
    def broadcast(entry: LogEntry) -> None:
        if not manager.log_subscribers or loop.is_closed():
            return
        asyncio.run_coroutine_threadsafe(manager.broadcast_log(entry.to_dict()), loop)

    return broadcast


def compute_sessions_hash(sessions: list[dict]) -> str:
    """Hash the parts of session snapshots a HUD redraws on.

    idleSeconds is left out so a ticking clock alone is not a change.
    """
    key_data = [
        {
            'sessionId': s.get('sessionId'),
            'active': s.get('active'),
            'activity': s.get('activity'),
            'currentTool': s.get('currentTool'),
            'needsAttention': s.get('needsAttention'),
            'archived': s.get('archived'),
            'subagents': [
                (sub.get('agentId'), sub.get('active'), sub.get('activity'), sub.get('needsAttention'))
                for sub in s.get('subagents', [])
            ],
        }
        for s in sessions
    ]
    return hashlib.md5(json.dumps(key_data, sort_keys=True).encode()).hexdigest()


def pump_once(
    drain: Callable[[], list[TaggedEvent]],
    aggregator: SessionAggregator,
) -> list[TaggedEvent]:
    """Drain pending events into the aggregator and tick it once."""
    events = drain()
    aggregator.process_events(events)
    aggregator.tick()
    return events


async def pump_events_loop(
    ws_manager: ConnectionManager,
    aggregator: SessionAggregator,
    drain: Callable[[], list[TaggedEvent]],
    interval: float = TICK_INTERVAL_SECONDS,
):
    """Background task feeding the aggregator and broadcasting updates.

    Each round forwards the drained events as 'event' messages and sends a
    'sessions_update' whenever the visible session state changed.

    Args:
        ws_manager: WebSocket connection manager
        aggregator: Session state machine to feed
        drain: Non-blocking source of tagged events (WatcherHandle.drain_events)
        interval: Seconds between drain + tick rounds
    """
    last_sessions_hash = ""
    logger.info("Starting event pump (interval=%ss)", interval)

    while True:
        try:
            events = pump_once(drain, aggregator)

            if ws_manager.connection_count > 0:
                for tagged in events:
                    await ws_manager.broadcast({'type': 'event', **tagged.to_dict()})

                sessions = aggregator.snapshot()['sessions']
                current_hash = compute_sessions_hash(sessions)
                if current_hash != last_sessions_hash:
                    last_sessions_hash = current_hash
                    await ws_manager.broadcast({
                        'type': 'sessions_update',
                        'sessions': sessions,
                        'timestamp': datetime.now(timezone.utc).isoformat(),
                    })

            await asyncio.sleep(interval)

        except asyncio.CancelledError:
            logger.info("Event pump cancelled")
            break
        except Exception:
            logger.exception("Error in event pump")
            await asyncio.sleep(interval)
