"""Multi-session watcher: one background thread tailing every active session.

``MultiSessionWatcher`` holds the scanners and does one synchronous poll or
rescan at a time. ``WatcherHandle.spawn`` runs it on a daemon thread and
hands events to the consumer through a queue that is drained without
blocking.
"""

import queue
import threading
import weakref
from pathlib import Path

from ..config import (
    ACTIVE_SESSION_WINDOW_SECONDS,
    POLL_INTERVAL_SECONDS,
    RESCAN_INTERVAL_POLLS,
)
from ..errors import WatcherError
from ..events import MAIN, SessionStart, TaggedEvent
from ..logging_config import get_logger
from ..utils import format_time_hms
from .scanner import Scanner, SessionInfo, discover_active_sessions

logger = get_logger(__name__, namespace='watcher')


class MultiSessionWatcher:
    """Tracks a growing set of session scanners under one projects dir."""

    def __init__(
        self,
        projects_dir: Path,
        active_window_seconds: float = ACTIVE_SESSION_WINDOW_SECONDS,
    ):
        self.projects_dir = Path(projects_dir)
        self.active_window_seconds = active_window_seconds
        self.scanners: list[Scanner] = []
        self.known_ids: set[str] = set()

    def discover(self, now: float | None = None) -> list[TaggedEvent]:
        """Add scanners for active sessions not seen before.

        Returns a SessionStart for each newly tracked session. Sessions
        already known are never added twice.
        """
        started: list[TaggedEvent] = []
        fresh = discover_active_sessions(
            self.projects_dir, now=now, window_seconds=self.active_window_seconds
        )
        for info in fresh:
            if info.session_id in self.known_ids:
                continue
            event = self._track(info)
            if event is not None:
                started.append(event)
        return started

    def _track(self, info: SessionInfo) -> TaggedEvent | None:
        try:
            scanner = Scanner.from_session_info(info)
        except Exception:
            # e.g. the file vanished between listing and construction
            logger.exception("Failed to watch session %s", info.session_id)
            return None

        self.known_ids.add(info.session_id)
        self.scanners.append(scanner)
        return TaggedEvent(
            session_id=info.session_id,
            event=SessionStart(
                session_id=info.session_id,
                project=info.project_slug,
                timestamp=format_time_hms(),
            ),
            source=MAIN,
        )

    def poll(self) -> list[TaggedEvent]:
        """Poll every scanner once, in discovery order."""
        tagged: list[TaggedEvent] = []
        for scanner in self.scanners:
            try:
                sourced = scanner.poll_sourced()
            except Exception:
                logger.exception("Error polling session %s", scanner.session_id,
                                 extra={'session_id': scanner.session_id})
                continue
            tagged.extend(
                TaggedEvent(session_id=scanner.session_id, event=event, source=source)
                for source, event in sourced
            )
        return tagged


def _watch_loop(
    watcher: MultiSessionWatcher,
    events: "queue.SimpleQueue[TaggedEvent]",
    stop: threading.Event,
    poll_interval: float,
    rescan_interval_polls: int,
) -> None:
    poll_count = 0
    while not stop.is_set():
        for tagged in watcher.poll():
            events.put(tagged)

        poll_count += 1
        if rescan_interval_polls > 0 and poll_count % rescan_interval_polls == 0:
            try:
                started = watcher.discover()
            except Exception:
                logger.exception("Rescan of %s failed", watcher.projects_dir)
                started = []
            for tagged in started:
                logger.info("New session discovered: %s", tagged.session_id)
                events.put(tagged)

        stop.wait(poll_interval)

    logger.info("Watcher thread stopped")


class WatcherHandle:
    """Handle to the background multi-session watcher thread.

    Dropping the handle (or calling close()) stops the thread within one
    poll interval.
    """

    def __init__(
        self,
        watcher: MultiSessionWatcher,
        events: "queue.SimpleQueue[TaggedEvent]",
        stop: threading.Event,
        thread: threading.Thread,
    ):
        self.watcher = watcher
        self._events = events
        self._stop = stop
        self._thread = thread
        weakref.finalize(self, stop.set)

    @classmethod
    def spawn(
        cls,
        projects_dir: Path,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        rescan_interval_polls: int = RESCAN_INTERVAL_POLLS,
        active_window_seconds: float = ACTIVE_SESSION_WINDOW_SECONDS,
    ) -> "WatcherHandle":
        """Spawn a watcher that monitors all active sessions under projects_dir.

        SessionStart events for the sessions found at startup are queued
        before this returns.

        Raises:
            WatcherError: if projects_dir does not exist.
        """
        projects_dir = Path(projects_dir)
        if not projects_dir.exists():
            raise WatcherError(f"Projects dir not found: {projects_dir}")

        watcher = MultiSessionWatcher(projects_dir, active_window_seconds)
        events: "queue.SimpleQueue[TaggedEvent]" = queue.SimpleQueue()
        for tagged in watcher.discover():
            events.put(tagged)
        logger.info("Discovered %d active session(s)", len(watcher.known_ids))

        stop = threading.Event()
        thread = threading.Thread(
            target=_watch_loop,
            args=(watcher, events, stop, poll_interval, rescan_interval_polls),
            name="devhud-watcher",
            daemon=True,
        )
        thread.start()
        return cls(watcher, events, stop, thread)

    def drain_events(self) -> list[TaggedEvent]:
        """Return every event queued since the last call. Never blocks."""
        drained: list[TaggedEvent] = []
        while True:
            try:
                drained.append(self._events.get_nowait())
            except queue.Empty:
                return drained

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive()

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop the background thread and wait for it to exit."""
        self._stop.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def __enter__(self) -> "WatcherHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
