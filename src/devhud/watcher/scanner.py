"""Session discovery and incremental reading of session JSONL files.

Layout under the projects dir:

    <projects>/<project-slug>/<session-id>.jsonl
    <projects>/<project-slug>/<session-id>/subagents/<agent-id>.jsonl

A Scanner tails one session: its main file plus every sub-agent file that
appears under the session's subagents folder. Byte offsets are kept per
file so each poll only parses what was appended since the last one.
"""

import os
import time
from dataclasses import dataclass
from pathlib import Path

from ..config import ACTIVE_SESSION_WINDOW_SECONDS, SUBAGENTS_DIRNAME
from ..errors import ScannerError
from ..events import MAIN, EventSource, SessionEvent, SubAgentSource
from ..logging_config import get_logger
from ..utils import parse_jsonl_line
from .parser import Parser

logger = get_logger(__name__, namespace='scanner')


@dataclass
class SessionInfo:
    """Metadata about a discovered session file."""
    path: Path
    session_id: str
    project_slug: str
    modified: float


@dataclass
class TrackedFile:
    """A file being tailed; bytes [0, offset) have been parsed exactly once."""
    path: Path
    offset: int = 0


def read_new_lines(tracked: TrackedFile, parser: Parser, events: list[SessionEvent]) -> None:
    """Parse lines appended to a tracked file since its stored offset.

    Parsed events are appended to ``events`` in file order. The offset is
    advanced after each consumed line, so it always matches what was
    actually parsed. A missing file or one that is not longer than the
    offset means there is nothing new. A line that fails to parse is
    logged and skipped. An unterminated last line is only
    consumed once it is complete JSON; otherwise it waits for the next
    call.

    Raises:
        ScannerError: for I/O failures other than the file being absent.
    """
    try:
        f = open(tracked.path, 'rb')
    except FileNotFoundError:
        return
    except OSError as e:
        raise ScannerError(tracked.path, e) from e

    with f:
        try:
            if os.fstat(f.fileno()).st_size <= tracked.offset:
                return
            f.seek(tracked.offset)

            for raw in f:
                if not raw.endswith(b'\n') and parse_jsonl_line(raw) is None:
                    # Writer is mid-line; pick it up on the next poll
                    break
                tracked.offset += len(raw)

                line = raw.decode('utf-8', errors='replace').strip()
                if not line:
                    continue
                try:
                    events.extend(parser.parse_line(line))
                except Exception:
                    # Skip this line only
                    logger.exception("Failed to parse line in %s", tracked.path)
        except OSError as e:
            raise ScannerError(tracked.path, e) from e


class Scanner:
    """Incrementally reads one session's main and sub-agent JSONL files."""

    def __init__(self, path: Path, session_id: str, project_slug: str):
        self.session_id = session_id
        self.project_slug = project_slug
        self.parser = Parser()
        # Always start at 0 so consumers get the full session history
        self.main_file: TrackedFile | None = TrackedFile(Path(path))
        self.subagent_files: dict[str, TrackedFile] = {}
        self.subagents_dir: Path | None = None

        candidate = self._subagents_candidate()
        if candidate is not None and candidate.is_dir():
            self.subagents_dir = candidate

        logger.info("Watching session %s in project %s", session_id, project_slug,
                    extra={'session_id': session_id})

    @classmethod
    def from_session_info(cls, info: SessionInfo) -> "Scanner":
        return cls(info.path, info.session_id, info.project_slug)

    def poll(self) -> list[SessionEvent]:
        """Read new lines from all tracked files and return parsed events."""
        return [event for _, event in self.poll_sourced()]

    def poll_sourced(self) -> list[tuple[EventSource, SessionEvent]]:
        """Like poll(), but pairs each event with the file it came from.

        Main-file events come first, then sub-agent files in the order
        they were discovered.
        """
        results: list[tuple[EventSource, SessionEvent]] = []

        if self.main_file is not None:
            events: list[SessionEvent] = []
            try:
                read_new_lines(self.main_file, self.parser, events)
            except ScannerError as e:
                logger.warning("Error reading main file of %s: %s", self.session_id, e,
                               extra={'session_id': self.session_id})
            results.extend((MAIN, event) for event in events)

        self._discover_subagent_files()

        for filename, tracked in self.subagent_files.items():
            events = []
            try:
                read_new_lines(tracked, self.parser, events)
            except ScannerError as e:
                logger.warning("Error reading subagent file %s: %s", filename, e,
                               extra={'session_id': self.session_id})
            source = SubAgentSource(agent_id=tracked.path.stem)
            results.extend((source, event) for event in events)

        return results

    def _subagents_candidate(self) -> Path | None:
        if self.main_file is None:
            return None
        return self.main_file.path.parent / self.session_id / SUBAGENTS_DIRNAME

    def _discover_subagent_files(self) -> None:
        if self.subagents_dir is None:
            # The folder may be created after the session starts
            candidate = self._subagents_candidate()
            if candidate is None or not candidate.is_dir():
                return
            self.subagents_dir = candidate
            logger.debug("Found subagents dir for %s", self.session_id)

        try:
            paths = sorted(self.subagents_dir.glob('*.jsonl'))
        except OSError as e:
            logger.debug("Cannot list %s: %s", self.subagents_dir, e)
            return

        for path in paths:
            if path.name in self.subagent_files:
                continue
            logger.debug("Tracking subagent file %s for %s", path.name, self.session_id)
            self.subagent_files[path.name] = TrackedFile(path)


def discover_active_sessions(
    projects_dir: Path,
    now: float | None = None,
    window_seconds: float = ACTIVE_SESSION_WINDOW_SECONDS,
) -> list[SessionInfo]:
    """Scan all projects for recently-active sessions.

    A session is active if its JSONL file was modified within
    ``window_seconds`` of ``now``. Results are sorted most recent first.
    Unreadable directories and files are skipped.
    """
    if now is None:
        now = time.time()

    sessions: list[SessionInfo] = []
    try:
        project_dirs = list(Path(projects_dir).iterdir())
    except OSError as e:
        logger.debug("Cannot list %s: %s", projects_dir, e)
        return sessions

    for project_dir in project_dirs:
        try:
            if not project_dir.is_dir():
                continue
            candidates = list(project_dir.glob('*.jsonl'))
        except OSError:
            continue

        for jsonl_file in candidates:
            try:
                modified = jsonl_file.stat().st_mtime
            except OSError:
                continue
            if now - modified > window_seconds:
                continue

            sessions.append(SessionInfo(
                path=jsonl_file,
                session_id=jsonl_file.stem,
                project_slug=project_dir.name,
                modified=modified,
            ))

    sessions.sort(key=lambda s: s.modified, reverse=True)
    return sessions
