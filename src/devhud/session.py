"""Session aggregator: folds tagged watcher events into live session state.

The aggregator is a state machine per session (starting, active, idle,
exited, archived) with an orthogonal needs-attention flag and a nested
machine per sub-agent. Events drive most transitions; ``tick()`` applies
the time-based ones (archival, staleness, sub-agent eviction). It has no
timer of its own: whoever embeds it calls ``process_event`` and ``tick``
on whatever cadence it likes.

Clocks are injectable so time-driven behaviour can be tested without
sleeping: ``monotonic`` for staleness/eviction, ``wall_clock`` for exit
and archival timestamps.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from typing_extensions import assert_never

from .config import (
    ACTIVITY_MAX_CHARS,
    ARCHIVE_GRACE_SECONDS,
    ATTENTION_THRESHOLD_SECONDS,
    MAX_VISIBLE_SESSIONS,
    SUBAGENT_CLEANUP_SECONDS,
    SUBAGENT_DESCRIPTION_MAX_CHARS,
    SUMMARY_MAX_CHARS,
)
from .events import (
    AgentSpawned,
    ContextCompaction,
    SessionEnd,
    SessionEvent,
    SessionStart,
    SubAgentSource,
    TaggedEvent,
    Thinking,
    TokenUsage,
    ToolCategory,
    ToolEnd,
    ToolProgress,
    ToolStart,
    TurnComplete,
    UserPrompt,
)
from .logging_config import get_logger
from .types import (
    ActiveToolInfo,
    ActivityEntryInfo,
    AggregatorSnapshot,
    SessionSnapshot,
    SubAgentInfo,
)
from .utils import format_time_hms, shorten_project, shorten_project_short, truncate_str

logger = get_logger(__name__, namespace='session')

THINKING_LABEL = "thinking..."
STARTING_LABEL = "starting..."


class SessionKind(str, Enum):
    TERMINAL = "terminal"
    CODE = "code"
    MARKDOWN = "markdown"


@dataclass(frozen=True)
class ActiveTool:
    tool_name: str
    tool_use_id: str
    category: ToolCategory
    description: str

    def to_dict(self) -> ActiveToolInfo:
        return {
            'toolName': self.tool_name,
            'toolUseId': self.tool_use_id,
            'category': self.category.value,
            'description': self.description,
        }


THINKING_TOOL = ActiveTool(
    tool_name="thinking",
    tool_use_id="",
    category=ToolCategory.THINKING,
    description=THINKING_LABEL,
)


@dataclass
class ActivityEntry:
    timestamp: str
    tool: str
    summary: str
    detail: str
    is_error: bool = False
    category: ToolCategory = ToolCategory.UNKNOWN

    def to_dict(self) -> ActivityEntryInfo:
        return {
            'timestamp': self.timestamp,
            'tool': self.tool,
            'summary': self.summary,
            'detail': self.detail,
            'isError': self.is_error,
            'category': self.category.value,
        }


@dataclass
class SubAgent:
    agent_id: str
    description: str = ""
    active: bool = True
    current_tool: ActiveTool | None = None
    activity: str = STARTING_LABEL
    last_event_time: float | None = None
    needs_attention: bool = False

    def to_dict(self, now: float | None = None) -> SubAgentInfo:
        info: SubAgentInfo = {
            'agentId': self.agent_id,
            'description': self.description,
            'active': self.active,
            'currentTool': self.current_tool.to_dict() if self.current_tool else None,
            'activity': self.activity,
            'needsAttention': self.needs_attention,
        }
        if now is not None and self.last_event_time is not None:
            info['idleSeconds'] = round(now - self.last_event_time, 3)
        return info


@dataclass
class Session:
    """Live state of one logical session. Invariant: archived implies exited_at."""
    session_id: str
    project_slug: str
    active: bool = True
    kind: SessionKind = SessionKind.CODE
    current_tool: ActiveTool | None = None
    activity: str = STARTING_LABEL
    exited_at: float | None = None
    archived: bool = False
    last_event_time: float | None = None
    needs_attention: bool = False
    subagents: list[SubAgent] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def exited(self) -> bool:
        return self.exited_at is not None

    def find_subagent(self, agent_id: str) -> SubAgent | None:
        for sub in self.subagents:
            if sub.agent_id == agent_id:
                return sub
        return None

    def to_dict(self, now: float | None = None) -> SessionSnapshot:
        snapshot: SessionSnapshot = {
            'sessionId': self.session_id,
            'projectSlug': self.project_slug,
            'project': shorten_project(self.project_slug),
            'projectShort': shorten_project_short(self.project_slug),
            'active': self.active,
            'kind': self.kind.value,
            'currentTool': self.current_tool.to_dict() if self.current_tool else None,
            'activity': self.activity,
            'exitedAt': self.exited_at,
            'archived': self.archived,
            'needsAttention': self.needs_attention,
            'subagents': [sub.to_dict(now) for sub in self.subagents],
            'tokens': {
                'input_tokens': self.input_tokens,
                'output_tokens': self.output_tokens,
                'cache_read_tokens': self.cache_read_tokens,
            },
        }
        if now is not None and self.last_event_time is not None:
            snapshot['idleSeconds'] = round(now - self.last_event_time, 3)
        return snapshot


class SessionAggregator:
    """Live, queryable view of every session the watcher reports."""

    def __init__(
        self,
        monotonic: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        archive_grace_seconds: float = ARCHIVE_GRACE_SECONDS,
        attention_threshold_seconds: float = ATTENTION_THRESHOLD_SECONDS,
        subagent_cleanup_seconds: float = SUBAGENT_CLEANUP_SECONDS,
    ):
        self._monotonic = monotonic
        self._wall_clock = wall_clock
        self.archive_grace_seconds = archive_grace_seconds
        self.attention_threshold_seconds = attention_threshold_seconds
        self.subagent_cleanup_seconds = subagent_cleanup_seconds

        self.sessions: list[Session] = []
        self.activity_logs: list[list[ActivityEntry]] = []
        self._index: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Session | None:
        idx = self._index.get(session_id)
        return self.sessions[idx] if idx is not None else None

    def activity_log(self, session_id: str) -> list[ActivityEntry] | None:
        idx = self._index.get(session_id)
        return self.activity_logs[idx] if idx is not None else None

    def visible_sessions(self, limit: int = MAX_VISIBLE_SESSIONS) -> list[Session]:
        """The most recently started non-archived sessions, oldest first."""
        live = [s for s in self.sessions if not s.archived]
        if limit <= 0:
            return []
        return live[-limit:]

    def archived_sessions(self) -> list[Session]:
        return [s for s in self.sessions if s.archived]

    def snapshot(self) -> AggregatorSnapshot:
        now = self._monotonic()
        return {
            'sessions': [s.to_dict(now) for s in self.sessions],
            'activity_logs': {
                s.session_id: [entry.to_dict() for entry in log]
                for s, log in zip(self.sessions, self.activity_logs)
            },
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }

    # ------------------------------------------------------------------
    # Time-driven transitions
    # ------------------------------------------------------------------

    def tick(self) -> None:
        """Apply archival, staleness and sub-agent eviction policies."""
        now_wall = self._wall_clock()
        now = self._monotonic()

        for session in self.sessions:
            if session.exited_at is not None and not session.archived:
                if now_wall - session.exited_at >= self.archive_grace_seconds:
                    session.archived = True
                    logger.info("Archived session %s", session.session_id,
                                extra={'session_id': session.session_id})

            # Thinking can run long without any heartbeat, so it never goes stale
            if not session.needs_attention and self._is_stale(
                session.current_tool, session.last_event_time, now
            ):
                session.needs_attention = True
                logger.debug("Session %s needs attention", session.session_id,
                             extra={'session_id': session.session_id})

            for sub in session.subagents:
                if sub.active and not sub.needs_attention and self._is_stale(
                    sub.current_tool, sub.last_event_time, now
                ):
                    sub.needs_attention = True

            session.subagents = [
                sub for sub in session.subagents if not self._should_evict(sub, now)
            ]

    def _is_stale(self, tool: ActiveTool | None, last_event: float | None, now: float) -> bool:
        if tool is None or tool.category == ToolCategory.THINKING or last_event is None:
            return False
        return now - last_event >= self.attention_threshold_seconds

    def _should_evict(self, sub: SubAgent, now: float) -> bool:
        if sub.active or sub.needs_attention or sub.last_event_time is None:
            return False
        return now - sub.last_event_time >= self.subagent_cleanup_seconds

    # ------------------------------------------------------------------
    # Event-driven transitions
    # ------------------------------------------------------------------

    def process_events(self, events: list[TaggedEvent]) -> None:
        for tagged in events:
            self.process_event(tagged)

    def process_event(self, tagged: TaggedEvent) -> None:
        """Core state machine: process a tagged event from the watcher."""
        session_id = tagged.session_id
        event = tagged.event

        if isinstance(tagged.source, SubAgentSource):
            idx = self._index.get(session_id)
            if idx is not None:
                self._process_subagent_event(self.sessions[idx], tagged.source.agent_id, event)
            return

        idx = self._index.get(session_id)
        if idx is not None:
            session = self.sessions[idx]
            if session.exited_at is None:
                session.last_event_time = self._monotonic()
                session.needs_attention = False

        if isinstance(event, SessionStart):
            if idx is not None:
                return
            self._start_session(session_id, event.project)
            return

        if idx is None:
            logger.debug("Dropping %s for unknown session %s", event.kind, session_id)
            return

        session = self.sessions[idx]
        log = self.activity_logs[idx]

        if isinstance(event, UserPrompt):
            if session.exited:
                return
            session.active = True
            session.activity = truncate_str(event.text, ACTIVITY_MAX_CHARS)
            log.append(self._entry("User", event.text, ToolCategory.UNKNOWN))

        elif isinstance(event, ToolStart):
            if session.exited:
                return
            session.active = True
            session.activity = f"{event.tool_name}({event.description})"
            session.current_tool = ActiveTool(
                tool_name=event.tool_name,
                tool_use_id=event.tool_use_id,
                category=event.category,
                description=event.description,
            )
            if event.category == ToolCategory.AWAITING:
                session.needs_attention = True
            log.append(self._entry(event.tool_name, event.description, event.category))

        elif isinstance(event, ToolEnd):
            if session.current_tool is not None and session.current_tool.tool_use_id == event.tool_use_id:
                session.current_tool = None
            if event.is_error and log:
                last = log[-1]
                last.is_error = True
                if event.error_message is not None:
                    last.detail = event.error_message

        elif isinstance(event, Thinking):
            session.active = True
            session.activity = THINKING_LABEL
            session.current_tool = THINKING_TOOL

        elif isinstance(event, TurnComplete):
            session.active = False
            session.activity = "idle"
            session.current_tool = None
            # Finished sub-agents won't produce more events
            session.subagents = [s for s in session.subagents if s.active or s.needs_attention]

        elif isinstance(event, AgentSpawned):
            log.append(self._entry("Agent", event.description, ToolCategory.SPAWNING))

        elif isinstance(event, ContextCompaction):
            session.active = True
            session.activity = "compacting context..."
            log.append(self._entry(
                "System",
                "context compaction",
                ToolCategory.UNKNOWN,
                detail="Context window compacted to free space",
            ))

        elif isinstance(event, TokenUsage):
            session.input_tokens += event.input_tokens
            session.output_tokens += event.output_tokens
            session.cache_read_tokens += event.cache_read_tokens

        elif isinstance(event, ToolProgress):
            pass  # heartbeat; timestamp already refreshed

        elif isinstance(event, SessionEnd):
            session.active = False
            session.current_tool = None
            session.activity = "session ended"
            session.exited_at = self._wall_clock()
            log.append(self._entry(
                "System",
                "session exited (/exit)",
                ToolCategory.UNKNOWN,
                detail="User ran /exit to end the session",
            ))
            logger.info("Session %s ended", session_id, extra={'session_id': session_id})

        else:
            assert_never(event)

    def _start_session(self, session_id: str, project: str) -> None:
        self._index[session_id] = len(self.sessions)
        self.sessions.append(Session(
            session_id=session_id,
            project_slug=project,
            last_event_time=self._monotonic(),
        ))
        self.activity_logs.append([])
        logger.info("Tracking session %s (%s)", session_id, project,
                    extra={'session_id': session_id})

    def _process_subagent_event(self, session: Session, agent_id: str, event: SessionEvent) -> None:
        sub = session.find_subagent(agent_id)
        if sub is None:
            sub = SubAgent(agent_id=agent_id)
            session.subagents.append(sub)

        sub.last_event_time = self._monotonic()
        sub.needs_attention = False

        if isinstance(event, UserPrompt):
            if not sub.description:
                sub.description = truncate_str(event.text, SUBAGENT_DESCRIPTION_MAX_CHARS)
            sub.active = True
            sub.activity = truncate_str(event.text, ACTIVITY_MAX_CHARS)

        elif isinstance(event, ToolStart):
            sub.active = True
            sub.activity = f"{event.tool_name}({event.description})"
            sub.current_tool = ActiveTool(
                tool_name=event.tool_name,
                tool_use_id=event.tool_use_id,
                category=event.category,
                description=event.description,
            )
            if event.category == ToolCategory.AWAITING:
                sub.needs_attention = True

        elif isinstance(event, ToolEnd):
            if sub.current_tool is not None and sub.current_tool.tool_use_id == event.tool_use_id:
                sub.current_tool = None

        elif isinstance(event, Thinking):
            sub.active = True
            sub.activity = THINKING_LABEL
            sub.current_tool = THINKING_TOOL

        elif isinstance(event, TurnComplete):
            sub.active = False
            sub.current_tool = None
            sub.activity = "done"

        elif isinstance(event, (SessionStart, AgentSpawned, ContextCompaction,
                                TokenUsage, ToolProgress, SessionEnd)):
            pass

        else:
            assert_never(event)

    def _entry(
        self,
        tool: str,
        text: str,
        category: ToolCategory,
        detail: str | None = None,
    ) -> ActivityEntry:
        return ActivityEntry(
            timestamp=format_time_hms(self._wall_clock()),
            tool=tool,
            summary=truncate_str(text, SUMMARY_MAX_CHARS),
            detail=text if detail is None else detail,
            category=category,
        )
