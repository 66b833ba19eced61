"""Domain events produced by the JSONL watcher and consumed by the aggregator.

The event set is closed: ``SessionEvent`` is the union of the dataclasses
below, and consumers dispatch on it with an ``assert_never`` fallback so
that a new event kind has to be handled everywhere it is matched.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import ClassVar, Union


class ToolCategory(str, Enum):
    """Coarse grouping of Claude Code tools, used for icons and attention rules."""

    READING = "reading"
    WRITING = "writing"
    RUNNING = "running"
    SPAWNING = "spawning"
    WEB = "web"
    MCP = "mcp"
    AWAITING = "awaiting"
    THINKING = "thinking"
    UNKNOWN = "unknown"

    @classmethod
    def from_tool_name(cls, name: str) -> "ToolCategory":
        return classify(name)


READING_TOOLS = frozenset({
    "Read", "Glob", "Grep", "ListMcpResourcesTool", "ReadMcpResourceTool", "ToolSearch",
})
WRITING_TOOLS = frozenset({"Edit", "Write", "NotebookEdit", "MultiEdit"})
RUNNING_TOOLS = frozenset({"Bash"})
SPAWNING_TOOLS = frozenset({
    "Task", "TaskCreate", "TaskUpdate", "TaskList", "TaskGet", "TaskOutput",
    "TaskStop", "SendMessage", "TeamCreate", "TeamDelete", "EnterWorktree",
})
WEB_TOOLS = frozenset({"WebSearch", "WebFetch"})
AWAITING_TOOLS = frozenset({"AskUserQuestion"})

# Tools whose invocation starts a sub-agent with its own log file
AGENT_SPAWN_TOOLS = frozenset({"Task", "TaskCreate"})

MCP_PREFIX = "mcp__"

_EXACT_RULES = (
    (READING_TOOLS, ToolCategory.READING),
    (WRITING_TOOLS, ToolCategory.WRITING),
    (RUNNING_TOOLS, ToolCategory.RUNNING),
    (SPAWNING_TOOLS, ToolCategory.SPAWNING),
    (WEB_TOOLS, ToolCategory.WEB),
    (AWAITING_TOOLS, ToolCategory.AWAITING),
)


def classify(tool_name: str) -> ToolCategory:
    """Map a tool name to its category. Case-sensitive; never fails."""
    for names, category in _EXACT_RULES:
        if tool_name in names:
            return category
    if tool_name.startswith(MCP_PREFIX):
        return ToolCategory.MCP
    return ToolCategory.UNKNOWN


# ============================================================================
# Session events
# ============================================================================


class _Event:
    """Mixin giving every event a stable ``kind`` and a JSON-friendly dict."""

    kind: ClassVar[str] = ""

    def to_dict(self) -> dict:
        data = {"kind": self.kind}
        for key, value in asdict(self).items():
            data[key] = value.value if isinstance(value, Enum) else value
        return data


@dataclass(frozen=True)
class SessionStart(_Event):
    """A new session was detected on disk."""
    kind: ClassVar[str] = "session_start"
    session_id: str
    project: str
    timestamp: str = ""


@dataclass(frozen=True)
class UserPrompt(_Event):
    """The user typed a prompt."""
    kind: ClassVar[str] = "user_prompt"
    text: str


@dataclass(frozen=True)
class ToolStart(_Event):
    kind: ClassVar[str] = "tool_start"
    tool_name: str
    tool_use_id: str
    category: ToolCategory
    description: str


@dataclass(frozen=True)
class ToolEnd(_Event):
    kind: ClassVar[str] = "tool_end"
    tool_use_id: str
    is_error: bool = False
    error_message: str | None = None


@dataclass(frozen=True)
class AgentSpawned(_Event):
    """A sub-agent was spawned (Task tool)."""
    kind: ClassVar[str] = "agent_spawned"
    agent_id: str
    description: str


@dataclass(frozen=True)
class ContextCompaction(_Event):
    kind: ClassVar[str] = "context_compaction"


@dataclass(frozen=True)
class TurnComplete(_Event):
    kind: ClassVar[str] = "turn_complete"
    duration_ms: int


@dataclass(frozen=True)
class TokenUsage(_Event):
    kind: ClassVar[str] = "token_usage"
    input_tokens: int
    output_tokens: int
    cache_read_tokens: int = 0


@dataclass(frozen=True)
class Thinking(_Event):
    kind: ClassVar[str] = "thinking"


@dataclass(frozen=True)
class SessionEnd(_Event):
    """The user ended the session (/exit)."""
    kind: ClassVar[str] = "session_end"


@dataclass(frozen=True)
class ToolProgress(_Event):
    """Heartbeat emitted while a long-running tool is still working."""
    kind: ClassVar[str] = "tool_progress"


SessionEvent = Union[
    SessionStart,
    UserPrompt,
    ToolStart,
    ToolEnd,
    AgentSpawned,
    ContextCompaction,
    TurnComplete,
    TokenUsage,
    Thinking,
    SessionEnd,
    ToolProgress,
]


# ============================================================================
# Event sources and tagging
# ============================================================================


@dataclass(frozen=True)
class MainSource:
    """Event read from the session's main JSONL file."""

    def to_dict(self) -> dict:
        return {"type": "main"}


@dataclass(frozen=True)
class SubAgentSource:
    """Event read from a sub-agent JSONL file; agent_id is the file stem."""
    agent_id: str

    def to_dict(self) -> dict:
        return {"type": "subagent", "agentId": self.agent_id}


EventSource = Union[MainSource, SubAgentSource]

MAIN = MainSource()


@dataclass(frozen=True)
class TaggedEvent:
    """A SessionEvent tagged with the session it belongs to and its source."""
    session_id: str
    event: SessionEvent
    source: EventSource = field(default=MAIN)

    def to_dict(self) -> dict:
        return {
            'sessionId': self.session_id,
            'event': self.event.to_dict(),
            'source': self.source.to_dict(),
        }
