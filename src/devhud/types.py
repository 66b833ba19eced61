"""Type definitions for dev-hud snapshots.

TypedDict definitions documenting the plain-dict shapes the session
aggregator hands to the API layer.
"""

from typing import TypedDict
from typing_extensions import NotRequired


class ActiveToolInfo(TypedDict):
    """The tool a session or sub-agent is currently running."""
    toolName: str
    toolUseId: str
    category: str
    description: str


class SubAgentInfo(TypedDict):
    agentId: str
    description: str
    active: bool
    currentTool: ActiveToolInfo | None
    activity: str
    needsAttention: bool
    idleSeconds: NotRequired[float | None]


class TokenTotals(TypedDict):
    """Cumulative token usage of a session."""
    input_tokens: int
    output_tokens: int
    cache_read_tokens: int


class SessionSnapshot(TypedDict):
    """Live state of one session."""
    sessionId: str
    projectSlug: str
    project: str  # last two slug components
    projectShort: str  # last slug component, for compact HUD tiles
    active: bool
    kind: str  # 'terminal', 'code', 'markdown'
    currentTool: ActiveToolInfo | None
    activity: str
    exitedAt: float | None
    archived: bool
    needsAttention: bool
    subagents: list[SubAgentInfo]
    tokens: TokenTotals
    idleSeconds: NotRequired[float | None]


class ActivityEntryInfo(TypedDict):
    """One line of a session's activity log."""
    timestamp: str  # HH:MM:SS UTC
    tool: str
    summary: str
    detail: str
    isError: bool
    category: str


class AggregatorSnapshot(TypedDict):
    sessions: list[SessionSnapshot]
    activity_logs: dict[str, list[ActivityEntryInfo]]
    timestamp: str  # ISO timestamp
