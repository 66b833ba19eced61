"""Simulated sessions for working on the HUD without live Claude logs."""

from .events import (
    AgentSpawned,
    SessionStart,
    SubAgentSource,
    TaggedEvent,
    Thinking,
    ToolCategory,
    ToolEnd,
    ToolStart,
    TurnComplete,
    UserPrompt,
)
from .logging_config import get_logger
from .session import SessionAggregator, SessionKind

logger = get_logger(__name__, namespace='session')


def demo_events() -> list[TaggedEvent]:
    """Event script that leaves four sessions in different states."""
    s1 = "demo-0000-0000-0000-000000000001"
    s2 = "demo-0000-0000-0000-000000000002"
    s3 = "demo-0000-0000-0000-000000000003"
    s4 = "demo-0000-0000-0000-000000000004"
    agent = SubAgentSource(agent_id="agent-demo1")

    return [
        TaggedEvent(s1, SessionStart(s1, "-home-user-my-repo-1")),
        TaggedEvent(s1, UserPrompt("find the fix commits from last week")),
        TaggedEvent(s1, ToolStart(
            "Bash", "demo_bash_1", ToolCategory.RUNNING,
            "git log --oneline | grep '^fix' > /tmp/out",
        )),

        TaggedEvent(s2, SessionStart(s2, "-home-user-my-repo-2")),
        TaggedEvent(s2, UserPrompt("filter out null items")),
        TaggedEvent(s2, ToolStart(
            "Write", "demo_write_1", ToolCategory.WRITING, ".../src/items.ts",
        )),

        TaggedEvent(s3, SessionStart(s3, "-home-user-my-repo-3")),
        TaggedEvent(s3, UserPrompt("update the README")),
        TaggedEvent(s3, ToolStart(
            "Write", "demo_write_2", ToolCategory.WRITING, ".../appointment-view/README.md",
        )),
        TaggedEvent(s3, ToolEnd("demo_write_2")),
        TaggedEvent(s3, TurnComplete(duration_ms=4200)),

        TaggedEvent(s4, SessionStart(s4, "-home-user-my-repo-4")),
        TaggedEvent(s4, UserPrompt("audit the test suite")),
        TaggedEvent(s4, AgentSpawned("demo_task_1", "review flaky tests")),
        TaggedEvent(s4, ToolStart(
            "Task", "demo_task_1", ToolCategory.SPAWNING, "review flaky tests",
        )),
        TaggedEvent(s4, UserPrompt("review flaky tests in tests/"), agent),
        TaggedEvent(s4, Thinking(), agent),
        TaggedEvent(s4, ToolStart(
            "AskUserQuestion", "demo_ask_1", ToolCategory.AWAITING, "asking user",
        )),
    ]


def create_demo_aggregator() -> SessionAggregator:
    """Build an aggregator populated with simulated sessions."""
    logger.info("Demo mode: 4 simulated sessions")
    aggregator = SessionAggregator()
    aggregator.process_events(demo_events())

    kinds = [SessionKind.TERMINAL, SessionKind.CODE, SessionKind.MARKDOWN, SessionKind.CODE]
    for session, kind in zip(aggregator.sessions, kinds):
        session.kind = kind
    return aggregator
