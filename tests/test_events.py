"""Tests for the event taxonomy and tool classification."""

import pytest

from devhud.events import (
    MAIN,
    MainSource,
    SessionStart,
    SubAgentSource,
    TaggedEvent,
    Thinking,
    ToolCategory,
    ToolEnd,
    ToolStart,
    classify,
)


class TestClassify:
    """Tests for classify function."""

    @pytest.mark.parametrize("name", [
        "Read", "Glob", "Grep", "ListMcpResourcesTool", "ReadMcpResourceTool", "ToolSearch",
    ])
    def test_reading_tools(self, name):
        assert classify(name) == ToolCategory.READING

    @pytest.mark.parametrize("name", ["Edit", "Write", "NotebookEdit", "MultiEdit"])
    def test_writing_tools(self, name):
        assert classify(name) == ToolCategory.WRITING

    def test_running_tools(self):
        assert classify("Bash") == ToolCategory.RUNNING

    @pytest.mark.parametrize("name", [
        "Task", "TaskCreate", "TaskUpdate", "TaskList", "TaskGet", "TaskOutput",
        "TaskStop", "SendMessage", "TeamCreate", "TeamDelete", "EnterWorktree",
    ])
    def test_spawning_tools(self, name):
        assert classify(name) == ToolCategory.SPAWNING

    def test_web_tools(self):
        assert classify("WebSearch") == ToolCategory.WEB
        assert classify("WebFetch") == ToolCategory.WEB

    def test_awaiting_tools(self):
        assert classify("AskUserQuestion") == ToolCategory.AWAITING

    def test_mcp_prefix(self):
        """Test any mcp__ tool is categorized as MCP."""
        assert classify("mcp__db__query") == ToolCategory.MCP
        assert classify("mcp__confluence__get_page") == ToolCategory.MCP
        assert classify("mcp__") == ToolCategory.MCP

    def test_unknown_tools(self):
        assert classify("SomethingNew") == ToolCategory.UNKNOWN
        assert classify("EnterPlanMode") == ToolCategory.UNKNOWN
        assert classify("Skill") == ToolCategory.UNKNOWN

    def test_empty_string_is_unknown(self):
        assert classify("") == ToolCategory.UNKNOWN

    def test_case_sensitive(self):
        """Test names are matched exactly."""
        assert classify("bash") == ToolCategory.UNKNOWN
        assert classify("MCP__db__query") == ToolCategory.UNKNOWN

    def test_stable_across_calls(self):
        assert classify("Grep") is classify("Grep")

    def test_from_tool_name_alias(self):
        assert ToolCategory.from_tool_name("Bash") == ToolCategory.RUNNING


class TestEventSource:
    """Tests for EventSource values."""

    def test_main_is_singleton_value(self):
        assert MAIN == MainSource()

    def test_subagent_equality_by_id(self):
        assert SubAgentSource("agent-abc123") == SubAgentSource("agent-abc123")
        assert SubAgentSource("a") != SubAgentSource("b")
        assert SubAgentSource("a") != MAIN

    def test_tagged_event_defaults_to_main(self):
        tagged = TaggedEvent("s1", Thinking())
        assert tagged.source == MAIN


class TestEventSerialization:
    """Tests for to_dict on events."""

    def test_tool_start_to_dict(self):
        event = ToolStart("Bash", "id1", ToolCategory.RUNNING, "ls")
        assert event.to_dict() == {
            'kind': 'tool_start',
            'tool_name': 'Bash',
            'tool_use_id': 'id1',
            'category': 'running',
            'description': 'ls',
        }

    def test_payloadless_event_to_dict(self):
        assert Thinking().to_dict() == {'kind': 'thinking'}

    def test_tool_end_defaults(self):
        event = ToolEnd("id1")
        assert event.is_error is False
        assert event.error_message is None

    def test_tagged_event_to_dict(self):
        tagged = TaggedEvent(
            "s1", SessionStart("s1", "proj", "12:00:00"), SubAgentSource("agent-1")
        )
        data = tagged.to_dict()
        assert data['sessionId'] == 's1'
        assert data['event']['kind'] == 'session_start'
        assert data['event']['project'] == 'proj'
        assert data['source'] == {'type': 'subagent', 'agentId': 'agent-1'}

    def test_events_are_immutable(self):
        event = ToolEnd("id1")
        with pytest.raises(AttributeError):
            event.tool_use_id = "id2"
