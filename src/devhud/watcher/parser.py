"""JSONL line parsing for Claude session logs.

This module turns one raw line of a session JSONL file into zero or more
typed events (see ``devhud.events``). A ``Parser`` instance keeps the
per-session deduplication state: Claude streams the same assistant
message several times while it is being generated, so token usage is
counted once per message id and each tool_use id starts exactly once.
"""

import re
from typing import Any

from ..config import ERROR_MESSAGE_MAX_CHARS
from ..events import (
    AGENT_SPAWN_TOOLS,
    AgentSpawned,
    ContextCompaction,
    SessionEnd,
    SessionEvent,
    Thinking,
    TokenUsage,
    ToolEnd,
    ToolProgress,
    ToolStart,
    TurnComplete,
    UserPrompt,
    classify,
)
from ..logging_config import get_logger
from ..utils import parse_jsonl_line, safe_get_nested, shorten_path, truncate_str

logger = get_logger(__name__, namespace='parser')

# Entry types that never carry anything we display
IGNORED_ENTRY_TYPES = frozenset({'file-history-snapshot', 'queue-operation'})

# Slash commands that end the session
EXIT_COMMANDS = frozenset({'/exit', '/quit'})

COMMAND_NAME_RE = re.compile(r'<command-name>\s*([^<]*?)\s*</command-name>')
LOCAL_COMMAND_STDOUT_MARKER = '<local-command-stdout>'
TEAMMATE_MESSAGE_RE = re.compile(
    r'<teammate-message\b[^>]*>(.*?)(?:</teammate-message>|$)', re.DOTALL
)


class Parser:
    """Parses JSONL lines for one session, deduplicating streamed chunks."""

    def __init__(self):
        self.seen_message_ids: set[str] = set()
        self.seen_tool_use_ids: set[str] = set()

    def parse_line(self, line: str) -> list[SessionEvent]:
        """Parse a single JSONL line into zero or more SessionEvents.

        Malformed input is logged and yields an empty list; this method
        never raises for bad data.
        """
        entry = parse_jsonl_line(line)
        if entry is None:
            if line.strip():
                logger.debug("Skipping invalid JSON line: %.80s", line)
            return []

        events: list[SessionEvent] = []
        try:
            self._dispatch(entry, events)
        except (AttributeError, TypeError, ValueError) as e:
            # Keep what was emitted before the bad block; dedup ids are already recorded
            logger.debug("Malformed %s entry: %s", entry.get('type'), e)
        return events

    def _dispatch(self, entry: dict, events: list[SessionEvent]) -> None:
        entry_type = entry.get('type')

        if entry_type == 'user':
            self._parse_user_entry(entry, events)
        elif entry_type == 'assistant':
            self._parse_assistant_entry(entry, events)
        elif entry_type == 'system':
            self._parse_system_entry(entry, events)
        elif entry_type == 'progress':
            events.append(ToolProgress())
        elif entry_type in IGNORED_ENTRY_TYPES:
            return
        else:
            # Older records keep the real role inside .message
            role = safe_get_nested(entry, 'message', 'role')
            if role == 'user':
                self._parse_user_entry(entry, events)
            elif role == 'assistant':
                self._parse_assistant_entry(entry, events)

    def _parse_user_entry(self, entry: dict, events: list[SessionEvent]) -> None:
        # Synthetic bookkeeping entries, not real prompts
        if entry.get('isMeta') or entry.get('isCompactSummary'):
            return

        message = entry.get('message')
        if not isinstance(message, dict):
            return
        content = message.get('content')

        if isinstance(content, str):
            if is_exit_command(content):
                events.append(SessionEnd())
            elif LOCAL_COMMAND_STDOUT_MARKER in content:
                return
            else:
                events.append(UserPrompt(text=clean_teammate_message(content)))
            return

        if not isinstance(content, list):
            return

        for block in content:
            if not isinstance(block, dict) or block.get('type') != 'tool_result':
                continue
            tool_use_id = block.get('tool_use_id')
            if not isinstance(tool_use_id, str) or not tool_use_id:
                continue
            is_error = block.get('is_error') is True
            events.append(ToolEnd(
                tool_use_id=tool_use_id,
                is_error=is_error,
                error_message=extract_error_content(block) if is_error else None,
            ))

    def _parse_assistant_entry(self, entry: dict, events: list[SessionEvent]) -> None:
        message = entry.get('message')
        if not isinstance(message, dict):
            return

        msg_id = message.get('id')
        usage = message.get('usage')
        if isinstance(msg_id, str) and msg_id and isinstance(usage, dict):
            input_tokens = _as_count(usage.get('input_tokens'))
            output_tokens = _as_count(usage.get('output_tokens'))
            cache_read = _as_count(usage.get('cache_read_input_tokens'))
            if msg_id not in self.seen_message_ids:
                self.seen_message_ids.add(msg_id)
                if input_tokens > 0 or output_tokens > 0:
                    events.append(TokenUsage(
                        input_tokens=input_tokens,
                        output_tokens=output_tokens,
                        cache_read_tokens=cache_read,
                    ))

        content = message.get('content')
        if not isinstance(content, list):
            return

        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get('type')

            if block_type == 'thinking':
                events.append(Thinking())

            elif block_type == 'tool_use':
                tool_id = block.get('id')
                # Streaming repeats the same tool_use block; first one wins
                if not isinstance(tool_id, str) or not tool_id:
                    continue
                if tool_id in self.seen_tool_use_ids:
                    continue
                self.seen_tool_use_ids.add(tool_id)

                tool_name = block.get('name')
                if not isinstance(tool_name, str) or not tool_name:
                    tool_name = 'unknown'
                tool_input = block.get('input')
                if not isinstance(tool_input, dict):
                    tool_input = {}

                if tool_name in AGENT_SPAWN_TOOLS:
                    agent_desc = tool_input.get('description')
                    if not isinstance(agent_desc, str) or not agent_desc:
                        agent_desc = 'unnamed agent'
                    events.append(AgentSpawned(agent_id=tool_id, description=agent_desc))

                events.append(ToolStart(
                    tool_name=tool_name,
                    tool_use_id=tool_id,
                    category=classify(tool_name),
                    description=extract_tool_description(tool_name, tool_input),
                ))

    def _parse_system_entry(self, entry: dict, events: list[SessionEvent]) -> None:
        subtype = entry.get('subtype')

        if subtype == 'turn_duration':
            duration = entry.get('durationMs')
            if isinstance(duration, (int, float)) and not isinstance(duration, bool) and duration >= 0:
                events.append(TurnComplete(duration_ms=int(duration)))
        elif subtype == 'compact_boundary':
            events.append(ContextCompaction())


def _as_count(value: Any) -> int:
    """Token counts are non-negative ints; anything else counts as zero."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


def _input_str(tool_input: dict, *keys: str) -> str | None:
    for key in keys:
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def extract_tool_description(tool_name: str, tool_input: dict) -> str:
    """Extract a human-readable description from tool input."""
    if tool_name in ('Read', 'Edit', 'Write'):
        path = _input_str(tool_input, 'file_path')
        fallback = {'Read': 'reading file', 'Edit': 'editing file', 'Write': 'writing file'}
        return shorten_path(path) if path else fallback[tool_name]

    elif tool_name in ('NotebookEdit', 'MultiEdit'):
        path = _input_str(tool_input, 'file_path', 'notebook_path')
        return shorten_path(path) if path else 'editing file'

    elif tool_name == 'AskUserQuestion':
        return 'asking user'

    elif tool_name in ('EnterPlanMode', 'ExitPlanMode'):
        return 'planning'

    elif tool_name == 'Skill':
        skill = _input_str(tool_input, 'skill')
        return f"/{skill}" if skill else 'skill'

    elif tool_name == 'Glob':
        pattern = _input_str(tool_input, 'pattern')
        return truncate_str(pattern, 200) if pattern else 'glob search'

    elif tool_name == 'Grep':
        pattern = _input_str(tool_input, 'pattern')
        return truncate_str(pattern, 200) if pattern else 'grep search'

    elif tool_name == 'Bash':
        command = _input_str(tool_input, 'command')
        return truncate_str(command, 500) if command else 'running command'

    elif tool_name in AGENT_SPAWN_TOOLS:
        desc = _input_str(tool_input, 'description')
        return truncate_str(desc, 200) if desc else 'spawning agent'

    elif tool_name == 'WebSearch':
        query = _input_str(tool_input, 'query')
        return truncate_str(query, 200) if query else 'web search'

    elif tool_name == 'WebFetch':
        url = _input_str(tool_input, 'url')
        return truncate_str(url, 300) if url else 'fetching URL'

    return truncate_str(tool_name, 80)


def extract_error_content(block: dict) -> str | None:
    """Extract error text from a tool_result block.

    Content is either a plain string or a list of {type: text, text: ...}
    blocks; the first non-empty text wins.
    """
    content = block.get('content')
    if isinstance(content, str):
        return truncate_str(content, ERROR_MESSAGE_MAX_CHARS) if content else None
    if isinstance(content, list):
        for item in content:
            text = item.get('text') if isinstance(item, dict) else None
            if isinstance(text, str) and text:
                return truncate_str(text, ERROR_MESSAGE_MAX_CHARS)
    return None


def is_exit_command(content: str) -> bool:
    """True if a user message is the transcript of an /exit slash command."""
    match = COMMAND_NAME_RE.search(content)
    return bool(match) and match.group(1) in EXIT_COMMANDS


def clean_teammate_message(content: str) -> str:
    """Strip a <teammate-message ...> wrapper, keeping the inner text.

    Best effort: if the wrapper is absent or empty the original string is
    returned unchanged.
    """
    match = TEAMMATE_MESSAGE_RE.search(content)
    if not match:
        return content
    inner = match.group(1).strip()
    return inner or content
