"""JSONL watcher: discovery, tailing and parsing of Claude session logs.

This package contains modules for:
- Line parsing into typed events (parser.py)
- Session discovery and incremental file reading (scanner.py)
- The background multi-session watcher thread (multi.py)

Import from here for a clean API:
    from devhud.watcher import WatcherHandle, Parser
"""

# Line parsing
from .parser import (
    Parser,
    extract_tool_description,
    extract_error_content,
    is_exit_command,
    clean_teammate_message,
)

# Discovery and tailing
from .scanner import (
    Scanner,
    SessionInfo,
    TrackedFile,
    discover_active_sessions,
    read_new_lines,
)

# Background watcher
from .multi import (
    MultiSessionWatcher,
    WatcherHandle,
)

__all__ = [
    # Line parsing
    'Parser',
    'extract_tool_description',
    'extract_error_content',
    'is_exit_command',
    'clean_teammate_message',
    # Discovery and tailing
    'Scanner',
    'SessionInfo',
    'TrackedFile',
    'discover_active_sessions',
    'read_new_lines',
    # Background watcher
    'MultiSessionWatcher',
    'WatcherHandle',
]
