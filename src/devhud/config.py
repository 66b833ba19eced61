"""Configuration module for dev-hud.

Centralizes all configuration constants and environment variables
to eliminate scattered magic numbers and duplicated settings.
"""

import os
from pathlib import Path

# ============================================================================
# Path Configuration
# ============================================================================

# Base directory for Claude projects containing JSONL files
CLAUDE_PROJECTS_DIR = Path(
    os.getenv("DEVHUD_PROJECTS_DIR", str(Path.home() / ".claude" / "projects"))
).expanduser()

# Name of the per-session folder holding sub-agent logs:
# <project>/<session_id>/subagents/*.jsonl
SUBAGENTS_DIRNAME = "subagents"


# ============================================================================
# Discovery and Polling
# ============================================================================

# Session files modified within this window are considered active (seconds)
ACTIVE_SESSION_WINDOW_SECONDS = int(os.getenv("DEVHUD_ACTIVE_WINDOW", "1800"))

# Interval between watcher poll cycles (seconds)
POLL_INTERVAL_SECONDS = 0.5

# Re-scan the projects dir for new sessions every N polls (~5s)
RESCAN_INTERVAL_POLLS = 10


# ============================================================================
# Session Lifecycle Timers (seconds)
# ============================================================================

# Exited sessions stay on the HUD this long before being archived
ARCHIVE_GRACE_SECONDS = 300

# A running tool with no events for this long flags the session
ATTENTION_THRESHOLD_SECONDS = 12

# Finished sub-agents are evicted this long after their last event
SUBAGENT_CLEANUP_SECONDS = 60

# Cadence at which the embedding loop drains events and ticks the aggregator
TICK_INTERVAL_SECONDS = 0.08

# Number of non-archived sessions shown on the HUD
MAX_VISIBLE_SESSIONS = 6


# ============================================================================
# Text Limits (characters)
# ============================================================================

SUMMARY_MAX_CHARS = 80
ACTIVITY_MAX_CHARS = 200
SUBAGENT_DESCRIPTION_MAX_CHARS = 60
ERROR_MESSAGE_MAX_CHARS = 500


# ============================================================================
# Server Configuration
# ============================================================================

DEFAULT_HOST = os.getenv("DEVHUD_HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("DEVHUD_PORT", "8765"))

# Log history sent to a WebSocket client when it subscribes
LOG_HISTORY_ON_SUBSCRIBE = 100
