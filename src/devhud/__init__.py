"""dev-hud: live view of what every Claude Code session is doing."""

__version__ = "0.1.0"
