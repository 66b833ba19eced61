"""Shared fixtures: a fake ~/.claude/projects tree and JSONL line builders."""

import json
from pathlib import Path

import pytest


def user_line(text: str) -> str:
    return json.dumps({'type': 'user', 'message': {'role': 'user', 'content': text}}) + "\n"


def tool_use_line(tool_id: str, name: str, tool_input: dict | None = None,
                  msg_id: str | None = None) -> str:
    return json.dumps({
        'type': 'assistant',
        'message': {
            'id': msg_id or f"msg_{tool_id}",
            'role': 'assistant',
            'content': [{'type': 'tool_use', 'id': tool_id, 'name': name,
                         'input': tool_input or {}}],
        },
    }) + "\n"


def tool_result_line(tool_id: str) -> str:
    return json.dumps({'type': 'user', 'message': {'content': [
        {'type': 'tool_result', 'tool_use_id': tool_id, 'content': 'ok'},
    ]}}) + "\n"


def turn_line(duration_ms: int = 1000) -> str:
    return json.dumps({'type': 'system', 'subtype': 'turn_duration',
                       'durationMs': duration_ms}) + "\n"


def append(path: Path, text: str | bytes) -> None:
    data = text.encode() if isinstance(text, str) else text
    with open(path, 'ab') as f:
        f.write(data)


@pytest.fixture
def projects_dir(tmp_path):
    """Empty projects directory."""
    root = tmp_path / "projects"
    root.mkdir()
    return root


@pytest.fixture
def make_session(projects_dir):
    """Factory creating <projects>/<slug>/<session_id>.jsonl with some content."""
    def _make(session_id: str, slug: str = "-home-user-my-app", content: str = "") -> Path:
        project = projects_dir / slug
        project.mkdir(exist_ok=True)
        path = project / f"{session_id}.jsonl"
        path.write_text(content)
        return path
    return _make
