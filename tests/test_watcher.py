"""Tests for the multi-session watcher and its background thread."""

import gc
import os
import time

import pytest

from conftest import append, tool_use_line, user_line
from devhud.errors import WatcherError
from devhud.events import MAIN, SessionStart, SubAgentSource, ToolStart, UserPrompt
from devhud.watcher.multi import MultiSessionWatcher, WatcherHandle


def wait_for(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class TestMultiSessionWatcher:
    """Tests for MultiSessionWatcher."""

    def test_discover_emits_session_start(self, make_session, projects_dir):
        make_session("s1", slug="-home-user-app")
        watcher = MultiSessionWatcher(projects_dir)

        started = watcher.discover()

        assert len(started) == 1
        tagged = started[0]
        assert tagged.session_id == "s1"
        assert tagged.source == MAIN
        assert isinstance(tagged.event, SessionStart)
        assert tagged.event.project == "-home-user-app"
        assert len(tagged.event.timestamp) == 8

    def test_discover_never_duplicates(self, make_session, projects_dir):
        make_session("s1")
        watcher = MultiSessionWatcher(projects_dir)
        watcher.discover()

        assert watcher.discover() == []
        assert len(watcher.scanners) == 1

    def test_rescan_picks_up_new_session(self, make_session, projects_dir):
        make_session("s1")
        watcher = MultiSessionWatcher(projects_dir)
        watcher.discover()

        make_session("s2")
        started = watcher.discover()

        assert [t.session_id for t in started] == ["s2"]
        assert watcher.known_ids == {"s1", "s2"}

    def test_old_session_not_discovered(self, make_session, projects_dir):
        path = make_session("s1")
        stale = time.time() - 7200
        os.utime(path, (stale, stale))
        watcher = MultiSessionWatcher(projects_dir)
        assert watcher.discover() == []

    def test_poll_tags_events(self, make_session, projects_dir):
        path = make_session("s1", content=user_line("main prompt"))
        subagents = path.parent / "s1" / "subagents"
        subagents.mkdir(parents=True)
        (subagents / "agent-abc123.jsonl").write_text(user_line("sub prompt"))
        watcher = MultiSessionWatcher(projects_dir)
        watcher.discover()

        tagged = watcher.poll()

        assert [(t.session_id, t.source, t.event) for t in tagged] == [
            ("s1", MAIN, UserPrompt("main prompt")),
            ("s1", SubAgentSource("agent-abc123"), UserPrompt("sub prompt")),
        ]

    def test_tool_use_repeated_across_polls_starts_once(self, make_session, projects_dir):
        line = tool_use_line("toolu_1", "Bash", {"command": "ls"})
        path = make_session("s1", content=line)
        watcher = MultiSessionWatcher(projects_dir)
        watcher.discover()

        first = watcher.poll()
        append(path, line)
        second = watcher.poll()

        assert [type(t.event) for t in first] == [ToolStart]
        assert second == []

    def test_poll_survives_scanner_failure(self, make_session, projects_dir, monkeypatch):
        make_session("s1", content=user_line("a"))
        make_session("s2", content=user_line("b"))
        watcher = MultiSessionWatcher(projects_dir)
        watcher.discover()

        def boom():
            raise RuntimeError("boom")

        monkeypatch.setattr(watcher.scanners[0], "poll_sourced", boom)
        tagged = watcher.poll()

        assert len(tagged) == 1


class TestWatcherHandle:
    """Tests for WatcherHandle.spawn and its background thread."""

    def test_missing_projects_dir_raises(self, tmp_path):
        with pytest.raises(WatcherError):
            WatcherHandle.spawn(tmp_path / "missing")

    def test_initial_sessions_queued_before_return(self, make_session, projects_dir):
        make_session("s1")
        make_session("s2")
        with WatcherHandle.spawn(projects_dir, poll_interval=10) as handle:
            events = handle.drain_events()
        starts = [t for t in events if isinstance(t.event, SessionStart)]
        assert {t.session_id for t in starts} == {"s1", "s2"}

    def test_drain_empty_does_not_block(self, projects_dir):
        with WatcherHandle.spawn(projects_dir, poll_interval=10) as handle:
            started = time.monotonic()
            assert handle.drain_events() == []
            assert time.monotonic() - started < 1.0

    def test_appended_lines_arrive(self, make_session, projects_dir):
        path = make_session("s1")
        with WatcherHandle.spawn(projects_dir, poll_interval=0.01) as handle:
            handle.drain_events()
            append(path, user_line("hello"))

            received = []

            def got_prompt():
                received.extend(handle.drain_events())
                return any(isinstance(t.event, UserPrompt) for t in received)

            assert wait_for(got_prompt)
        prompts = [t for t in received if isinstance(t.event, UserPrompt)]
        assert prompts[0].session_id == "s1"
        assert prompts[0].event.text == "hello"

    def test_rescan_emits_session_start(self, make_session, projects_dir):
        with WatcherHandle.spawn(
            projects_dir, poll_interval=0.01, rescan_interval_polls=1
        ) as handle:
            make_session("late")
            received = []

            def got_start():
                received.extend(handle.drain_events())
                return any(t.session_id == "late" for t in received)

            assert wait_for(got_start)
        starts = [t for t in received if isinstance(t.event, SessionStart)]
        assert [t.session_id for t in starts] == ["late"]

    def test_close_stops_thread(self, projects_dir):
        handle = WatcherHandle.spawn(projects_dir, poll_interval=0.01)
        assert handle.is_running
        handle.close()
        assert not handle.is_running

    def test_dropping_handle_stops_thread(self, projects_dir):
        handle = WatcherHandle.spawn(projects_dir, poll_interval=0.01)
        thread = handle._thread
        del handle
        gc.collect()
        thread.join(timeout=2.0)
        assert not thread.is_alive()
