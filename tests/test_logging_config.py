"""Tests for logging configuration."""

import logging

import pytest

from devhud.logging_config import (
    LOGGER_PREFIX,
    NAMESPACES,
    BufferedLogHandler,
    LogEntry,
    get_log_handler,
    get_logger,
    namespace_of,
    parse_log_level,
    set_log_level,
    setup_logging,
)


@pytest.fixture
def handler():
    h = BufferedLogHandler(buffer_size=3)
    h.setFormatter(logging.Formatter('%(message)s'))
    return h


def make_record(name: str, msg: str, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, msg, None, None)


class TestBufferedLogHandler:
    """Tests for BufferedLogHandler."""

    def test_namespace_from_logger_name(self, handler):
        handler.emit(make_record('devhud.scanner', 'x'))
        assert handler.get_history()[0]['namespace'] == 'scanner'

    def test_unknown_logger_is_general(self, handler):
        handler.emit(make_record('uvicorn.error', 'x'))
        handler.emit(make_record('devhud.other', 'y'))
        assert [e['namespace'] for e in handler.get_history()] == ['general', 'general']

    def test_buffer_is_bounded(self, handler):
        for i in range(5):
            handler.emit(make_record('devhud.parser', f'm{i}'))
        assert [e['message'] for e in handler.get_history()] == ['m2', 'm3', 'm4']

    def test_history_count(self, handler):
        for i in range(3):
            handler.emit(make_record('devhud.parser', f'm{i}'))
        assert [e['message'] for e in handler.get_history(2)] == ['m1', 'm2']
        assert handler.get_history(0) == []
        assert handler.get_history(-1) == []

    def test_broadcast_callback(self, handler):
        received = []
        handler.set_broadcast_callback(received.append)
        handler.emit(make_record('devhud.watcher', 'hello', logging.WARNING))
        assert received[0].level == 'WARNING'
        assert received[0].message == 'hello'

        handler.set_broadcast_callback(None)
        handler.emit(make_record('devhud.watcher', 'again'))
        assert len(received) == 1

    def test_disabled_handler_drops(self, handler):
        handler.enabled = False
        handler.emit(make_record('devhud.api', 'x'))
        assert handler.get_history() == []

    def test_clear_buffer(self, handler):
        handler.emit(make_record('devhud.api', 'x'))
        handler.clear_buffer()
        assert handler.get_history() == []


class TestLogLevels:
    """Tests for level parsing and runtime changes."""

    def test_parse_names(self):
        assert parse_log_level('debug') == logging.DEBUG
        assert parse_log_level(' WARNING ') == logging.WARNING
        assert parse_log_level(logging.ERROR) == logging.ERROR

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            parse_log_level('LOUD')

    def test_set_log_level(self):
        root = logging.getLogger()
        previous = root.level
        try:
            set_log_level('ERROR')
            assert root.level == logging.ERROR
            assert logging.getLogger(f'{LOGGER_PREFIX}.watcher').level == logging.ERROR
        finally:
            set_log_level(previous)


class TestGetLogger:
    """Tests for get_logger."""

    def test_namespaced(self):
        assert get_logger('anything', namespace='parser').name == 'devhud.parser'

    def test_unknown_namespace_falls_back_to_name(self):
        assert get_logger('devhud.x', namespace='nope').name == 'devhud.x'

    def test_all_namespaces_have_labels(self):
        assert all(isinstance(label, str) and label for label in NAMESPACES.values())


class TestSessionTagging:
    """Tests for session ids carried through log records."""

    def test_namespace_of(self):
        assert namespace_of('devhud.scanner') == 'scanner'
        assert namespace_of('devhud.scanner.child') == 'scanner'
        assert namespace_of('devhud') == 'general'
        assert namespace_of('other.scanner') == 'general'

    def test_extra_session_id_kept(self, handler):
        record = make_record('devhud.session', 'Session s1 ended')
        record.session_id = 's1'
        handler.emit(record)
        assert handler.get_history()[0]['sessionId'] == 's1'

    def test_no_session_id_key_when_absent(self, handler):
        handler.emit(make_record('devhud.api', 'x'))
        assert 'sessionId' not in handler.get_history()[0]

    def test_entry_to_dict(self):
        entry = LogEntry('2026-01-01T00:00:00+00:00', 'INFO', 'watcher', 'hi', session_id='s9')
        assert entry.to_dict() == {
            'timestamp': '2026-01-01T00:00:00+00:00',
            'level': 'INFO',
            'namespace': 'watcher',
            'message': 'hi',
            'sessionId': 's9',
        }

    def test_logger_extra_reaches_handler(self, handler):
        logger = get_logger(__name__, namespace='watcher')
        previous = logger.level
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            logger.info("New session discovered: %s", 'abc', extra={'session_id': 'abc'})
        finally:
            logger.removeHandler(handler)
            logger.setLevel(previous)
        entry = handler.get_history()[-1]
        assert entry['message'] == 'New session discovered: abc'
        assert entry['sessionId'] == 'abc'
        assert entry['namespace'] == 'watcher'


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture
    def clean_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield root
        root.handlers[:] = handlers
        set_log_level(level)

    def test_console_and_buffer(self, clean_root, monkeypatch):
        monkeypatch.delenv('DEVHUD_LOG_STREAM', raising=False)
        setup_logging(logging.WARNING)
        assert clean_root.level == logging.WARNING
        assert get_log_handler() in clean_root.handlers
        assert len(clean_root.handlers) == 2

    def test_streaming_disabled(self, clean_root, monkeypatch):
        monkeypatch.setenv('DEVHUD_LOG_STREAM', 'false')
        setup_logging()
        assert get_log_handler() not in clean_root.handlers

    def test_level_from_env(self, clean_root, monkeypatch):
        monkeypatch.setenv('DEVHUD_LOG_LEVEL', 'debug')
        setup_logging()
        assert clean_root.level == logging.DEBUG

    def test_bad_env_level_falls_back_to_info(self, clean_root, monkeypatch):
        monkeypatch.setenv('DEVHUD_LOG_LEVEL', 'chatty')
        setup_logging()
        assert clean_root.level == logging.INFO
