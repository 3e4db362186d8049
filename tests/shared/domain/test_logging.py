import structlog
from shared.utils.logging import add_context, clear_context, get_log_level


class TestLogLevel:
    def test_test_environment_is_quiet(self, monkeypatch):
        monkeypatch.delenv("ENV", raising=False)
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.setenv("ENVIRONMENT", "test")
        assert get_log_level() == "WARNING"

    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert get_log_level() == "ERROR"

    def test_unknown_environment_defaults_to_info(self, monkeypatch):
        monkeypatch.delenv("ENV", raising=False)
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.setenv("ENVIRONMENT", "qa")
        assert get_log_level() == "INFO"


class TestContext:
    def test_bind_and_clear(self):
        clear_context()
        add_context(request_id="req-1", path="/deliveries")
        assert structlog.contextvars.get_contextvars() == {"request_id": "req-1", "path": "/deliveries"}

        clear_context()

        assert structlog.contextvars.get_contextvars() == {}
