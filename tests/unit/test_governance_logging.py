"""Unit tests for logging service."""

from governance.services.logging_service import configure_logging, get_logger, redact_sensitive


class TestRedactSensitive:
    """Tests for redact_sensitive processor."""

    def test_redacts_database_url(self):
        event_dict = {"postgres_url": "postgresql://u:p@db/gov", "event": "test"}
        result = redact_sensitive(None, None, event_dict)
        assert result["postgres_url"] == "REDACTED"

    def test_redacts_dsn(self):
        result = redact_sensitive(None, None, {"dsn": "postgresql://u:p@db/gov"})
        assert result["dsn"] == "REDACTED"

    def test_redacts_authorization(self):
        event_dict = {"authorization": "Bearer token123", "event": "test"}
        result = redact_sensitive(None, None, event_dict)
        assert result["authorization"] == "REDACTED"

    def test_preserves_governance_fields(self):
        event_dict = {
            "correlation_id": "abc-123",
            "change_id": "c-1",
            "actor_id": "alice",
            "delta_percent": 105.0,
        }
        result = redact_sensitive(None, None, dict(event_dict))
        assert result == event_dict

    def test_case_insensitive_redaction(self):
        result = redact_sensitive(None, None, {"API_KEY": "secret1", "Password": "secret2"})
        assert result["API_KEY"] == "REDACTED"
        assert result["Password"] == "REDACTED"


class TestConfigureLogging:
    def test_configure_logging_sets_level(self):
        configure_logging("DEBUG")
        logger = get_logger("test")
        assert logger is not None

    def test_invalid_level_falls_back_to_info(self):
        configure_logging("NOT_A_LEVEL")
        assert get_logger() is not None
