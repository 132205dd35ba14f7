"""Tests for Sentry configuration."""
from unittest.mock import MagicMock, patch

import pytest

from revcycle.config.sentry import (
    SentrySettings,
    add_breadcrumb,
    capture_exception,
    capture_message,
    filter_sensitive_data,
    init_sentry,
)


@pytest.mark.unit
class TestSentrySettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("SENTRY_DSN", raising=False)
        settings = SentrySettings(_env_file=None)

        assert settings.dsn is None
        assert settings.send_default_pii is False
        assert settings.enable_alerts is True
        assert settings.alert_on_errors is False

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SENTRY_DSN", "https://key@sentry.example.com/1")
        monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", "0.5")

        settings = SentrySettings(_env_file=None)

        assert settings.dsn == "https://key@sentry.example.com/1"
        assert settings.traces_sample_rate == 0.5


@pytest.mark.unit
class TestInitSentry:
    def test_no_dsn(self):
        with patch("revcycle.config.sentry.settings") as mock_settings, patch(
            "revcycle.config.sentry.sentry_sdk"
        ) as mock_sdk:
            mock_settings.dsn = None
            init_sentry()

        mock_sdk.init.assert_not_called()

    def test_skipped_while_testing(self, monkeypatch):
        monkeypatch.setenv("TESTING", "true")
        with patch("revcycle.config.sentry.settings") as mock_settings, patch(
            "revcycle.config.sentry.sentry_sdk"
        ) as mock_sdk:
            mock_settings.dsn = "https://key@sentry.example.com/1"
            init_sentry()

        mock_sdk.init.assert_not_called()

    def test_initializes_with_filter(self, monkeypatch):
        monkeypatch.setenv("TESTING", "false")
        with patch("revcycle.config.sentry.settings") as mock_settings, patch(
            "revcycle.config.sentry.sentry_sdk"
        ) as mock_sdk:
            mock_settings.dsn = "https://key@sentry.example.com/1"
            mock_settings.send_default_pii = False
            init_sentry()

        kwargs = mock_sdk.init.call_args.kwargs
        assert kwargs["before_send"] is filter_sensitive_data
        assert kwargs["send_default_pii"] is False


@pytest.mark.unit
class TestFilterSensitiveData:
    def test_strips_request_body_and_auth_headers(self):
        event = {
            "request": {
                "data": "ISA*00*...",
                "cookies": {"session": "x"},
                "headers": {"Authorization": "Bearer abc", "Content-Type": "text/plain"},
            }
        }

        result = filter_sensitive_data(event, {})

        assert "data" not in result["request"]
        assert "cookies" not in result["request"]
        assert result["request"]["headers"] == {"Content-Type": "text/plain"}

    def test_user_reduced_to_id(self):
        result = filter_sensitive_data({"user": {"id": "u1", "email": "a@b.c", "ip_address": "1.2.3.4"}}, {})

        assert result["user"] == {"id": "u1"}

    def test_patient_keys_removed_from_extra(self):
        event = {"extra": {"member_id": "MEM1", "patient_first_name": "Jane", "claim_number": "CLM1"}}

        result = filter_sensitive_data(event, {})

        assert result["extra"] == {"claim_number": "CLM1"}

    def test_event_without_request(self):
        assert filter_sensitive_data({"message": "hi"}, {}) == {"message": "hi"}


@pytest.mark.unit
class TestCapture:
    def test_capture_exception_sets_scope(self):
        scope = MagicMock()
        with patch("revcycle.config.sentry.sentry_sdk") as mock_sdk:
            mock_sdk.new_scope.return_value.__enter__.return_value = scope
            mock_sdk.capture_exception.return_value = "event-id-123"
            error = ValueError("bad")

            result = capture_exception(error, context={"claim": {"id": 1}}, tags={"area": "billing"})

        assert result == "event-id-123"
        mock_sdk.capture_exception.assert_called_once_with(error)
        scope.set_context.assert_called_once_with("claim", {"id": 1})
        scope.set_tag.assert_called_once_with("area", "billing")
        scope.set_level.assert_called_once_with("error")

    def test_capture_message_level(self):
        with patch("revcycle.config.sentry.sentry_sdk") as mock_sdk:
            capture_message("Denials past their appeal deadline", level="WARNING")

        mock_sdk.capture_message.assert_called_once_with("Denials past their appeal deadline", level="warning")

    def test_add_breadcrumb(self):
        with patch("revcycle.config.sentry.sentry_sdk") as mock_sdk:
            add_breadcrumb("Posted", category="remits")

        mock_sdk.add_breadcrumb.assert_called_once_with(message="Posted", category="remits", level="info", data={})
