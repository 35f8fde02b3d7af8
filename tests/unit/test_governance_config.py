"""Tests for settings loading and threshold derivation."""

import pytest
from pydantic import ValidationError

from governance.config import Settings
from governance.engine import evaluation_thresholds, regression_thresholds
from governance.models import EvaluationThresholds, RegressionThresholds


def test_defaults(monkeypatch):
    monkeypatch.delenv("STORE_BACKEND", raising=False)

    settings = Settings(_env_file=None)

    assert settings.store_backend == "postgres"
    assert settings.log_level == "INFO"
    assert settings.refresh_baseline_on_deploy is True


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("MAX_LATENCY_INCREASE_MS", "100")
    monkeypatch.setenv("LATENCY_RATIO_CRITICAL", "3.0")
    monkeypatch.setenv("REFRESH_BASELINE_ON_DEPLOY", "false")

    settings = Settings(_env_file=None)

    assert settings.max_latency_increase_ms == 100.0
    assert settings.latency_ratio_critical == 3.0
    assert settings.refresh_baseline_on_deploy is False


def test_unknown_backend_rejected(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "sqlite")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_default_settings_match_model_defaults(settings):
    assert evaluation_thresholds(settings) == EvaluationThresholds()
    assert regression_thresholds(settings) == RegressionThresholds()


def test_thresholds_follow_settings(settings):
    tuned = settings.model_copy(update={"min_recall_delta": -0.02, "cost_ratio_warning": 1.1})

    assert evaluation_thresholds(tuned).min_recall == -0.02
    assert regression_thresholds(tuned).cost_warning == 1.1
