from __future__ import annotations

import pytest
from pydantic import ValidationError

from analyzer.app.config import DEFAULT_CHECK_WEIGHTS, AnalyzerConfig


def test_defaults():
    config = AnalyzerConfig()

    assert config.MODEL_PROVIDER == "disabled"
    assert config.STAGE_TIMEOUT_SECONDS == 60.0
    assert config.CHECK_TIMEOUT_SECONDS == 60.0
    assert config.CHECK_WEIGHTS == DEFAULT_CHECK_WEIGHTS
    assert config.DEFAULT_CHECK_WEIGHT == 0.1
    assert config.MAX_RECOMMENDATIONS == 10
    assert config.LOG_LEVEL == "INFO"


def test_from_env(monkeypatch):
    monkeypatch.setenv("ANALYZER_STAGE_TIMEOUT_SECONDS", "12.5")
    monkeypatch.setenv("ANALYZER_CHECK_WEIGHTS", '{"consent": 0.5, "retention": 0.2}')
    monkeypatch.setenv("ANALYZER_LOG_LEVEL", "debug")

    config = AnalyzerConfig.from_env()

    assert config.STAGE_TIMEOUT_SECONDS == 12.5
    assert config.CHECK_WEIGHTS["consent"] == 0.5
    assert config.CHECK_WEIGHTS["retention"] == 0.2
    assert config.CHECK_WEIGHTS["lawful_basis"] == 0.35
    assert config.LOG_LEVEL == "DEBUG"


def test_check_weights_must_be_an_object(monkeypatch):
    monkeypatch.setenv("ANALYZER_CHECK_WEIGHTS", "[0.5]")

    with pytest.raises(ValueError):
        AnalyzerConfig.from_env()


def test_azure_provider_requires_settings():
    with pytest.raises(ValidationError):
        AnalyzerConfig(MODEL_PROVIDER="azure_openai")

    config = AnalyzerConfig(
        MODEL_PROVIDER="azure_openai",
        AZURE_OPENAI_ENDPOINT="https://example.openai.azure.com",
        AZURE_OPENAI_DEPLOYMENT="legal-gpt",
        AZURE_OPENAI_API_VERSION="2024-06-01",
    )
    assert config.MODEL_PROVIDER == "azure_openai"


@pytest.mark.parametrize(
    "overrides",
    [
        {"MODEL_PROVIDER": "mystery"},
        {"STAGE_TIMEOUT_SECONDS": 0},
        {"CHECK_TIMEOUT_SECONDS": -1},
        {"CHECK_WEIGHTS": {"consent": 1.5}},
        {"DEFAULT_CHECK_WEIGHT": -0.1},
        {"LOG_LEVEL": "chatty"},
    ],
)
def test_invalid_settings_rejected(overrides):
    with pytest.raises(ValidationError):
        AnalyzerConfig(**overrides)


def test_config_is_frozen():
    config = AnalyzerConfig()

    with pytest.raises(ValidationError):
        config.STAGE_TIMEOUT_SECONDS = 1.0
