from __future__ import annotations

import pytest

from batchgen.settings import load_settings


SETTINGS_ENV = (
    "ENVIRONMENT",
    "BATCHGEN_API_URL",
    "BATCHGEN_API_BEARER_TOKEN",
    "BATCHGEN_REQUEST_TIMEOUT_SECONDS",
    "BATCHGEN_GENERATION_TIMEOUT_SECONDS",
    "BATCHGEN_PRIMARY_DOCUMENT_MAX_BYTES",
    "BATCHGEN_ATTACHMENT_MAX_BYTES",
    "BATCHGEN_PROGRESS_TICK_SECONDS",
    "BATCHGEN_PROGRESS_MAX_INCREMENT",
    "BATCHGEN_PROGRESS_DISPLAY_SECONDS",
    "BATCHGEN_ARTIFACT_LABEL",
    "BATCHGEN_DOWNLOAD_DIR",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)


def _set_hardened_env(monkeypatch: pytest.MonkeyPatch, environment: str) -> None:
    monkeypatch.setenv("ENVIRONMENT", environment)
    monkeypatch.setenv("BATCHGEN_API_URL", "https://generation.example.test")
    monkeypatch.setenv("BATCHGEN_API_BEARER_TOKEN", "secret-token")


def test_load_settings_has_development_defaults() -> None:
    settings = load_settings()

    assert settings.environment == "development"
    assert settings.api_base_url == "http://localhost:5001"
    assert settings.api_bearer_token is None
    assert settings.request_timeout_seconds == 30.0
    assert settings.generation_timeout_seconds == 600.0
    assert settings.primary_document_max_bytes == 10 * 1024 * 1024
    assert settings.attachment_max_bytes == 15 * 1024 * 1024
    assert settings.progress_tick_seconds == 0.5
    assert settings.progress_max_increment == 10.0
    assert settings.progress_display_seconds == 1.0
    assert settings.artifact_label == "Generated Document"
    assert settings.download_dir == "downloads"


@pytest.mark.parametrize("environment", ["production", "prod", "ci"])
def test_load_settings_requires_bearer_token_in_hardened_modes(
    monkeypatch: pytest.MonkeyPatch,
    environment: str,
) -> None:
    _set_hardened_env(monkeypatch, environment)
    monkeypatch.delenv("BATCHGEN_API_BEARER_TOKEN", raising=False)

    with pytest.raises(ValueError, match="BATCHGEN_API_BEARER_TOKEN is required"):
        load_settings()


@pytest.mark.parametrize("environment", ["production", "prod", "ci"])
def test_load_settings_requires_https_in_hardened_modes(
    monkeypatch: pytest.MonkeyPatch,
    environment: str,
) -> None:
    _set_hardened_env(monkeypatch, environment)
    monkeypatch.setenv("BATCHGEN_API_URL", "http://generation.example.test")

    with pytest.raises(ValueError, match="must use https://"):
        load_settings()


def test_load_settings_accepts_hardened_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_hardened_env(monkeypatch, "production")

    settings = load_settings()

    assert settings.api_base_url == "https://generation.example.test"
    assert settings.api_bearer_token == "secret-token"


def test_load_settings_rejects_non_numeric_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BATCHGEN_REQUEST_TIMEOUT_SECONDS", "soon")

    with pytest.raises(ValueError, match="BATCHGEN_REQUEST_TIMEOUT_SECONDS must be a numeric"):
        load_settings()


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("BATCHGEN_GENERATION_TIMEOUT_SECONDS", "0", "must be > 0"),
        ("BATCHGEN_ATTACHMENT_MAX_BYTES", "0", "must be >= 1"),
        ("BATCHGEN_PROGRESS_TICK_SECONDS", "-1", "must be > 0"),
        ("BATCHGEN_PRIMARY_DOCUMENT_MAX_BYTES", "big", "must be an integer"),
    ],
)
def test_load_settings_rejects_out_of_range_values(
    monkeypatch: pytest.MonkeyPatch,
    name: str,
    value: str,
    message: str,
) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=message):
        load_settings()


def test_load_settings_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BATCHGEN_ARTIFACT_LABEL", "Answer Sheet")
    monkeypatch.setenv("BATCHGEN_DOWNLOAD_DIR", "/tmp/sheets")
    monkeypatch.setenv("BATCHGEN_PROGRESS_TICK_SECONDS", "0.05")

    settings = load_settings()

    assert settings.artifact_label == "Answer Sheet"
    assert settings.download_dir == "/tmp/sheets"
    assert settings.progress_tick_seconds == 0.05
