from __future__ import annotations

from dataclasses import dataclass
import os


HARDENED_ENVIRONMENTS = frozenset({"production", "prod", "ci"})
DEFAULT_API_URL = "http://localhost:5001"
DEFAULT_PRIMARY_DOCUMENT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_ATTACHMENT_MAX_BYTES = 15 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    environment: str
    api_base_url: str
    api_bearer_token: str | None
    request_timeout_seconds: float
    generation_timeout_seconds: float
    primary_document_max_bytes: int
    attachment_max_bytes: int
    progress_tick_seconds: float
    progress_max_increment: float
    progress_display_seconds: float
    artifact_label: str
    download_dir: str


def parse_str_env(name: str, default: str | None = None) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip()
    if not normalized:
        return default
    return normalized


def parse_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a numeric value, got {raw!r}") from exc


def parse_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer value, got {raw!r}") from exc


def is_hardened_environment(environment: str) -> bool:
    return environment.strip().lower() in HARDENED_ENVIRONMENTS


def load_settings() -> Settings:
    environment = parse_str_env("ENVIRONMENT", "development") or "development"
    hardened_environment = is_hardened_environment(environment)

    api_base_url = parse_str_env("BATCHGEN_API_URL", DEFAULT_API_URL) or DEFAULT_API_URL
    api_bearer_token = parse_str_env("BATCHGEN_API_BEARER_TOKEN")
    if hardened_environment and not api_base_url.lower().startswith("https://"):
        raise ValueError(
            "BATCHGEN_API_URL must use https:// when ENVIRONMENT is production/prod/ci"
        )
    if hardened_environment and not api_bearer_token:
        raise ValueError(
            "BATCHGEN_API_BEARER_TOKEN is required when ENVIRONMENT is production/prod/ci"
        )

    request_timeout_seconds = parse_float_env("BATCHGEN_REQUEST_TIMEOUT_SECONDS", 30.0)
    generation_timeout_seconds = parse_float_env(
        "BATCHGEN_GENERATION_TIMEOUT_SECONDS", 600.0
    )
    if request_timeout_seconds <= 0:
        raise ValueError("BATCHGEN_REQUEST_TIMEOUT_SECONDS must be > 0")
    if generation_timeout_seconds <= 0:
        raise ValueError("BATCHGEN_GENERATION_TIMEOUT_SECONDS must be > 0")

    primary_document_max_bytes = parse_int_env(
        "BATCHGEN_PRIMARY_DOCUMENT_MAX_BYTES", DEFAULT_PRIMARY_DOCUMENT_MAX_BYTES
    )
    if primary_document_max_bytes < 1:
        raise ValueError("BATCHGEN_PRIMARY_DOCUMENT_MAX_BYTES must be >= 1")
    attachment_max_bytes = parse_int_env(
        "BATCHGEN_ATTACHMENT_MAX_BYTES", DEFAULT_ATTACHMENT_MAX_BYTES
    )
    if attachment_max_bytes < 1:
        raise ValueError("BATCHGEN_ATTACHMENT_MAX_BYTES must be >= 1")

    progress_tick_seconds = parse_float_env("BATCHGEN_PROGRESS_TICK_SECONDS", 0.5)
    if progress_tick_seconds <= 0:
        raise ValueError("BATCHGEN_PROGRESS_TICK_SECONDS must be > 0")
    progress_max_increment = parse_float_env("BATCHGEN_PROGRESS_MAX_INCREMENT", 10.0)
    if progress_max_increment <= 0:
        raise ValueError("BATCHGEN_PROGRESS_MAX_INCREMENT must be > 0")
    progress_display_seconds = parse_float_env("BATCHGEN_PROGRESS_DISPLAY_SECONDS", 1.0)
    if progress_display_seconds <= 0:
        raise ValueError("BATCHGEN_PROGRESS_DISPLAY_SECONDS must be > 0")

    return Settings(
        environment=environment,
        api_base_url=api_base_url,
        api_bearer_token=api_bearer_token,
        request_timeout_seconds=request_timeout_seconds,
        generation_timeout_seconds=generation_timeout_seconds,
        primary_document_max_bytes=primary_document_max_bytes,
        attachment_max_bytes=attachment_max_bytes,
        progress_tick_seconds=progress_tick_seconds,
        progress_max_increment=progress_max_increment,
        progress_display_seconds=progress_display_seconds,
        artifact_label=parse_str_env("BATCHGEN_ARTIFACT_LABEL", "Generated Document")
        or "Generated Document",
        download_dir=parse_str_env("BATCHGEN_DOWNLOAD_DIR", "downloads") or "downloads",
    )
