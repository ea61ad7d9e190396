"""Configuration settings for the Stream Ingest Pipeline."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and config.yaml."""

    model_config = SettingsConfigDict(  # type: ignore[assignment]
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Allow extra env vars not defined in model
    )

    # Remote video store
    stream_account_id: str = ""
    stream_api_token: str = ""
    stream_api_base: str = "https://api.cloudflare.com/client/v4"
    stream_delivery_domain: str = "videodelivery.net"
    stream_customer_domain: str = ""  # customer-<code>.cloudflarestream.com
    stream_require_signed_urls: bool = False
    stream_max_duration_seconds: int = 3600
    stream_through_max_bytes: int = 100 * 1024 * 1024

    # Token signing
    signing_key_id: str = ""
    signing_key_pem: str = ""  # PEM, or base64 of the PEM as the store hands it out
    signing_default_ttl_seconds: int = 7200
    signing_clock_skew_seconds: int = 60

    # Vision-language model backend (OpenAI-compatible)
    llm_api_base: str = "https://openrouter.ai/api/v1"
    llm_api_key: str = ""
    llm_model: str = "google/gemini-2.0-flash-001"
    llm_max_tokens: int = 1000
    llm_temperature: float = 0.3
    llm_timeout: int = 90
    llm_referer: str = "https://luckycat.me"
    llm_app_title: str = "LuckyCat Video Analyzer"

    # Pipeline
    upstream_timeout_seconds: float = 30.0
    keyframe_count: int = 8
    keyframe_width: int = 640
    keyframe_probe_timeout: float = 10.0
    analysis_deadline_seconds: float = 120.0
    record_fetch_attempts: int = 3
    record_fetch_backoff: float = 0.5
    caption_language: str = "en"

    # Authentication
    auth_api_keys: list[str] = []  # Loaded from env var API_KEYS (comma-separated)
    auth_require_key: bool = False
    identity_provider_url: str = ""
    auth_require_session: bool = False

    # Redis (analysis leases)
    redis_url: str = "redis://localhost:6379"
    redis_db: int = 0
    redis_key_prefix: str = "stream_ingest"
    redis_enabled: bool = True
    analysis_lock_enabled: bool = True
    analysis_lock_ttl_seconds: int = 180

    # Rate Limiting
    rate_limit_enabled: bool = True
    rate_limit_default: str = "60/minute"
    rate_limit_storage: str = "memory"  # memory or redis

    # Prometheus
    prometheus_enabled: bool = True
    prometheus_path: str = "/metrics"

    # Webhooks
    webhook_secret: str = ""
    webhook_tolerance_seconds: int = 300

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None

    @property
    def stream_account_base(self) -> str:
        """Base URL of the account-scoped stream API."""
        return f"{self.stream_api_base.rstrip('/')}/accounts/{self.stream_account_id}/stream"

    @property
    def public_thumbnail_base(self) -> str:
        """Origin serving thumbnails of videos that need no token."""
        domain = self.stream_delivery_domain.rstrip("/")
        return domain if "://" in domain else f"https://{domain}"

    @property
    def signed_delivery_domain(self) -> str:
        """Domain that serves token-scoped manifests and thumbnails."""
        if self.stream_customer_domain:
            return self.stream_customer_domain
        return f"customer-{self.stream_account_id}.cloudflarestream.com"

    @property
    def parsed_api_keys(self) -> list[str]:
        """Parse API keys from environment variable.

        Supports:
        - Comma-separated list: "key1,key2,key3"
        - Single key: "key1"
        - Empty: []

        Returns:
            List of API keys
        """
        if self.auth_api_keys:
            return self.auth_api_keys

        keys_env = os.getenv("API_KEYS", "")
        if keys_env:
            return [k.strip() for k in keys_env.split(",") if k.strip()]

        single_key = os.getenv("API_KEY", "")
        if single_key:
            return [single_key]

        return []


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_yaml_config(config_path: Path | str | None = None) -> dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to ./config.yaml or ./config.yml

    Returns:
        Dictionary with configuration values
    """
    if config_path is None:
        for path in (Path("config.yaml"), Path("config.yml")):
            if path.exists():
                config_path = path
                break

    if config_path is None or not Path(config_path).exists():
        return {}

    try:
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        print(f"Warning: Failed to load config file: {e}")
        return {}


def apply_yaml_config(settings: Settings, config: dict[str, Any]) -> Settings:
    """
    Apply YAML configuration to settings object.

    Each ``section: {key: value}`` pair maps onto the ``section_key`` field.
    Values already set from the environment take precedence over YAML config.

    Args:
        settings: Settings object to update
        config: Configuration dictionary from YAML

    Returns:
        Updated Settings object
    """
    fields = type(settings).model_fields
    explicit = settings.model_fields_set

    for section, values in config.items():
        if not isinstance(values, dict):
            continue
        for key, value in values.items():
            name = f"{section}_{key}"
            if name in fields and name not in explicit:
                setattr(settings, name, value)

    return settings


def get_settings_with_yaml(config_path: Path | str | None = None) -> Settings:
    """
    Get settings with YAML configuration applied.

    Priority: Environment Variables > YAML Config > Defaults

    Args:
        config_path: Optional path to config file

    Returns:
        Settings object with YAML configuration applied
    """
    settings = get_settings()
    config = load_yaml_config(config_path)
    return apply_yaml_config(settings, config)
