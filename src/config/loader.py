"""
Configuration loader for the Holded purchase sync service.

Loads configuration from YAML files and environment variables with type safety
and nested key access.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_BASE_URL = "https://api.holded.com/api/invoicing/v1"

# Global configuration cache
_config_cache: dict[str, Any] | None = None
_config_path: str = "config/app.yaml"


class HoldedCompanyConfig(BaseModel):
    """Credentials and endpoint for one Holded account (one tenant)."""

    id: str = Field(..., description="Company key, e.g. 'solucions'")
    api_key: str = Field(..., description="Holded API key sent in the 'key' header")
    base_url: str = Field(default=DEFAULT_BASE_URL, description="Holded invoicing API base URL")
    name: str | None = Field(default=None, description="Human readable company name")

    def __repr__(self) -> str:
        return f"HoldedCompanyConfig(id={self.id!r}, base_url={self.base_url!r})"


class ConfigurationError(ValueError):
    """Raised when required configuration is missing or invalid."""


def load_config(config_path: str | None = None) -> dict[str, Any]:
    """Load configuration from YAML file with environment variable support."""
    global _config_cache, _config_path

    if config_path is not None and config_path != _config_path:
        _config_path = config_path
        _config_cache = None

    if _config_cache is not None:
        return _config_cache

    # Load environment variables
    load_dotenv()

    config_file = Path(_config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {_config_path}")

    with open(config_file) as f:
        config = yaml.safe_load(f) or {}

    _config_cache = config
    return config


def cfg(key: str, default: Any = None) -> Any:
    """
    Get configuration value using dot notation.

    Args:
        key: Dot-separated key path (e.g., "sync.page_size")
        default: Default value if key is not found

    Returns:
        Configuration value or default

    Examples:
        cfg("global.timezone", "UTC")
        cfg("holded.companies.solucions.enabled", True)
    """
    config = load_config()

    if "." not in key:
        return config.get(key, default)

    value = config
    try:
        for k in key.split("."):
            value = value[k]
        return value
    except (KeyError, TypeError):
        return default


def env(key: str, default: str | None = None) -> str | None:
    """Get environment variable with optional default."""
    return os.getenv(key, default)


def get_required_env(key: str) -> str:
    """
    Get required environment variable or raise error.

    Raises:
        ConfigurationError: If environment variable is not set
    """
    value = env(key)
    if not value:
        raise ConfigurationError(f"{key} environment variable is required")
    return value


def get_database_url() -> str:
    """Get database URL from environment."""
    return get_required_env("DATABASE_URL")


def get_company_ids(enabled_only: bool = True) -> list[str]:
    """List configured Holded company keys."""
    companies = cfg("holded.companies", {}) or {}
    return [
        company_id
        for company_id, company in companies.items()
        if not enabled_only or (company or {}).get("enabled", True)
    ]


def get_company_config(company_id: str) -> HoldedCompanyConfig:
    """
    Build the Holded credentials record for a company.

    The API key is never stored in YAML; the company entry names the
    environment variable holding it (``api_key_env``), defaulting to
    ``HOLDED_API_KEY_<COMPANY>``.

    Raises:
        ConfigurationError: Unknown company or missing API key
    """
    company = cfg(f"holded.companies.{company_id}")
    if company is None:
        raise ConfigurationError(f"Unknown Holded company: {company_id}")

    key_var = company.get("api_key_env") or f"HOLDED_API_KEY_{company_id.upper()}"
    return HoldedCompanyConfig(
        id=company_id,
        api_key=get_required_env(key_var),
        base_url=company.get("base_url") or cfg("holded.base_url", DEFAULT_BASE_URL),
        name=company.get("name"),
    )


def get_company_schedule(company_id: str) -> str | None:
    """Get cron schedule for a company's purchase sync."""
    return cfg(f"holded.companies.{company_id}.schedule")


def get_sync_settings() -> dict[str, Any]:
    """Sync tuning knobs with defaults applied."""
    return {
        "page_size": cfg("sync.page_size", 100),
        "max_pages": cfg("sync.max_pages", 1000),
        "pagination_policy": cfg("sync.pagination_policy", "best_effort"),
        "collection_strategy": cfg("sync.collection_strategy", "single_walk"),
    }


def get_api_settings() -> dict[str, Any]:
    """HTTP client settings for the Holded adapter."""
    return {
        "timeout": cfg("holded.api.timeout", 30),
        "max_retries": cfg("holded.api.max_retries", 3),
        "rate_limit_delay": cfg("holded.api.rate_limit_delay", 0.2),
    }


def validate_config() -> None:
    """Validate configuration and required environment variables."""
    errors = []

    try:
        get_database_url()
    except ConfigurationError as e:
        errors.append(str(e))

    company_ids = get_company_ids()
    if not company_ids:
        errors.append("No Holded companies enabled under holded.companies")

    for company_id in company_ids:
        try:
            get_company_config(company_id)
        except ConfigurationError as e:
            errors.append(f"Holded {company_id}: {e}")

    policy = cfg("sync.pagination_policy", "best_effort")
    if policy not in ("best_effort", "fail_fast"):
        errors.append(f"sync.pagination_policy must be best_effort or fail_fast, got {policy!r}")

    strategy = cfg("sync.collection_strategy", "single_walk")
    if strategy not in ("single_walk", "separate_walks"):
        errors.append(
            f"sync.collection_strategy must be single_walk or separate_walks, got {strategy!r}"
        )

    if errors:
        raise ConfigurationError(
            "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
        )


def reload_config() -> None:
    """Force reload of configuration cache."""
    global _config_cache
    _config_cache = None
