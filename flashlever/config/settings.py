"""
Application settings with Pydantic validation.

Runtime settings come from environment variables (or a .env file).
Risk and oracle parameters are loaded from the bundled risk.yaml.
"""
from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Package config directory
CONFIG_DIR = Path(__file__).parent


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Example:
        export LOG_LEVEL=DEBUG
        export RPC_URL=https://arb1.arbitrum.io/rpc
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Only needed for live feed reads
    rpc_url: Optional[str] = Field(default=None, alias="RPC_URL")
    chain_id: int = Field(default=42161, alias="CHAIN_ID")

    # Overrides the bundled risk.yaml when set
    risk_config_path: Optional[str] = Field(default=None, alias="RISK_CONFIG_PATH")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if v.lower() not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# Global settings instance (lazy-loaded)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global _settings, _risk_config
    _settings = Settings()
    _risk_config = None
    return _settings


def clear_settings_cache() -> None:
    """Drop cached settings and risk config without re-reading the environment."""
    global _settings, _risk_config
    _settings = None
    _risk_config = None


# Risk configuration loaded from YAML
_risk_config: Optional[dict] = None


def load_risk_config() -> dict:
    """Load risk configuration from YAML file."""
    global _risk_config
    if _risk_config is None:
        override = get_settings().risk_config_path
        risk_yaml_path = Path(override) if override else CONFIG_DIR / "risk.yaml"
        if not risk_yaml_path.exists():
            raise FileNotFoundError(f"Risk config not found: {risk_yaml_path}")

        with open(risk_yaml_path, "r") as f:
            _risk_config = yaml.safe_load(f) or {}

    return _risk_config


def get_risk_limits() -> dict:
    """Get risk limits section from config."""
    return load_risk_config().get("risk_limits", {})


def get_oracle_config() -> dict:
    """Get oracle section from config."""
    return load_risk_config().get("oracle", {})


def get_simulation_config() -> dict:
    """Get simulation defaults section from config."""
    return load_risk_config().get("simulation", {})
