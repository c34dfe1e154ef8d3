"""Configuration management for staycheck.

This module provides the StaycheckSettings class for managing all
configuration options, supporting both environment variables and
configuration files.
"""

from pathlib import Path
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StaycheckSettings(BaseSettings):
    """Global configuration for staycheck.

    Settings can be configured via:
    - Environment variables (prefixed with STAYCHECK_)
    - .env file
    - Direct instantiation

    Example:
        >>> settings = StaycheckSettings(auto_correct_threshold=0.97)
        >>> # Or via environment: STAYCHECK_AUTO_CORRECT_THRESHOLD=0.97
    """

    # Correction thresholds
    correction_min_confidence: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Issue confidence above which a suggested fix becomes a correction",
    )
    auto_correct_threshold: float = Field(
        default=0.95,
        ge=0.0,
        le=1.0,
        description="Issue confidence above which a correction is applied in place",
    )
    auto_correct_threshold_min: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Lower bound for the adaptive auto-correct threshold",
    )
    auto_correct_threshold_max: float = Field(
        default=0.98,
        ge=0.0,
        le=1.0,
        description="Upper bound for the adaptive auto-correct threshold",
    )
    threshold_relax_factor: float = Field(
        default=0.98,
        gt=0.0,
        le=1.0,
        description="Threshold multiplier when recent session accuracy is high",
    )
    threshold_tighten_factor: float = Field(
        default=1.02,
        ge=1.0,
        description="Threshold multiplier when recent session accuracy is low",
    )
    default_confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for a result to be accepted",
    )

    # Orchestrator limits
    history_limit_per_session: int = Field(
        default=50,
        ge=1,
        description="Validation results kept per session",
    )
    max_batch_size: int = Field(
        default=50,
        ge=1,
        description="Maximum requests accepted by one batch call",
    )
    batch_concurrency: int = Field(
        default=10,
        ge=1,
        description="Validations in flight at once during a batch",
    )

    # Fact checking
    fact_database_path: Path | None = Field(
        default=None,
        description="Path to a YAML fact database replacing the bundled one",
    )
    verifier_timeout: float = Field(
        default=3.0,
        gt=0.0,
        le=30.0,
        description="Timeout for a single external verifier call in seconds",
    )
    exchange_rate_api_url: str | None = Field(
        default=None,
        description="Base URL of an exchange rate API; enables the HTTP currency verifier",
    )
    exchange_rate_cache_ttl: float = Field(
        default=300.0,
        ge=0.0,
        description="Seconds a fetched exchange rate table is reused",
    )

    # Real-time notifications
    notification_timeout: float = Field(
        default=1.0,
        gt=0.0,
        description="Seconds allowed for delivering one message to one subscriber",
    )

    # Calibration
    readings_per_session: int = Field(
        default=1000,
        ge=1,
        description="Confidence readings kept per session",
    )
    feedback_match_window: float = Field(
        default=5.0,
        gt=0.0,
        description="Seconds between a reading and its feedback timestamp",
    )
    retrain_min_samples: int = Field(
        default=1000,
        ge=1,
        description="Fresh feedback samples needed to trigger retraining",
    )
    training_data_cap: int = Field(
        default=10000,
        ge=1,
        description="Maximum training samples kept in memory",
    )
    training_data_drop: int = Field(
        default=2000,
        ge=1,
        description="Oldest samples dropped when the cap is exceeded",
    )
    training_batch_size: int = Field(
        default=32,
        ge=1,
        description="Mini-batch size for retraining",
    )
    training_max_epochs: int = Field(
        default=500,
        ge=1,
        description="Upper bound on retraining epochs",
    )
    learning_rate: float = Field(
        default=0.1,
        gt=0.0,
        description="Gradient descent step size",
    )
    early_stop_loss: float = Field(
        default=0.01,
        ge=0.0,
        description="Average batch loss that ends retraining early",
    )
    complexity_normalizer: int = Field(
        default=50,
        ge=1,
        description="Errors + warnings + top-level fields that count as full complexity",
    )
    complexity_field_cap: int = Field(
        default=10,
        ge=0,
        description="Most top-level fields counted towards complexity",
    )
    model_seed: int = Field(
        default=7,
        description="Seed for weight jitter and shuffling",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_format: str = Field(
        default="structured",
        description="Log format: 'structured' or 'plain'",
    )

    model_config = SettingsConfigDict(
        env_prefix="STAYCHECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_threshold_bounds(self) -> "StaycheckSettings":
        if self.auto_correct_threshold_min > self.auto_correct_threshold_max:
            raise ValueError("auto_correct_threshold_min must not exceed auto_correct_threshold_max")
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary."""
        return self.model_dump()


# Global settings instance (lazy-loaded)
_settings: StaycheckSettings | None = None


def get_settings() -> StaycheckSettings:
    """Get the global settings instance.

    Returns:
        The global StaycheckSettings instance, creating it if needed.
    """
    global _settings
    if _settings is None:
        _settings = StaycheckSettings()
    return _settings


def configure(**kwargs: Any) -> StaycheckSettings:
    """Configure global settings.

    Args:
        **kwargs: Settings to override

    Returns:
        The updated global settings instance

    Example:
        >>> configure(verifier_timeout=2.0, log_level="DEBUG")
    """
    global _settings
    _settings = StaycheckSettings(**kwargs)
    return _settings
