"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables (prefix GATEKEEPER_) and .env file.
"""

from typing import List

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="GATEKEEPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="gatekeeper-core", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")

    # Validation
    strict_mode: bool = Field(default=False, description="Block on any violation, not only CRITICAL ones")
    validator_budget_ms: float = Field(default=1.0, description="Latency budget for pre-validation")

    # Hook pipeline
    pre_hook_budget_ms: float = Field(default=1.0, description="Latency budget for a pre-hook run")
    post_hook_budget_ms: float = Field(default=5.0, description="Latency budget for a post-hook run")
    enabled_hooks: List[str] = Field(
        default=["security", "performance", "quality"],
        description="Default hooks to register",
    )

    # Truth scoring
    truth_threshold: float = Field(default=0.95, description="Score required to verify")
    warning_threshold: float = Field(default=0.85, description="Lower bound of the 'good' tier")
    critical_threshold: float = Field(default=0.75, description="Lower bound of the 'warning' tier")
    auto_rollback: bool = Field(default=True, description="Invoke rollback callback on failed verification")
    score_history_size: int = Field(default=1000, description="Score records kept for trends")

    # Orchestration
    max_retries: int = Field(default=3, description="Retries after the first attempt")
    strategy: str = Field(default="adaptive", description="Strategy passed to the task executor")
    priority: str = Field(default="medium", description="Priority passed to the task executor")
    max_agents: int = Field(default=5, description="Max concurrent agents passed to the task executor")
    executor_command: str = Field(default="npx", description="Launcher for the external orchestration tool")
    executor_package: str = Field(default="claude-flow@alpha", description="External orchestration package")
    executor_timeout: float = Field(default=30.0, description="Executor time bound in seconds")

    # Engine
    shutdown_timeout: float = Field(default=5.0, description="Bounded wait for in-flight operations")
    latency_history_size: int = Field(default=1000, description="Latency samples kept for percentiles")
    max_concurrent_ops: int = Field(default=10, description="Operations the engine runs at once")
    circuit_breaker_threshold: float = Field(default=0.5, description="Failure rate that opens the circuit")
    circuit_breaker_min_operations: int = Field(default=5, description="Finished operations before the rate counts")
    circuit_breaker_reset: float = Field(default=60.0, description="Seconds before an open circuit resets")

    # Logging / Privacy
    log_redaction_enabled: bool = Field(default=True, description="Enable secret redaction in logs")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"

    @model_validator(mode="after")
    def _validate_thresholds(self) -> "Settings":
        """Fail fast: thresholds must be ordered and budgets non-negative."""
        if not 0.0 <= self.critical_threshold <= self.warning_threshold <= 1.0:
            raise ValueError(
                "Thresholds must satisfy 0 <= critical_threshold <= warning_threshold <= 1, "
                f"got critical={self.critical_threshold} warning={self.warning_threshold}"
            )
        if not 0.0 <= self.truth_threshold <= 1.0:
            raise ValueError(f"truth_threshold must be within [0, 1], got {self.truth_threshold}")
        for name in ("validator_budget_ms", "pre_hook_budget_ms", "post_hook_budget_ms"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.max_concurrent_ops < 1:
            raise ValueError("max_concurrent_ops must be at least 1")
        return self


# Global settings instance
settings = Settings()
