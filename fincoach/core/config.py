"""
Application settings management.

Settings are loaded from environment variables with .env file support.
Coaching behaviour (debounce delays, retry budgets, keep-alive marks,
spending benchmarks) lives in config/coaching_config.yaml.
All configuration is validated using Pydantic.
"""

from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


StorageBackend = Literal["memory", "file", "dated_file", "sqlite"]


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Path = Field(
        default=Path("config"),
        description="Directory containing YAML configuration files",
    )
    data_dir: Path = Field(
        default=Path("data"), description="Directory for notebooks and session records"
    )
    log_dir: Path = Field(default=Path("logs"), description="Directory for log files")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_files_to_keep: int = Field(
        default=5, ge=1, description="Run log files retained in log_dir"
    )

    # ==========================================================================
    # Storage
    # ==========================================================================

    storage_backend: StorageBackend = Field(
        default="file",
        description="Storage adapter: memory, file, dated_file or sqlite",
    )
    database_path: Path = Field(
        default=Path("data/fincoach.db"),
        description="Path to SQLite database file (sqlite backend only)",
    )

    # ==========================================================================
    # Text generation (qualitative report)
    # ==========================================================================
    #
    # Without an API key the qualitative report is always built from the
    # local template.

    anthropic_api_key: Optional[str] = Field(
        default=None, description="Anthropic API key"
    )
    report_model: str = Field(
        default="claude-sonnet-4-6", description="Model used for qualitative reports"
    )
    report_temperature: float = Field(default=0.4, ge=0.0, le=1.0)
    report_max_tokens: int = Field(default=1500, ge=64, le=8192)
    report_timeout: float = Field(
        default=30.0, gt=0, description="Text-generation timeout in seconds"
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


# ============================================================================
# Coaching Configuration (from YAML)
# ============================================================================


class NotebookConfig(BaseModel):
    """Notebook persistence behaviour."""

    autosave_delay_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Quiet period after the last mutation before auto-saving",
    )


class RegistryConfig(BaseModel):
    """Session registry behaviour."""

    cleanup_after_minutes: int = Field(
        default=60, ge=1, description="Inactivity threshold for the cleanup sweep"
    )
    cleanup_interval_seconds: float = Field(
        default=300.0, gt=0, description="How often the cleanup sweep runs"
    )
    resolve_max_retries: int = Field(default=3, ge=1, le=10)
    resolve_base_delay_seconds: float = Field(
        default=0.1, ge=0, description="Base of the 100ms x 2^attempt backoff"
    )


class RetryConfig(BaseModel):
    """Generic retry executor defaults."""

    max_retries: int = Field(default=3, ge=0, le=10)
    base_delay_seconds: float = Field(default=1.0, ge=0)
    max_delay_seconds: float = Field(default=30.0, ge=0)


class WarningMark(BaseModel):
    """A point in the session at which the client is warned of a limit."""

    at_seconds: int = Field(ge=0)
    minutes_remaining: int = Field(default=1, ge=0)


class KeepAliveConfig(BaseModel):
    """Keep-alive scheduling for the external voice session.

    The provider drops idle sessions at 5 and 10 minutes; the keep-alive
    marks sit 30 seconds before each.
    """

    enabled: bool = Field(
        default=True, description="Run a scheduler for every held notebook session"
    )
    poll_interval_seconds: float = Field(default=5.0, gt=0)
    keep_alive_marks_seconds: List[int] = Field(default_factory=lambda: [270, 570])
    warning_marks: List[WarningMark] = Field(
        default_factory=lambda: [
            WarningMark(at_seconds=285),
            WarningMark(at_seconds=585),
            WarningMark(at_seconds=885),
        ]
    )
    max_session_minutes: int = Field(default=30, ge=1)

    @field_validator("keep_alive_marks_seconds")
    @classmethod
    def sort_marks(cls, v: List[int]) -> List[int]:
        """Keep marks in ascending order."""
        return sorted(v)


class BenchmarkConfig(BaseModel):
    """Spending benchmarks used for savings-opportunity detection.

    Fractions are of monthly income; subscriptions use a flat amount.
    """

    housing: float = Field(default=0.30, gt=0, le=1)
    food: float = Field(default=0.12, gt=0, le=1)
    entertainment: float = Field(default=0.07, gt=0, le=1)
    subscriptions_flat: float = Field(default=50.0, ge=0)


class ReportConfig(BaseModel):
    """Report generation behaviour."""

    min_lifestyle_categories: int = Field(
        default=6,
        ge=1,
        le=7,
        description="Populated lifestyle categories needed before reports are worth generating",
    )


class CoachingConfig(BaseModel):
    """
    Complete coaching configuration loaded from coaching_config.yaml.
    """

    notebook: NotebookConfig = Field(default_factory=NotebookConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    keep_alive: KeepAliveConfig = Field(default_factory=KeepAliveConfig)
    benchmarks: BenchmarkConfig = Field(default_factory=BenchmarkConfig)
    reports: ReportConfig = Field(default_factory=ReportConfig)


def load_coaching_config(config_path: Optional[Path] = None) -> CoachingConfig:
    """
    Load coaching configuration from YAML file.

    Args:
        config_path: Path to coaching_config.yaml. If None, looks in the
            project's config/ directory, then in the working directory.

    Returns:
        CoachingConfig with validated settings (defaults if no file found)

    Raises:
        pydantic.ValidationError: If the file contents fail validation
    """
    if config_path is None:
        project_config = (
            Path(__file__).resolve().parent.parent.parent
            / "config"
            / "coaching_config.yaml"
        )
        cwd_config = Path.cwd() / "config" / "coaching_config.yaml"
        if project_config.exists():
            config_path = project_config
        elif cwd_config.exists():
            config_path = cwd_config
        else:
            return CoachingConfig()

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        return CoachingConfig()

    with open(str(config_path)) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        return CoachingConfig()

    return CoachingConfig(**config_data)


# Global settings instance
settings = Settings()

# Global coaching config instance
coaching_config = load_coaching_config()
