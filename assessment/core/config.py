"""
Application settings management.

Settings are loaded from environment variables with .env file support.
Per-stage pipeline configuration (assistant ids, instructions, fallback
policy) is loaded from config/pipeline_config.yaml.
All configuration is validated using Pydantic.
"""

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Database / session store
    # ==========================================================================

    database_path: Path = Field(
        default=Path("data/assessment.db"), description="Path to SQLite database file"
    )
    session_store_backend: Literal["memory", "sqlite"] = Field(
        default="sqlite",
        description="Session state store implementation",
    )
    session_lock_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Maximum wait for another in-flight turn on the same session",
    )
    analytics_enabled: bool = Field(
        default=True, description="Write anonymised stage snapshots"
    )

    # ==========================================================================
    # Completion oracle
    # ==========================================================================
    #
    # The oracle is an Assistants-style service (threads, messages, runs).
    # "chat" selects the stateless chat-completions provider instead.

    oracle_provider: Literal["assistants", "chat"] = Field(
        default="assistants", description="Completion oracle provider"
    )
    oracle_base_url: str = Field(
        default="https://api.openai.com/v1", description="Oracle API base URL"
    )
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    oracle_request_timeout: float = Field(
        default=30.0, gt=0, description="Timeout for a single oracle HTTP request"
    )
    oracle_poll_interval_seconds: float = Field(
        default=1.0, ge=0, description="Fixed interval between run status polls"
    )
    oracle_max_wait_seconds: float = Field(
        default=60.0, gt=0, description="Upper bound on total wait for a run"
    )
    oracle_response_format: Literal["json_schema", "json_object"] = Field(
        default="json_schema",
        description="Structured output contract requested from the oracle",
    )

    # Optional assistant id overrides (take precedence over pipeline_config.yaml)
    qualifier_assistant_id: Optional[str] = Field(default=None)
    assessor_assistant_id: Optional[str] = Field(default=None)
    analyzer_assistant_id: Optional[str] = Field(default=None)

    # ==========================================================================
    # Server Configuration
    # ==========================================================================

    log_dir: Path = Field(default=Path("logs"), description="Directory for log files")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_files_to_keep: int = Field(
        default=5, ge=1, description="Log files retained across process starts"
    )
    log_preview_chars: int = Field(
        default=200,
        ge=0,
        description="Longest oracle/user text excerpt written to logs",
    )

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


# ============================================================================
# Pipeline Configuration (from YAML)
# ============================================================================


class StageConfig(BaseModel):
    """Configuration for a single pipeline stage agent."""

    name: str
    assistant_id: Optional[str] = Field(
        default=None, description="Oracle assistant id for this stage"
    )
    model: str = Field(default="gpt-4o-mini")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    instructions: str = Field(
        default="", description="System instructions (chat provider only)"
    )
    fallback_complete: bool = Field(
        default=False,
        description="Completion flag synthesised when extraction fully fails",
    )


class PipelineConfig(BaseModel):
    """
    Complete pipeline configuration loaded from pipeline_config.yaml.

    One entry per stage agent. Missing entries fall back to defaults so the
    service starts without a config file.
    """

    qualifier: StageConfig = Field(
        default_factory=lambda: StageConfig(name="Qualifier")
    )
    assessor: StageConfig = Field(default_factory=lambda: StageConfig(name="Assessor"))
    analyzer: StageConfig = Field(default_factory=lambda: StageConfig(name="Analyzer"))

    def for_stage(self, stage: str) -> StageConfig:
        """Return the configuration block for a stage tag."""
        return getattr(self, stage)


def load_pipeline_config(config_path: Optional[Path] = None) -> PipelineConfig:
    """
    Load pipeline configuration from YAML file.

    Args:
        config_path: Path to pipeline_config.yaml. If None, uses default path.

    Returns:
        PipelineConfig with validated settings

    Raises:
        ValueError: If config validation fails
    """
    if config_path is None:
        # Default path: config/pipeline_config.yaml relative to project root
        project_config = (
            Path(__file__).resolve().parent.parent.parent
            / "config"
            / "pipeline_config.yaml"
        )
        cwd_config = Path.cwd() / "config" / "pipeline_config.yaml"
        if project_config.exists():
            config_path = project_config
        elif cwd_config.exists():
            config_path = cwd_config
        else:
            return PipelineConfig()

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        return PipelineConfig()

    with open(str(config_path)) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        return PipelineConfig()

    return PipelineConfig(**config_data.get("stages", config_data))


# Global settings instance
settings = Settings()

# Global pipeline config instance
pipeline_config = load_pipeline_config()
