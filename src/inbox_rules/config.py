"""Application configuration management."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="INBOX_RULES_",
        env_file=[
            ".env",  # Project-level defaults (lower priority)
            Path.home() / ".config" / "inbox-rules" / ".env",  # User config (higher priority)
        ],
        env_file_encoding="utf-8",
    )

    # AI Provider settings
    ai_provider: Literal["claude", "openai", "ollama"] = Field(
        default="claude", description="LLM provider used for matching and generation"
    )

    # Claude settings
    anthropic_api_key: str | None = Field(
        default=None, description="Anthropic API key"
    )
    claude_model: str = Field(
        default="claude-haiku-4-5-20251001", description="Claude model to use"
    )

    # OpenAI settings
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o", description="OpenAI model to use")

    # Ollama settings
    ollama_host: str = Field(
        default="http://localhost:11434", description="Ollama server URL"
    )
    ollama_model: str = Field(default="llama3.2", description="Ollama model to use")

    # Local user the CLI acts as
    user_id: str = Field(default="default", description="User id for CLI commands")
    user_email: str | None = Field(default=None, description="Mailbox address of the CLI user")
    user_about: str | None = Field(default=None, description="Profile text shown to the LLM")

    # Retry settings
    retry_max_attempts: int = Field(
        default=3, ge=1, description="Attempts per provider call before giving up"
    )
    retry_base_delay: float = Field(
        default=1.0, ge=0.0, description="Initial backoff delay in seconds"
    )
    retry_max_delay: float = Field(
        default=30.0, ge=0.0, description="Upper bound on a single backoff delay"
    )

    # Sender categorization
    categorize_concurrency: int = Field(
        default=3, ge=1, description="Concurrent sender categorization calls"
    )
    default_categories: list[str] = Field(
        default=[
            "Newsletter",
            "Marketing",
            "Receipts",
            "Notifications",
            "Banking",
            "Social",
            "Support",
            "Personal",
        ],
        description="Categories created for new users",
    )

    # Paths
    config_dir: Path = Field(
        default=Path.home() / ".config" / "inbox-rules",
        description="Configuration directory",
    )
    rules_file: str = Field(default="rules.yaml", description="Rules import filename")
    database_file: str = Field(default="inbox-rules.db", description="SQLite database filename")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: Path = Field(
        default=Path.home() / ".local" / "state" / "inbox-rules" / "logs",
        description="Directory for log files (per-user logs written here)",
    )
    log_rotation_size_mb: int = Field(
        default=5, ge=1, description="Max size per log file in MB before rotation"
    )
    log_backup_count: int = Field(
        default=3, ge=0, description="Number of rotated log files to keep"
    )

    @property
    def rules_path(self) -> Path:
        """Full path to the rules import file."""
        return self.config_dir / self.rules_file

    @property
    def database_path(self) -> Path:
        """Path to the SQLite database."""
        return self.config_dir / self.database_file

    def ensure_config_dir(self) -> None:
        """Create config directory if it doesn't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)


def load_rules(path: Path) -> list[dict]:
    """Load rule definitions from a YAML file."""
    if not path.exists():
        return []

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return data.get("rules", [])


def save_rules(path: Path, rules: list[dict]) -> None:
    """Save rule definitions to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.dump({"rules": rules}, f, default_flow_style=False, sort_keys=False)
