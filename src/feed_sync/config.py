"""
Configuration management for feed-sync.

Provides centralized configuration using Pydantic for validation and
environment variable support. Supports feed_sync.yaml for per-project
settings such as category mappings.

The sync core never reads ``Config`` directly; it receives the read-only
``SyncSettings`` projection from ``Config.sync_settings()``.
"""

import os
from pathlib import Path
from typing import List, Optional, Tuple, Type

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from feed_sync.models.entities import CategoryMapping


# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Default data paths relative to project root
DB_PATH = PROJECT_ROOT / "data" / "db" / "feed_sync.db"

CONFIG_FILE_NAME = "feed_sync.yaml"
CONFIG_FILE_ENV = "FEED_SYNC_CONFIG_FILE"


def find_sync_yaml(search_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Locate the feed_sync.yaml configuration file.

    ``FEED_SYNC_CONFIG_FILE`` wins when set. Otherwise searches for
    feed_sync.yaml starting from search_dir (or the working directory)
    and walking up to 3 parent directories.

    Args:
        search_dir: Directory to start searching from

    Returns:
        Path to the file, or None if not found
    """
    explicit = os.environ.get(CONFIG_FILE_ENV)
    if explicit:
        return Path(explicit)

    start = search_dir or Path.cwd()
    for parent in [start] + list(start.parents)[:3]:
        candidate = parent / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate
    return None


class SyncSettings(BaseModel):
    """
    Read-only settings consumed by the content mapper and sync engine.

    ``specialized_content_type`` / ``specialized_taxonomy`` describe the
    dedicated report type and its category taxonomy; ``fallback_content_type``
    and ``generic_taxonomy`` are used when those don't exist.
    """
    feed_url: str = ""
    default_author: int = 1
    default_status: str = "draft"
    default_content_type: str = ""
    category_mappings: Tuple[CategoryMapping, ...] = ()
    fallback_content_type: str = "post"
    specialized_content_type: str = "reports"
    specialized_taxonomy: str = "reports-category"
    generic_taxonomy: str = "category"

    class Config:
        """Pydantic configuration."""
        frozen = True


class Config(BaseSettings):
    """
    Application configuration with environment variable support.

    Configuration can be provided via (highest priority first):
    1. Environment variables (prefixed with FEED_SYNC_)
    2. .env file
    3. feed_sync.yaml
    4. Default values

    Example:
        export FEED_SYNC_FEED_URL="https://example.substack.com/feed"
        export FEED_SYNC_DB_PATH="/custom/path/ledger.db"
    """

    model_config = SettingsConfigDict(
        env_prefix="FEED_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Feed
    feed_url: str = Field(
        default="",
        description="URL of the RSS/Atom feed to synchronize"
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Feed request timeout in seconds"
    )

    # Storage
    db_path: Path = Field(
        default=DB_PATH,
        description="Path to the SQLite sync ledger"
    )

    # Destination record defaults
    default_author: int = Field(
        default=1,
        description="Author id assigned to created records"
    )
    default_status: str = Field(
        default="draft",
        description="Status assigned to newly imported records"
    )
    review_status: str = Field(
        default="draft",
        description="Status forced on updated records so changes get reviewed"
    )
    default_content_type: str = Field(
        default="",
        description="Destination content type; empty selects the fallback"
    )
    fallback_content_type: str = Field(default="post")
    specialized_content_type: str = Field(default="reports")
    specialized_taxonomy: str = Field(default="reports-category")
    generic_taxonomy: str = Field(default="category")
    category_mappings: List[CategoryMapping] = Field(
        default_factory=list,
        description="Ordered keyword to category rules"
    )

    # Sync policy
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Failed entries with this many retries are skipped"
    )
    batch_size: int = Field(
        default=1,
        ge=1,
        description="Entries processed per batch call"
    )

    # WordPress destination
    wp_base_url: str = Field(
        default="",
        description="WordPress site URL, e.g. https://example.com"
    )
    wp_username: str = Field(default="")
    wp_app_password: Optional[str] = Field(
        default=None,
        description="WordPress application password"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        sources = [init_settings, env_settings, dotenv_settings]
        yaml_file = find_sync_yaml()
        if yaml_file is not None:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file))
        sources.append(file_secret_settings)
        return tuple(sources)

    @property
    def wordpress_configured(self) -> bool:
        """True when WordPress URL and credentials are all set."""
        return bool(self.wp_base_url and self.wp_username and self.wp_app_password)

    def sync_settings(self) -> SyncSettings:
        """Project the read-only settings the sync core consumes."""
        return SyncSettings(
            feed_url=self.feed_url,
            default_author=self.default_author,
            default_status=self.default_status,
            default_content_type=self.default_content_type,
            category_mappings=tuple(self.category_mappings),
            fallback_content_type=self.fallback_content_type,
            specialized_content_type=self.specialized_content_type,
            specialized_taxonomy=self.specialized_taxonomy,
            generic_taxonomy=self.generic_taxonomy,
        )

    def ensure_directories(self) -> None:
        """Create the ledger directory if it doesn't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)


def get_config() -> Config:
    """
    Get the application configuration instance.

    Merges settings from environment variables, .env file,
    and feed_sync.yaml (if present).

    Returns:
        Config: Application configuration
    """
    config = Config()
    config.ensure_directories()
    return config
