"""
Configuration management using Pydantic Settings.

Architecture Decision: Why pydantic-settings?
- Type-safe configuration with validation
- Supports multiple sources (YAML, env vars, defaults)
- Easy to test with different configurations
"""

import os
from pathlib import Path
from typing import Optional, Any, Dict
import yaml

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with multiple sources:
    1. Default values (hardcoded)
    2. YAML config file
    3. Environment variables (highest priority)
    """
    model_config = SettingsConfigDict(
        env_prefix='WORKTRACK_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    # Application paths
    app_name: str = "WorkTrack"
    config_dir: Optional[Path] = None
    data_dir: Optional[Path] = None

    # Database
    database_url: Optional[str] = None
    sql_echo: bool = False

    # Logging
    log_level: str = "INFO"
    log_dir: Path = Path("logs")

    # Report scheduling. Defaults fire at 09:00 UTC (17:00 AWST).
    scheduler_timezone: str = "UTC"
    daily_report_cron: str = "0 9 * * *"
    weekly_report_cron: str = "0 9 * * mon"
    monthly_report_cron: str = "0 9 1 * *"
    report_concurrency: int = Field(default=4, ge=1)
    report_retry_attempts: int = Field(default=3, ge=1)
    report_retry_max_wait_seconds: float = Field(default=30.0, gt=0)

    def __init__(self, **kwargs):
        yaml_values = self._load_yaml_config(kwargs.get("config_dir"))
        # Explicit kwargs win over YAML; env vars win over both defaults and YAML
        for key, value in yaml_values.items():
            env_name = f"WORKTRACK_{key.upper()}"
            if key not in kwargs and env_name not in os.environ:
                kwargs[key] = value
        super().__init__(**kwargs)
        self._init_paths()

    def _init_paths(self):
        """Initialize default paths based on OS"""
        if self.config_dir is None:
            if os.name == 'nt':  # Windows
                base = Path(os.getenv('APPDATA'))
            else:  # Linux/Mac
                base = Path.home() / '.config'
            self.config_dir = base / self.app_name.lower()

        if self.data_dir is None:
            if os.name == 'nt':  # Windows
                base = Path(os.getenv('APPDATA'))
            else:  # Linux/Mac
                base = Path.home() / '.local' / 'share'
            self.data_dir = base / self.app_name.lower()

    @staticmethod
    def _load_yaml_config(config_dir: Optional[Path]) -> Dict[str, Any]:
        """Load configuration from YAML file"""
        # First check in workspace config folder
        config_file = Path("config/settings.yaml")
        if not config_file.exists() and config_dir is not None:
            # Then check in the configured directory
            config_file = Path(config_dir) / "settings.yaml"

        if config_file.exists():
            with open(config_file, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f)
                if isinstance(config_data, dict):
                    return config_data
        return {}

    def get_db_url(self) -> str:
        """Get database URL, creating default if not set"""
        if self.database_url:
            return self.database_url

        self.data_dir.mkdir(parents=True, exist_ok=True)
        db_path = self.data_dir / 'worktrack.db'
        return f"sqlite+aiosqlite:///{db_path}"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings from file"""
    global _settings
    _settings = Settings()
    return _settings
