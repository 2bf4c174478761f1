"""Configuration management for watchstate."""

import logging
import os
import stat
from datetime import timedelta
from pathlib import Path
from typing import Optional

import yaml


class ConfigError(Exception):
    """Configuration error."""

    pass


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class Config:
    """Manages watchstate configuration."""

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize config with data directory."""
        if data_dir is None:
            data_dir = Path.cwd() / "data"
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.config_path = self.data_dir / "config.yaml"
        self.tree_path = self.data_dir / "tree.yaml"
        self.log_path = self.data_dir / "watchstate.log"

        self.user_id: Optional[str] = None

        # TMDB lookup, optional
        self.tmdb_api_key: Optional[str] = None
        self.language: str = "en-US"

        # Completed series detection
        self.cooldown_days: int = 7

        self.log_level: str = "INFO"

    @property
    def cooldown(self) -> timedelta:
        return timedelta(days=self.cooldown_days)

    @property
    def metadata_configured(self) -> bool:
        return bool(self.tmdb_api_key)

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    def set_user(self, user_id: str) -> None:
        if not user_id or "/" in user_id:
            raise ConfigError(f"Invalid user id: {user_id!r}")
        self.user_id = user_id

    def set_tmdb_credentials(self, api_key: Optional[str], language: str = "en-US") -> None:
        """Set TMDB API key (empty disables lookups)."""
        self.tmdb_api_key = api_key or None
        self.language = language

    def set_cooldown_days(self, days: int) -> None:
        if days < 0:
            raise ConfigError(f"Invalid cooldown: {days} days")
        self.cooldown_days = days

    def set_log_level(self, level: str) -> None:
        level = level.upper()
        if level not in LOG_LEVELS:
            raise ConfigError(f"Invalid log level: {level}")
        self.log_level = level

    def save(self) -> None:
        """Save configuration to YAML file."""
        data = {
            "user": {"id": self.user_id},
            "tmdb": {
                "api_key": self.tmdb_api_key,
                "language": self.language,
            },
            "completed": {"cooldown_days": self.cooldown_days},
            "logging": {"level": self.log_level},
        }

        with open(self.config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)

        # API key inside: owner read/write only
        if os.name != "nt":
            os.chmod(self.config_path, stat.S_IRUSR | stat.S_IWUSR)

    def load(self) -> None:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(
                f"Config file not found: {self.config_path}\n"
                "Run 'watchstate setup' to configure."
            )

        try:
            with open(self.config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid config file {self.config_path}: {e}")

        user = data.get("user") or {}
        self.user_id = user.get("id")
        if not self.user_id:
            raise ConfigError("Config has no user id. Run 'watchstate setup'.")

        tmdb = data.get("tmdb") or {}
        self.tmdb_api_key = tmdb.get("api_key")
        self.language = tmdb.get("language") or "en-US"

        completed = data.get("completed") or {}
        try:
            self.set_cooldown_days(int(completed.get("cooldown_days", 7)))
        except (TypeError, ValueError):
            raise ConfigError("cooldown_days must be a number")

        self.set_log_level((data.get("logging") or {}).get("level", "INFO"))

    def configure_logging(self, verbose: bool = False) -> None:
        """Send package logs to the log file, and to stderr when verbose."""
        package_logger = logging.getLogger("watchstate")
        package_logger.setLevel(logging.DEBUG if verbose else getattr(logging, self.log_level))

        for handler in list(package_logger.handlers):
            package_logger.removeHandler(handler)
            handler.close()

        file_handler = logging.FileHandler(self.log_path)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        package_logger.addHandler(file_handler)

        if verbose:
            stream_handler = logging.StreamHandler()
            stream_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
            package_logger.addHandler(stream_handler)
