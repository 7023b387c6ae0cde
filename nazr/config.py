"""Configuration for the Nazr gallery client core.

Configuration hierarchy (highest to lowest priority):
1. Environment variables (NAZR_*)
2. YAML config file passed to AppConfig.from_yaml()
3. Hardcoded defaults

Example:
    >>> from nazr.config import get_config
    >>> config = get_config()
    >>> config.effective_page_size
    200
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

PAGE_SIZE_TIERS = {
    "low": 120,
    "medium": 200,
    "high": 320,
}

DEFAULT_API_BASE_URL = "http://localhost:9161"
DEFAULT_PAGE_SIZE = 200


def _default_albums_path() -> Path:
    return Path.home() / ".nazr" / "albums.json"


@dataclass
class AppConfig:
    """Configuration for the gallery client core."""

    # API settings
    api_base_url: str = DEFAULT_API_BASE_URL
    api_timeout_sec: float = 30.0

    # Gallery view settings
    page_size: int = DEFAULT_PAGE_SIZE
    page_size_tier: Optional[str] = None  # low, medium, high
    gallery_sort: str = "mtime"
    gallery_order: str = "desc"

    # Bulk actions
    bulk_concurrency: int = 8
    delete_permanently: bool = False

    # Albums
    albums_path: Path = None
    prune_albums_on_delete: bool = False
    max_dependent_fetches: Optional[int] = None

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    def __post_init__(self):
        self.api_base_url = self.api_base_url.rstrip("/")
        if self.albums_path is None:
            self.albums_path = _default_albums_path()
        self.albums_path = Path(self.albums_path).expanduser()
        if self.log_file is not None:
            self.log_file = Path(self.log_file).expanduser()
        if self.page_size_tier is not None and self.page_size_tier not in PAGE_SIZE_TIERS:
            raise ValueError(
                f"Unknown page size tier '{self.page_size_tier}', "
                f"expected one of {sorted(PAGE_SIZE_TIERS)}"
            )
        if self.bulk_concurrency < 1:
            raise ValueError("bulk_concurrency must be at least 1")

    @property
    def effective_page_size(self) -> int:
        """Page size for the default gallery view, honoring the tier if set."""
        if self.page_size_tier:
            return PAGE_SIZE_TIERS[self.page_size_tier]
        return self.page_size

    def with_env(self) -> "AppConfig":
        """Return a copy with NAZR_* environment overrides applied."""
        overrides: Dict[str, Any] = {}
        env = os.environ
        if "NAZR_API_BASE_URL" in env:
            overrides["api_base_url"] = env["NAZR_API_BASE_URL"]
        if "NAZR_API_TIMEOUT_SEC" in env:
            overrides["api_timeout_sec"] = float(env["NAZR_API_TIMEOUT_SEC"])
        if "NAZR_PAGE_SIZE" in env:
            overrides["page_size"] = int(env["NAZR_PAGE_SIZE"])
        if "NAZR_PAGE_SIZE_TIER" in env:
            overrides["page_size_tier"] = env["NAZR_PAGE_SIZE_TIER"] or None
        if "NAZR_BULK_CONCURRENCY" in env:
            overrides["bulk_concurrency"] = int(env["NAZR_BULK_CONCURRENCY"])
        if "NAZR_ALBUMS_PATH" in env:
            overrides["albums_path"] = Path(env["NAZR_ALBUMS_PATH"])
        if "NAZR_LOG_LEVEL" in env:
            overrides["log_level"] = env["NAZR_LOG_LEVEL"]
        return replace(self, **overrides)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create config from defaults plus environment variables."""
        return cls().with_env()

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path], apply_env: bool = True) -> "AppConfig":
        """
        Load configuration from a YAML file.

        Unknown keys are ignored with a warning. Environment variables
        still take precedence unless apply_env is False.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in raw.items():
            if key in known:
                values[key] = value
            else:
                logger.warning(f"Ignoring unknown config key '{key}' in {path}")

        config = cls(**values)
        logger.info(f"Loaded config from: {path}")
        return config.with_env() if apply_env else config


# Global config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global config instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: Optional[AppConfig]) -> None:
    """Set the global config instance (None resets to lazy defaults)."""
    global _config
    _config = config
