"""Configuration management for pydrivesync."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://www.googleapis.com/drive/v3"


class Config:
    """Configuration read from the environment and a JSON config file.

    Environment variables take precedence over the config file:

    - ``DRIVESYNC_API_KEY``: bearer token for the storage backend
    - ``DRIVESYNC_API_URL``: base URL of the storage backend
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding config.json. Defaults to
                ~/.config/pydrivesync/
        """
        if config_dir is None:
            config_dir = Path.home() / ".config" / "pydrivesync"
        self.config_dir = config_dir
        self._file_data: Optional[dict[str, Any]] = None

    def get_config_path(self) -> Path:
        """Return the path of the JSON config file."""
        return self.config_dir / "config.json"

    def _load_file(self) -> dict[str, Any]:
        if self._file_data is None:
            path = self.get_config_path()
            self._file_data = {}
            if path.exists():
                try:
                    with open(path, encoding="utf-8") as f:
                        data = json.load(f)
                    if isinstance(data, dict):
                        self._file_data = data
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning(f"Failed to read config file {path}: {e}")
        return self._file_data

    @property
    def api_key(self) -> Optional[str]:
        """API key from DRIVESYNC_API_KEY or the config file."""
        return os.environ.get("DRIVESYNC_API_KEY") or self._load_file().get("api_key")

    @property
    def api_url(self) -> str:
        """API URL from DRIVESYNC_API_URL, the config file or the default."""
        return (
            os.environ.get("DRIVESYNC_API_URL")
            or self._load_file().get("api_url")
            or DEFAULT_API_URL
        )

    def is_configured(self) -> bool:
        """Check whether an API key is available."""
        return bool(self.api_key)

    def save_api_key(self, api_key: str) -> None:
        """Persist the API key to the config file."""
        data = dict(self._load_file())
        data["api_key"] = api_key
        self.config_dir.mkdir(parents=True, exist_ok=True)
        path = self.get_config_path()
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        # Config holds a credential
        path.chmod(0o600)
        self._file_data = data
        logger.debug(f"Saved API key to {path}")


config = Config()
