"""
Configuration management for the signage player.
Loads and validates settings from YAML files.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# Packaged defaults, shipped next to the package modules
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "default_config.yaml"

# Environment variable -> dotted config key
ENV_OVERRIDES = {
    "SIGNAGE_API_URL": "api.base_url",
    "SIGNAGE_SOCKET_URL": "api.socket_url",
    "SIGNAGE_CONSOLE_URL": "api.console_url",
    "SIGNAGE_CACHE_DIR": "player.cache_dir",
    "SIGNAGE_IDENTITY_FILE": "device.identity_file",
    "SIGNAGE_LOG_LEVEL": "logging.level",
}


class Config:
    """Manages application configuration from YAML files."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to config file. If None, uses SIGNAGE_CONFIG
                         or the packaged default_config.yaml
        """
        if config_path is None:
            config_path = os.environ.get("SIGNAGE_CONFIG") or DEFAULT_CONFIG_PATH

        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        """Load configuration from YAML file, layered over the defaults."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(DEFAULT_CONFIG_PATH, 'r') as f:
            self._config = yaml.safe_load(f) or {}

        if self.config_path.resolve() != DEFAULT_CONFIG_PATH.resolve():
            with open(self.config_path, 'r') as f:
                _deep_merge(self._config, yaml.safe_load(f) or {})

        # Apply environment variable overrides
        self._apply_env_overrides()

    def _apply_env_overrides(self) -> None:
        """Override config values from environment variables."""
        for env_name, key in ENV_OVERRIDES.items():
            if env_name in os.environ:
                self.set(key, os.environ[env_name])

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'api.base_url')
            default: Default value if key not found

        Returns:
            Configuration value or default

        Example:
            >>> config = Config()
            >>> config.get('api.socket_namespace')
            '/screen-socket'
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'player.cache_dir')
            value: Value to set
        """
        keys = key.split('.')
        config = self._config

        # Navigate to the parent key
        for k in keys[:-1]:
            if not isinstance(config.get(k), dict):
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def save(self, path: Optional[str] = None) -> None:
        """
        Save configuration to YAML file.

        Args:
            path: Path to save to. If None, uses original config_path
        """
        save_path = Path(path) if path else self.config_path

        with open(save_path, 'w') as f:
            yaml.dump(self._config, f, default_flow_style=False, indent=2)

    @property
    def api_base_url(self) -> str:
        """Get backend REST base URL (no trailing slash)."""
        return str(self.get('api.base_url', '')).rstrip('/')

    @property
    def socket_url(self) -> str:
        """Get realtime channel server URL."""
        return str(self.get('api.socket_url', '') or self.api_base_url).rstrip('/')

    @property
    def socket_namespace(self) -> str:
        """Get realtime channel namespace."""
        return self.get('api.socket_namespace', '/screen-socket')

    @property
    def console_url(self) -> str:
        """Get operator console URL used in the pairing QR code."""
        return str(self.get('api.console_url', '')).rstrip('/')

    @property
    def request_timeout(self) -> float:
        """Get per-request HTTP timeout in seconds."""
        return float(self.get('api.request_timeout', 10))

    @property
    def identity_file(self) -> Path:
        """Get path of the device identifier store."""
        return Path(str(self.get('device.identity_file'))).expanduser()

    @property
    def cache_dir(self) -> Path:
        """Get media cache directory."""
        return Path(str(self.get('player.cache_dir'))).expanduser()

    @property
    def refresh_interval(self) -> float:
        """Get seconds between playlist resolution passes."""
        return float(self.get('player.refresh_interval', 5))

    @property
    def heartbeat_interval(self) -> float:
        """Get seconds between realtime heartbeat probes."""
        return float(self.get('player.heartbeat_interval', 5))

    @property
    def splash_min_seconds(self) -> float:
        """Get minimum splash screen duration."""
        return float(self.get('player.splash_min_seconds', 5))

    @property
    def default_duration(self) -> float:
        """Get fallback item duration for items without one."""
        return float(self.get('player.default_duration', 10))

    @property
    def default_background(self) -> str:
        """Get background color used until the screen provides one."""
        return self.get('player.default_background', 'black')

    @property
    def content_version(self) -> int:
        """Get content version reported after a successful sync."""
        return int(self.get('player.content_version', 1))

    @property
    def download_workers(self) -> int:
        """Get number of concurrent media downloads."""
        return int(self.get('player.download_workers', 2))

    @property
    def network_check_interval(self) -> float:
        """Get seconds between connectivity checks."""
        return float(self.get('network.check_interval', 30))

    @property
    def log_level(self) -> str:
        """Get logging level name."""
        return str(self.get('logging.level', 'INFO'))

    @property
    def log_file(self) -> Optional[str]:
        """Get optional log file path."""
        return self.get('logging.file')

    def __repr__(self) -> str:
        """String representation."""
        return f"Config(path={self.config_path})"


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Merge override into base in place, recursing into nested dicts."""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


# Global config instance (can be imported by other modules)
_global_config: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Args:
        config_path: Path to config file (only used on first call)

    Returns:
        Config instance
    """
    global _global_config

    if _global_config is None:
        _global_config = Config(config_path)

    return _global_config
