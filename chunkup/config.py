"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional
import json

from dotenv import load_dotenv

from .transfer.protocol import SERVER_LOCATION_ID
from .transfer.retry import DEFAULT_BASE_DELAY_MS, DEFAULT_MAX_RETRIES
from .transfer.scheduler import DEFAULT_MAX_CONNECTIONS


def _optional_float(value) -> Optional[float]:
    if value is None or value == '':
        return None
    return float(value)


@dataclass
class Config:
    """
    Uploader Configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (CHUNKUP_*)
    2. Config file (config.json)
    3. Default values
    """
    # Server
    server_url: str = 'http://localhost:8000'
    api_user: str = ''
    api_key: str = ''

    # Performance
    max_concurrent_connections: int = DEFAULT_MAX_CONNECTIONS

    # Retries
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base_ms: int = DEFAULT_BASE_DELAY_MS

    # Timeouts (seconds, None = no timeout)
    connection_timeout: Optional[float] = None

    # Storage
    location_id: str = SERVER_LOCATION_ID

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Server
        config.server_url = os.getenv('CHUNKUP_SERVER_URL', config.server_url)
        config.api_user = os.getenv('CHUNKUP_API_USER', config.api_user)
        config.api_key = os.getenv('CHUNKUP_API_KEY', config.api_key)

        # Performance
        config.max_concurrent_connections = int(
            os.getenv('CHUNKUP_MAX_CONCURRENT', config.max_concurrent_connections)
        )

        # Retries
        config.max_retries = int(os.getenv('CHUNKUP_MAX_RETRIES', config.max_retries))
        config.backoff_base_ms = int(
            os.getenv('CHUNKUP_BACKOFF_BASE_MS', config.backoff_base_ms)
        )

        # Timeouts
        timeout = os.getenv('CHUNKUP_TIMEOUT')
        if timeout:
            config.connection_timeout = float(timeout)

        config.location_id = os.getenv('CHUNKUP_LOCATION_ID', config.location_id)

        # Logging
        config.log_level = os.getenv('CHUNKUP_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Server
        config.server_url = data.get('server_url', config.server_url)
        config.api_user = data.get('api_user', config.api_user)
        config.api_key = data.get('api_key', config.api_key)

        # Performance
        config.max_concurrent_connections = data.get(
            'max_concurrent_connections', config.max_concurrent_connections
        )

        # Retries
        config.max_retries = data.get('max_retries', config.max_retries)
        config.backoff_base_ms = data.get('backoff_base_ms', config.backoff_base_ms)

        # Timeouts
        config.connection_timeout = _optional_float(
            data.get('connection_timeout', config.connection_timeout)
        )

        config.location_id = data.get('location_id', config.location_id)

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self, redact: bool = False) -> dict:
        """Convert to dictionary."""
        return {
            'server_url': self.server_url,
            'api_user': self.api_user,
            'api_key': '***' if redact and self.api_key else self.api_key,
            'max_concurrent_connections': self.max_concurrent_connections,
            'max_retries': self.max_retries,
            'backoff_base_ms': self.backoff_base_ms,
            'connection_timeout': self.connection_timeout,
            'location_id': self.location_id,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Override with environment variables
    env_config = Config.from_env()

    # Merge (env takes precedence for non-default values)
    defaults = Config()
    for key in defaults.to_dict():
        env_val = getattr(env_config, key)
        default_val = getattr(defaults, key)
        if env_val != default_val:
            setattr(config, key, env_val)

    return config

