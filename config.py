"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import os
from pathlib import Path
from dataclasses import dataclass, fields
from typing import Optional
import json

from dotenv import load_dotenv


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class Config:
    """
    FileShare server configuration.

    Configuration priority (highest to lowest):
    1. Command-line options
    2. Environment variables (FILESHARE_*)
    3. Config file (JSON)
    4. Default values
    """
    # Network
    host: str = '0.0.0.0'
    port: int = 0  # 0 = let the OS pick

    # Session
    auto_exit: bool = False
    exit_grace: float = 0.5

    # Performance
    chunk_size: int = 64 * 1024  # 64KB
    heartbeat_interval: float = 0.5
    log_capacity: int = 100
    subscriber_buffer: int = 10

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Network
        config.host = os.getenv('FILESHARE_HOST', config.host)
        config.port = int(os.getenv('FILESHARE_PORT', config.port))

        # Session
        auto_exit = os.getenv('FILESHARE_AUTO_EXIT')
        if auto_exit is not None:
            config.auto_exit = _env_bool(auto_exit)

        # Performance
        config.chunk_size = int(os.getenv('FILESHARE_CHUNK_SIZE', config.chunk_size))
        config.heartbeat_interval = float(
            os.getenv('FILESHARE_HEARTBEAT', config.heartbeat_interval)
        )

        # Logging
        config.log_level = os.getenv('FILESHARE_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()
        for field in fields(cls):
            if field.name in data:
                setattr(config, field.name, type(getattr(config, field.name))(data[field.name]))

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {field.name: getattr(self, field.name) for field in fields(self)}

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def validate(self):
        """
        Reject values the server cannot run with.

        Raises:
            ValueError: describing the first bad value
        """
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port must be between 0 and 65535, got {self.port}")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.heartbeat_interval <= 0:
            raise ValueError(f"heartbeat_interval must be positive, got {self.heartbeat_interval}")
        if self.log_capacity <= 0:
            raise ValueError(f"log_capacity must be positive, got {self.log_capacity}")
        if self.subscriber_buffer <= 0:
            raise ValueError(f"subscriber_buffer must be positive, got {self.subscriber_buffer}")


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
    for key in ['host', 'port', 'auto_exit', 'chunk_size',
                'heartbeat_interval', 'log_level']:
        env_val = getattr(env_config, key)
        if env_val != getattr(defaults, key):
            setattr(config, key, env_val)

    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "host": "0.0.0.0",
  "port": 8080,
  "auto_exit": false,
  "chunk_size": 65536,
  "heartbeat_interval": 0.5,
  "log_level": "INFO"
}
"""


if __name__ == "__main__":
    # Print example config
    print("Example configuration file (config.json):")
    print(EXAMPLE_CONFIG)
