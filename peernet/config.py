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

from .discovery.peer import INTERVAL, MIN_TIMEOUT_RATIO, TIMEOUT
from .errors import ConfigError
from .transport.broadcast import BROADCAST_ADDR


def _getenv(name: str, default, convert):
    """Read and convert an environment variable, keeping default if unset."""
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return convert(value)
    except ValueError as e:
        raise ConfigError(f"{name}={value!r} is not a valid {convert.__name__}") from e


def _check_type(name: str, value, types):
    # bool is an int subclass but never a valid port or duration
    if isinstance(value, bool) or not isinstance(value, types):
        raise ConfigError(f"{name} has invalid value {value!r}")


@dataclass
class Config:
    """
    peernet Node Configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (PEERNET_*)
    2. Config file (config.json)
    3. Default values

    Timing values are fixed for the life of a node.
    """
    # Network
    host: str = ''
    broadcast_addr: str = BROADCAST_ADDR
    peer_port: int = 9877
    bcast_port: int = 9876
    api_port: int = 8080

    # Failure detector (seconds)
    announce_interval: float = INTERVAL
    peer_timeout: float = TIMEOUT

    # Identity ("<ip>:<nonce>" is generated if not set)
    identity: Optional[str] = None

    # Update channel capacity (0 = unbounded)
    update_queue_size: int = 0

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Network
        config.host = os.getenv('PEERNET_HOST', config.host)
        config.broadcast_addr = os.getenv('PEERNET_BROADCAST_ADDR', config.broadcast_addr)
        config.peer_port = _getenv('PEERNET_PEER_PORT', config.peer_port, int)
        config.bcast_port = _getenv('PEERNET_BCAST_PORT', config.bcast_port, int)
        config.api_port = _getenv('PEERNET_API_PORT', config.api_port, int)

        # Failure detector
        config.announce_interval = _getenv(
            'PEERNET_ANNOUNCE_INTERVAL', config.announce_interval, float
        )
        config.peer_timeout = _getenv('PEERNET_PEER_TIMEOUT', config.peer_timeout, float)

        config.identity = os.getenv('PEERNET_IDENTITY') or None
        config.update_queue_size = _getenv(
            'PEERNET_UPDATE_QUEUE_SIZE', config.update_queue_size, int
        )

        # Logging
        config.log_level = os.getenv('PEERNET_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"{path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{path} must hold a JSON object")

        config = cls()

        # Network
        config.host = data.get('host', config.host)
        config.broadcast_addr = data.get('broadcast_addr', config.broadcast_addr)
        config.peer_port = data.get('peer_port', config.peer_port)
        config.bcast_port = data.get('bcast_port', config.bcast_port)
        config.api_port = data.get('api_port', config.api_port)

        # Failure detector
        config.announce_interval = data.get('announce_interval', config.announce_interval)
        config.peer_timeout = data.get('peer_timeout', config.peer_timeout)

        config.identity = data.get('identity', config.identity)
        config.update_queue_size = data.get('update_queue_size', config.update_queue_size)

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def validate(self) -> 'Config':
        """
        Check values that would break the protocol.

        Raises:
            ConfigError: on a wrongly typed value, a bad port or an unsafe
                interval/timeout pair
        """
        for name in ('peer_port', 'bcast_port', 'api_port', 'update_queue_size'):
            _check_type(name, getattr(self, name), int)
        for name in ('announce_interval', 'peer_timeout'):
            _check_type(name, getattr(self, name), (int, float))
        for name in ('host', 'broadcast_addr', 'log_level'):
            _check_type(name, getattr(self, name), str)
        if self.identity is not None:
            _check_type('identity', self.identity, str)

        for name in ('peer_port', 'bcast_port', 'api_port'):
            port = getattr(self, name)
            if not 0 < port < 65536:
                raise ConfigError(f"{name} must be in 1..65535, got {port}")

        if self.announce_interval <= 0 or self.peer_timeout <= 0:
            raise ConfigError("announce_interval and peer_timeout must be positive")

        # Several heartbeats must fit in one timeout window
        if self.peer_timeout < MIN_TIMEOUT_RATIO * self.announce_interval:
            raise ConfigError(
                f"peer_timeout ({self.peer_timeout}s) must be at least "
                f"{MIN_TIMEOUT_RATIO}x announce_interval ({self.announce_interval}s)"
            )

        if self.update_queue_size < 0:
            raise ConfigError("update_queue_size cannot be negative")

        return self

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'broadcast_addr': self.broadcast_addr,
            'peer_port': self.peer_port,
            'bcast_port': self.bcast_port,
            'api_port': self.api_port,
            'announce_interval': self.announce_interval,
            'peer_timeout': self.peer_timeout,
            'identity': self.identity,
            'update_queue_size': self.update_queue_size,
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
    for key in config.to_dict():
        env_val = getattr(env_config, key)
        if env_val != getattr(defaults, key):
            setattr(config, key, env_val)

    return config.validate()


# Example config file template
EXAMPLE_CONFIG = """
{
  "host": "",
  "broadcast_addr": "255.255.255.255",
  "peer_port": 9877,
  "bcast_port": 9876,
  "api_port": 8080,
  "announce_interval": 0.015,
  "peer_timeout": 0.1,
  "identity": null,
  "update_queue_size": 0,
  "log_level": "INFO"
}
"""
