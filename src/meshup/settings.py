"""Client settings: where the daemon lives and how long to wait for it.

Environment variables:
- MESHUP_SOCKET: Path to the daemon's local API socket
- MESHUP_TIMEOUT: Per-request timeout in seconds (default: 30)
- MESHUP_CONNECT_ATTEMPTS: Attempts to reach the socket (default: 3)
- MESHUP_CONFIG: Optional YAML settings file
"""
import logging
import os
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)


def default_socket_path(goos: str = sys.platform) -> str:
    """Default local API socket for this platform."""
    if goos.startswith("darwin"):
        return "/var/run/tailscaled.socket"
    if goos.startswith("freebsd"):
        return "/var/run/tailscale/tailscaled.sock"
    return "/run/tailscale/tailscaled.sock"


@dataclass
class ClientSettings:
    """How to reach the daemon."""
    socket_path: str = ""
    timeout: float = 30.0
    connect_attempts: int = 3

    def __post_init__(self):
        if not self.socket_path:
            self.socket_path = default_socket_path()

    @classmethod
    def from_env(cls, base: Optional["ClientSettings"] = None) -> "ClientSettings":
        """Load settings from environment variables on top of base."""
        settings = base or cls()
        settings.socket_path = os.environ.get("MESHUP_SOCKET", settings.socket_path)
        settings.timeout = float(os.environ.get("MESHUP_TIMEOUT", str(settings.timeout)))
        settings.connect_attempts = int(
            os.environ.get("MESHUP_CONNECT_ATTEMPTS", str(settings.connect_attempts))
        )
        return settings

    @classmethod
    def from_file(cls, path: Path) -> "ClientSettings":
        """Load settings from a YAML file.

        ```yaml
        socket_path: /run/tailscale/tailscaled.sock
        timeout: 10
        ```
        """
        if not path.exists():
            logger.warning(f"Settings file not found: {path}")
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings in {path}: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def load(cls) -> "ClientSettings":
        """Settings file (if MESHUP_CONFIG names one), then environment."""
        config_path = os.environ.get("MESHUP_CONFIG")
        base = cls.from_file(Path(config_path)) if config_path else cls()
        return cls.from_env(base)
