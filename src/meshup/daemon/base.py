"""Base abstraction for talking to the local network daemon."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Optional

from ..prefs.schema import IPAddress, MaskedPrefs, Prefs

logger = logging.getLogger(__name__)

# Message the daemon sends when the caller lacks access to its socket
ERR_MSG_PERMISSION_DENIED = "permission denied"


class DaemonError(Exception):
    """The daemon could not be reached or rejected a request."""


class BackendState(str, Enum):
    """Lifecycle state of the daemon's backend."""
    NO_STATE = "NoState"
    IN_USE_OTHER_USER = "InUseOtherUser"
    NEEDS_LOGIN = "NeedsLogin"
    NEEDS_MACHINE_AUTH = "NeedsMachineAuth"
    STOPPED = "Stopped"
    STARTING = "Starting"
    RUNNING = "Running"

    @classmethod
    def parse(cls, value: str) -> "BackendState":
        try:
            return cls(value)
        except ValueError:
            logger.debug(f"Unknown backend state {value!r}, treating as NoState")
            return cls.NO_STATE


@dataclass
class PeerStatus:
    """A peer as seen in the status snapshot."""
    id: str
    host_name: str = ""
    tailscale_ips: list[IPAddress] = field(default_factory=list)


@dataclass
class Status:
    """Point-in-time snapshot of the daemon."""
    backend_state: BackendState = BackendState.NO_STATE
    auth_url: str = ""
    tailscale_ips: list[IPAddress] = field(default_factory=list)
    peers: dict[str, PeerStatus] = field(default_factory=dict)


@dataclass
class Notify:
    """One message from the daemon's notification bus.

    Any combination of fields may be populated.
    """
    state: Optional[BackendState] = None
    err_message: Optional[str] = None
    browse_to_url: Optional[str] = None
    engine: bool = False


@dataclass
class StartOptions:
    """Arguments for a full (re)start of the backend."""
    state_key: str = ""
    auth_key: str = ""
    update_prefs: Optional[Prefs] = None
    # Legacy field: prefs sent directly instead of via update_prefs
    prefs: Optional[Prefs] = None

    def to_dict(self) -> dict:
        return {
            "StateKey": self.state_key,
            "AuthKey": self.auth_key,
            "UpdatePrefs": self.update_prefs.to_dict() if self.update_prefs else None,
            "Prefs": self.prefs.to_dict() if self.prefs else None,
        }


class IPNBus(ABC):
    """A live subscription to the daemon's notification bus.

    Iterating yields notifications until the daemon closes the stream.
    """

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[Notify]:
        ...

    @abstractmethod
    async def request_engine_status(self) -> None:
        """Ask the daemon to send an engine update on this bus."""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


class DaemonClient(ABC):
    """Operations the up command needs from the daemon."""

    @abstractmethod
    async def status(self) -> Status:
        """Fetch the current status snapshot."""
        pass

    @abstractmethod
    async def get_prefs(self) -> Prefs:
        """Fetch the currently active prefs."""
        pass

    @abstractmethod
    async def edit_prefs(self, mp: MaskedPrefs) -> Prefs:
        """Apply a partial update, returning the resulting prefs."""
        pass

    @abstractmethod
    async def start(self, opts: StartOptions) -> None:
        """(Re)start the backend with full prefs and an optional auth key."""
        pass

    @abstractmethod
    async def start_login_interactive(self) -> None:
        """Begin an interactive login; the daemon answers with an auth URL."""
        pass

    @abstractmethod
    async def watch_ipn_bus(self) -> IPNBus:
        """Open a subscription to the notification bus."""
        pass

    async def check_ip_forwarding(self) -> None:
        """Raise DaemonError if the host won't forward advertised routes."""
        return None

    async def close(self) -> None:
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
