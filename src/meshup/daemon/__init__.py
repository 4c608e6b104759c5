"""Clients for the local network daemon."""
from .base import (
    ERR_MSG_PERMISSION_DENIED,
    BackendState,
    DaemonClient,
    DaemonError,
    IPNBus,
    Notify,
    PeerStatus,
    StartOptions,
    Status,
)
from .localapi import LocalAPIClient

__all__ = [
    "ERR_MSG_PERMISSION_DENIED",
    "BackendState",
    "DaemonClient",
    "DaemonError",
    "IPNBus",
    "Notify",
    "PeerStatus",
    "StartOptions",
    "Status",
    "LocalAPIClient",
]
