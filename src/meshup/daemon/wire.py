"""Pydantic models for the daemon's local API JSON.

The daemon uses Go-style field names and sends ``null`` for empty slices;
these models absorb both and convert into the plain dataclasses in ``base``.
"""
import ipaddress
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import BackendState, Notify, PeerStatus, Status

# Notify.State is sent as an integer
_STATE_BY_NUMBER = {
    0: BackendState.NO_STATE,
    1: BackendState.IN_USE_OTHER_USER,
    2: BackendState.NEEDS_LOGIN,
    3: BackendState.NEEDS_MACHINE_AUTH,
    4: BackendState.STOPPED,
    5: BackendState.STARTING,
    6: BackendState.RUNNING,
}


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _none_to_empty_list(value: Any) -> Any:
    return [] if value is None else value


class PeerStatusWire(_Wire):
    id: str = Field("", alias="ID")
    host_name: str = Field("", alias="HostName")
    tailscale_ips: list[str] = Field(default_factory=list, alias="TailscaleIPs")

    @field_validator("tailscale_ips", mode="before")
    @classmethod
    def _ips_null(cls, value: Any) -> Any:
        return _none_to_empty_list(value)

    def to_peer(self) -> PeerStatus:
        return PeerStatus(
            id=self.id,
            host_name=self.host_name,
            tailscale_ips=[ipaddress.ip_address(ip) for ip in self.tailscale_ips],
        )


class StatusWire(_Wire):
    backend_state: str = Field("NoState", alias="BackendState")
    auth_url: str = Field("", alias="AuthURL")
    tailscale_ips: list[str] = Field(default_factory=list, alias="TailscaleIPs")
    peer: dict[str, PeerStatusWire] = Field(default_factory=dict, alias="Peer")

    @field_validator("tailscale_ips", mode="before")
    @classmethod
    def _ips_null(cls, value: Any) -> Any:
        return _none_to_empty_list(value)

    @field_validator("peer", mode="before")
    @classmethod
    def _peer_null(cls, value: Any) -> Any:
        return {} if value is None else value

    def to_status(self) -> Status:
        return Status(
            backend_state=BackendState.parse(self.backend_state),
            auth_url=self.auth_url,
            tailscale_ips=[ipaddress.ip_address(ip) for ip in self.tailscale_ips],
            peers={key: p.to_peer() for key, p in self.peer.items()},
        )


class NotifyWire(_Wire):
    state: Optional[int] = Field(None, alias="State")
    err_message: Optional[str] = Field(None, alias="ErrMessage")
    browse_to_url: Optional[str] = Field(None, alias="BrowseToURL")
    engine: Optional[dict[str, Any]] = Field(None, alias="Engine")

    def to_notify(self) -> Notify:
        state = None
        if self.state is not None:
            state = _STATE_BY_NUMBER.get(self.state, BackendState.NO_STATE)
        return Notify(
            state=state,
            err_message=self.err_message,
            browse_to_url=self.browse_to_url,
            engine=self.engine is not None,
        )
