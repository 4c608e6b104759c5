"""Shared fixtures: an in-memory daemon that scripts notification sequences."""
import asyncio
import ipaddress
from typing import Optional

import pytest

from meshup.daemon.base import (
    BackendState,
    DaemonClient,
    DaemonError,
    IPNBus,
    Notify,
    PeerStatus,
    StartOptions,
    Status,
)
from meshup.prefs.schema import MaskedPrefs, Persist, Prefs


class FakeBus(IPNBus):
    """Bus fed from a queue; None ends the stream."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.engine_pings = True

    def push(self, *notifies: Optional[Notify]) -> None:
        for n in notifies:
            self.queue.put_nowait(n)

    async def __aiter__(self):
        while True:
            n = await self.queue.get()
            if n is None:
                return
            yield n

    async def request_engine_status(self) -> None:
        if self.engine_pings:
            self.push(Notify(engine=True))

    async def close(self) -> None:
        self.closed = True


class FakeDaemon(DaemonClient):
    """Scriptable DaemonClient.

    on_start / on_login / on_edit are lists of notifications pushed to the
    bus when the matching call happens.
    """

    def __init__(self, status: Optional[Status] = None, prefs: Optional[Prefs] = None):
        self._status = status or Status()
        self.prefs = prefs or Prefs()
        self.bus: Optional[FakeBus] = None
        self.on_start: list[Optional[Notify]] = []
        self.on_login: list[Optional[Notify]] = []
        self.on_edit: list[Optional[Notify]] = []
        self.on_subscribe: list[Optional[Notify]] = []
        self.edits: list[MaskedPrefs] = []
        self.starts: list[StartOptions] = []
        self.login_calls = 0
        self.subscriptions = 0
        self.forwarding_warning = ""
        self.engine_pings = True

    async def status(self) -> Status:
        return self._status

    async def get_prefs(self) -> Prefs:
        return self.prefs

    async def edit_prefs(self, mp: MaskedPrefs) -> Prefs:
        self.edits.append(mp)
        if self.bus:
            self.bus.push(*self.on_edit)
        return self.prefs

    async def start(self, opts: StartOptions) -> None:
        self.starts.append(opts)
        if self.bus:
            self.bus.push(*self.on_start)

    async def start_login_interactive(self) -> None:
        self.login_calls += 1
        if self.bus:
            self.bus.push(*self.on_login)

    async def check_ip_forwarding(self) -> None:
        if self.forwarding_warning:
            raise DaemonError(self.forwarding_warning)

    async def watch_ipn_bus(self) -> IPNBus:
        self.subscriptions += 1
        self.bus = FakeBus()
        self.bus.engine_pings = self.engine_pings
        self.bus.push(*self.on_subscribe)
        return self.bus


def logged_in_prefs(**overrides) -> Prefs:
    """Prefs as the daemon holds them after a plain, successful up."""
    prefs = Prefs.new()
    prefs.want_running = True
    prefs.persist = Persist(login_name="alice@example.com")
    for key, value in overrides.items():
        setattr(prefs, key, value)
    return prefs


def self_status(state: BackendState = BackendState.RUNNING, **kwargs) -> Status:
    """Status for a node addressed 100.64.0.5 with one peer."""
    status = Status(
        backend_state=state,
        tailscale_ips=[ipaddress.ip_address("100.64.0.5"), ipaddress.ip_address("fd7a:115c:a1e0::5")],
        peers={
            "nodekey:abc": PeerStatus(
                id="n123",
                host_name="exit-box",
                tailscale_ips=[ipaddress.ip_address("100.64.0.9")],
            ),
        },
    )
    for key, value in kwargs.items():
        setattr(status, key, value)
    return status


@pytest.fixture
def daemon() -> FakeDaemon:
    return FakeDaemon(status=self_status(), prefs=logged_in_prefs())
