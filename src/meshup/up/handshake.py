"""Waiting for the daemon to come up, prompting for authentication on the way.

Two layers:

- ``HandshakeMachine`` is the synchronous transition table. It consumes
  events and answers with actions; it never does I/O, so it can be tested
  without a daemon.
- ``HandshakeWatcher`` owns the bus subscription. A single listener task
  feeds notifications to the machine and performs its actions, and reports
  back to the main flow through a queue.

Usage:
    machine = HandshakeMachine(goos="linux", admin_page_url=prefs.admin_page_url())
    watcher = HandshakeWatcher(client, machine)
    await watcher.run(lambda: client.start(opts))
"""
import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TextIO, Union

from ..daemon.base import (
    ERR_MSG_PERMISSION_DENIED,
    BackendState,
    DaemonClient,
    DaemonError,
    IPNBus,
    Notify,
)
from .errors import BackendError, HandshakeCancelledError, StreamClosedError, UpError

logger = logging.getLogger(__name__)


# --- Events (what the daemon told us) ---

@dataclass(frozen=True)
class EnginePing:
    """The data-plane engine reported in; used to acknowledge the subscription."""


@dataclass(frozen=True)
class FatalError:
    message: str


@dataclass(frozen=True)
class StateChange:
    state: BackendState


@dataclass(frozen=True)
class AuthURL:
    url: str


Event = Union[EnginePing, FatalError, StateChange, AuthURL]


def events_from_notify(notify: Notify) -> list[Event]:
    """Split one notification into events, in the order they must be handled."""
    events: list[Event] = []
    if notify.engine:
        events.append(EnginePing())
    if notify.err_message is not None:
        events.append(FatalError(notify.err_message))
    if notify.state is not None:
        events.append(StateChange(notify.state))
    if notify.browse_to_url is not None:
        events.append(AuthURL(notify.browse_to_url))
    return events


# --- Actions (what we do about it) ---

@dataclass(frozen=True)
class StartLogin:
    pass


@dataclass(frozen=True)
class ShowAuthURL:
    url: str


@dataclass(frozen=True)
class ShowMachineAuth:
    admin_url: str


@dataclass(frozen=True)
class Succeed:
    pass


Action = Union[StartLogin, ShowAuthURL, ShowMachineAuth, Succeed]


def backend_error_message(message: str, goos: str) -> str:
    """Add a remediation hint to well-known backend errors."""
    if message == ERR_MSG_PERMISSION_DENIED:
        if goos == "windows":
            message += " (service in use by other user?)"
        else:
            message += " (try 'sudo meshup up [...]')"
    return message


class HandshakeMachine:
    """Transition table for the authentication handshake."""

    def __init__(
        self,
        goos: str,
        admin_page_url: str,
        auth_key_given: bool = False,
        force_reauth: bool = False,
        orig_auth_url: str = "",
        printed: bool = False,
    ):
        self.goos = goos
        self.admin_page_url = admin_page_url
        self.auth_key_given = auth_key_given
        self.force_reauth = force_reauth
        self.orig_auth_url = orig_auth_url
        self.printed = printed
        self.login_started = False
        self.succeeded = False
        self._shown_urls: set[str] = set()

    def should_print_auth_url(self, url: str) -> bool:
        if self.auth_key_given:
            # An auth URL may still be pending from an earlier interactive
            # login; the key makes it irrelevant
            return False
        if self.force_reauth and url == self.orig_auth_url:
            return False
        return url not in self._shown_urls

    def request_login(self) -> list[Action]:
        """Start interactive login, at most once per run."""
        if self.login_started:
            return []
        self.login_started = True
        return [StartLogin()]

    def handle(self, event: Event) -> list[Action]:
        """Advance on one event.

        Raises:
            BackendError: the daemon reported a fatal error
        """
        if isinstance(event, FatalError):
            raise BackendError(f"backend error: {backend_error_message(event.message, self.goos)}")

        if isinstance(event, StateChange):
            if event.state == BackendState.NEEDS_LOGIN:
                self.printed = True
                return self.request_login()
            if event.state == BackendState.NEEDS_MACHINE_AUTH:
                self.printed = True
                return [ShowMachineAuth(self.admin_page_url)]
            if event.state in (BackendState.STARTING, BackendState.RUNNING):
                if self.succeeded:
                    return []
                self.succeeded = True
                return [Succeed()]
            return []

        if isinstance(event, AuthURL):
            if not self.should_print_auth_url(event.url):
                return []
            self.printed = True
            self._shown_urls.add(event.url)
            return [ShowAuthURL(event.url)]

        return []


_ACK = "ack"
_SUCCESS = "success"
_ERROR = "error"


class HandshakeWatcher:
    """Drive a HandshakeMachine from the daemon's notification bus."""

    def __init__(
        self,
        client: DaemonClient,
        machine: HandshakeMachine,
        out: Optional[TextIO] = None,
        timeout: Optional[float] = None,
    ):
        self.client = client
        self.machine = machine
        self.out = out or sys.stderr
        self.timeout = timeout
        self._deadline: Optional[float] = None

    async def run(self, mutate: Callable[[], Awaitable[None]], force_login: bool = False) -> None:
        """Subscribe, apply mutate, and wait for Starting or Running.

        The subscription is confirmed live (first notification seen) before
        mutate is called, so no state transition can slip by unobserved.

        Raises:
            BackendError: fatal message from the daemon
            StreamClosedError: bus closed before success
            HandshakeCancelledError: timeout reached
            DaemonError: subscription or request failed
            Exception: anything else the listener hit, passed through as is
        """
        loop = asyncio.get_running_loop()
        self._deadline = loop.time() + self.timeout if self.timeout is not None else None

        async with await self.client.watch_ipn_bus() as bus:
            signals: asyncio.Queue = asyncio.Queue()
            listener = asyncio.create_task(self._listen(bus, signals))
            try:
                await bus.request_engine_status()
                await self._wait_for(signals, _ACK)
                logger.debug("Notification bus subscription acknowledged")

                await mutate()
                if force_login:
                    await self._perform(self.machine.request_login())

                await self._wait_for(signals, _SUCCESS)
            finally:
                listener.cancel()
                await asyncio.gather(listener, return_exceptions=True)

    async def _wait_for(self, signals: asyncio.Queue, wanted: str) -> None:
        loop = asyncio.get_running_loop()
        while True:
            remaining = None
            if self._deadline is not None:
                remaining = max(self._deadline - loop.time(), 0)
            try:
                kind, payload = await asyncio.wait_for(signals.get(), remaining)
            except asyncio.TimeoutError:
                raise HandshakeCancelledError(
                    f"timed out after {self.timeout}s waiting for the backend"
                ) from None
            if kind == _ERROR:
                raise payload
            if kind == wanted:
                return

    async def _listen(self, bus: IPNBus, signals: asyncio.Queue) -> None:
        """Consume the bus until success or failure; sole writer of signals."""
        acked = False
        try:
            async for notify in bus:
                if not acked:
                    acked = True
                    signals.put_nowait((_ACK, None))
                for event in events_from_notify(notify):
                    logger.debug(f"Handshake event: {event}")
                    await self._perform(self.machine.handle(event))
                    if self.machine.succeeded:
                        signals.put_nowait((_SUCCESS, None))
                        return
        except Exception as e:
            # The main flow only wakes on a signal
            if not isinstance(e, (UpError, DaemonError)):
                logger.debug(f"Notification listener failed: {e!r}")
            signals.put_nowait((_ERROR, e))
            return
        signals.put_nowait((
            _ERROR,
            StreamClosedError("notification stream closed before the backend was running"),
        ))

    async def _perform(self, actions: list[Action]) -> None:
        for action in actions:
            if isinstance(action, StartLogin):
                logger.info("Starting interactive login")
                await self.client.start_login_interactive()
            elif isinstance(action, ShowAuthURL):
                self.out.write(f"\nTo authenticate, visit:\n\n\t{action.url}\n\n")
            elif isinstance(action, ShowMachineAuth):
                self.out.write(f"\nTo authorize your machine, visit (as admin):\n\n\t{action.admin_url}\n\n")
            elif isinstance(action, Succeed):
                logger.info("Backend is up")
                if self.machine.printed:
                    # Only worth saying if we asked the user to do something
                    self.out.write("Success.\n")
            self.out.flush()
