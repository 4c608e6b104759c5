"""Daemon client speaking the local HTTP API over a Unix-domain socket."""
import json
import logging
from typing import Any, AsyncIterator, Optional

import httpx
from pydantic import ValidationError

from ..prefs.schema import MaskedPrefs, Prefs
from ..settings import ClientSettings
from ..utils.connection import RETRYABLE_EXCEPTIONS, with_retry
from ..utils.logging_config import timed
from .base import (
    ERR_MSG_PERMISSION_DENIED,
    DaemonClient,
    DaemonError,
    IPNBus,
    Notify,
    StartOptions,
    Status,
)
from .wire import NotifyWire, StatusWire

logger = logging.getLogger(__name__)

# The daemon ignores the host; it only has to be well-formed
_BASE_URL = "http://local-tailscaled.sock"
_API = "/localapi/v0"

# Ask the bus to include engine updates, used to acknowledge the subscription
NOTIFY_WATCH_ENGINE_UPDATES = 1


def _error_text(resp: httpx.Response) -> str:
    """Pull the error message out of a failed local API response."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    if resp.status_code == 403:
        return ERR_MSG_PERMISSION_DENIED
    return resp.text.strip() or f"HTTP {resp.status_code}"


def _decode_prefs(resp: httpx.Response) -> Prefs:
    try:
        data = resp.json()
        if not isinstance(data, dict):
            raise TypeError(f"expected an object, got {type(data).__name__}")
        return Prefs.from_dict(data)
    except (ValueError, TypeError, AttributeError) as e:
        raise DaemonError(f"malformed prefs: {e}") from e


class LocalIPNBus(IPNBus):
    """Notification bus backed by a streamed JSON-lines response."""

    def __init__(self, stream_cm):
        self._stream_cm = stream_cm
        self._response: Optional[httpx.Response] = None

    async def open(self) -> "LocalIPNBus":
        self._response = await self._stream_cm.__aenter__()
        if self._response.is_error:
            await self._response.aread()
            message = _error_text(self._response)
            await self.close()
            raise DaemonError(f"watch-ipn-bus: {message}")
        return self

    async def __aiter__(self) -> AsyncIterator[Notify]:
        if self._response is None:
            raise DaemonError("bus not open")
        try:
            async for line in self._response.aiter_lines():
                if not line.strip():
                    continue
                try:
                    yield NotifyWire.model_validate_json(line).to_notify()
                except ValidationError as e:
                    raise DaemonError(f"malformed notification: {e}") from e
        except httpx.TransportError as e:
            raise DaemonError(f"notification stream failed: {e}") from e

    async def request_engine_status(self) -> None:
        # Engine updates are requested through the watch mask
        return None

    async def close(self) -> None:
        if self._response is not None:
            self._response = None
            await self._stream_cm.__aexit__(None, None, None)


class LocalAPIClient(DaemonClient):
    """Talks to the daemon at settings.socket_path."""

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or ClientSettings.load()
        self._http = httpx.AsyncClient(
            base_url=_BASE_URL,
            transport=transport or httpx.AsyncHTTPTransport(uds=self.settings.socket_path),
            timeout=httpx.Timeout(self.settings.timeout),
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        send = with_retry(max_attempts=self.settings.connect_attempts)(self._http.request)
        try:
            resp = await send(method, _API + path, **kwargs)
        except RETRYABLE_EXCEPTIONS as e:
            raise DaemonError(
                f"failed to connect to local daemon at {self.settings.socket_path}; "
                f"is it running? ({e})"
            ) from e
        except httpx.HTTPError as e:
            raise DaemonError(f"{method} {path}: {e}") from e
        if resp.is_error:
            raise DaemonError(f"{method} {path}: {_error_text(resp)}")
        return resp

    @timed("status")
    async def status(self) -> Status:
        resp = await self._request("GET", "/status")
        try:
            return StatusWire.model_validate(resp.json()).to_status()
        except (ValueError, ValidationError) as e:
            raise DaemonError(f"malformed status: {e}") from e

    @timed("get_prefs")
    async def get_prefs(self) -> Prefs:
        resp = await self._request("GET", "/prefs")
        return _decode_prefs(resp)

    @timed("edit_prefs")
    async def edit_prefs(self, mp: MaskedPrefs) -> Prefs:
        logger.debug(f"Editing prefs: {sorted(mp.set_fields)}")
        resp = await self._request("PATCH", "/prefs", content=json.dumps(mp.to_dict()))
        return _decode_prefs(resp)

    @timed("start")
    async def start(self, opts: StartOptions) -> None:
        await self._request("POST", "/start", content=json.dumps(opts.to_dict()))

    @timed("login_interactive")
    async def start_login_interactive(self) -> None:
        await self._request("POST", "/login-interactive")

    async def check_ip_forwarding(self) -> None:
        resp = await self._request("GET", "/check-ip-forwarding")
        warning = resp.json().get("Warning", "")
        if warning:
            raise DaemonError(warning)

    async def watch_ipn_bus(self) -> IPNBus:
        stream_cm = self._http.stream(
            "GET",
            _API + "/watch-ipn-bus",
            params={"mask": NOTIFY_WATCH_ENGINE_UPDATES},
            timeout=httpx.Timeout(self.settings.timeout, read=None),
        )
        bus = LocalIPNBus(stream_cm)
        try:
            return await bus.open()
        except httpx.HTTPError as e:
            raise DaemonError(f"can't subscribe to daemon notifications: {e}") from e

    async def close(self) -> None:
        await self._http.aclose()
