"""Up engine - orchestrates one up invocation end to end.

Provides a single entry point for:
1. Reading the daemon status snapshot
2. Building and validating the desired prefs
3. Checking for accidental setting reverts
4. Choosing the update mode
5. Applying it, waiting on the handshake where needed
"""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Optional, TextIO

from ..daemon.base import DaemonClient, DaemonError, StartOptions
from ..utils.logging_config import timed_section
from .builder import Warnf, apply_implicit_prefs, check_limited_platform, prefs_from_up_args, print_warning
from .checker import UpCheckEnv, check_for_accidental_setting_reverts, exit_node_ip
from .flags import ParsedFlags, UpArgs
from .handshake import HandshakeMachine, HandshakeWatcher
from .mode import UpdateMode, bare_resume_masked_prefs, select_update_mode, warm_edit_masked_prefs

logger = logging.getLogger(__name__)

# State key the daemon uses for its own persisted state
GLOBAL_DAEMON_STATE_KEY = "_daemon"


@dataclass
class UpResult:
    """Outcome of a successful up."""
    mode: UpdateMode
    printed: bool = False


class UpEngine:
    """
    Runs the up command against a daemon.

    Usage:
        engine = UpEngine(client, goos="linux")
        result = await engine.run(up_args, parsed)
    """

    def __init__(
        self,
        client: DaemonClient,
        goos: str,
        distro: Optional[str] = None,
        cur_user: Optional[str] = None,
        warnf: Warnf = print_warning,
        out: Optional[TextIO] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            client: Daemon to talk to
            goos: Host platform name
            distro: Linux distribution needing special handling, if any
            cur_user: Invoking OS user (defaults to $USER)
            warnf: Sink for advisory warnings
            out: Where prompts go (defaults to stderr)
            timeout: Give up waiting for the handshake after this many seconds
        """
        self.client = client
        self.goos = goos
        self.distro = distro
        self.cur_user = cur_user if cur_user is not None else os.environ.get("USER", "")
        self.warnf = warnf
        self.out = out or sys.stderr
        self.timeout = timeout

    async def run(self, up_args: UpArgs, parsed: ParsedFlags) -> UpResult:
        """Bring the daemon up with the prefs described by up_args.

        Raises:
            UpValidationError: invalid flags, before anything is changed
            AccidentalRevertError: unmentioned settings would be reverted
            BackendError, StreamClosedError, HandshakeCancelledError:
                handshake failures
            DaemonError: the daemon couldn't be reached
        """
        status = await self.client.status()
        orig_auth_url = status.auth_url
        logger.info(f"Backend state: {status.backend_state.value}")

        check_limited_platform(up_args, self.distro)
        prefs = prefs_from_up_args(up_args, self.warnf, status, self.goos, self.distro)

        if prefs.advertise_routes:
            try:
                await self.client.check_ip_forwarding()
            except DaemonError as e:
                self.warnf(str(e))

        cur_prefs = await self.client.get_prefs()

        if not up_args.reset:
            apply_implicit_prefs(prefs, cur_prefs, self.cur_user)
            check_for_accidental_setting_reverts(
                parsed,
                cur_prefs,
                prefs,
                UpCheckEnv(
                    goos=self.goos,
                    cur_exit_node_ip=exit_node_ip(cur_prefs, status),
                    distro=self.distro,
                ),
            )

        mode = select_update_mode(up_args, parsed, status, cur_prefs, prefs)

        if mode == UpdateMode.WARM_EDIT:
            await self.client.edit_prefs(warm_edit_masked_prefs(prefs, parsed))
            return UpResult(mode=mode)

        machine = HandshakeMachine(
            goos=self.goos,
            admin_page_url=prefs.admin_page_url(),
            auth_key_given=bool(up_args.auth_key),
            force_reauth=up_args.force_reauth,
            orig_auth_url=orig_auth_url,
        )
        watcher = HandshakeWatcher(self.client, machine, out=self.out, timeout=self.timeout)

        if mode == UpdateMode.BARE_RESUME:
            async def mutate() -> None:
                await self.client.edit_prefs(bare_resume_masked_prefs())
        else:
            opts = StartOptions(
                state_key=GLOBAL_DAEMON_STATE_KEY,
                auth_key=up_args.auth_key,
                update_prefs=prefs,
            )
            if self.goos == "windows":
                # The Windows service picks the state key from the
                # connection's identity and still takes prefs directly
                opts.state_key = ""
                opts.prefs = prefs

            async def mutate() -> None:
                await self.client.start(opts)

        async with timed_section("handshake", mode=mode.value):
            await watcher.run(
                mutate,
                force_login=mode == UpdateMode.FULL_START and up_args.force_reauth,
            )
        return UpResult(mode=mode, printed=machine.printed)
