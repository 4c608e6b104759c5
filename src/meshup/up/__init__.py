"""Up - the connect path of the client.

Turns command-line flags into prefs, refuses to silently revert settings the
user didn't mention, and brings the daemon up, logging in if needed:
- Flags are validated into Prefs before the daemon is touched
- Unmentioned flags may not change current settings (unless --reset)
- A running daemon is patched in place; otherwise it is (re)started and the
  authentication handshake is followed until the backend is running

Usage:
    from meshup.up import UpEngine, new_up_flag_set

    fs = new_up_flag_set("linux")
    up_args, parsed = fs.parse(["--accept-dns=false"])
    result = await UpEngine(client, goos="linux").run(up_args, parsed)
"""

from .engine import UpEngine, UpResult
from .errors import (
    AccidentalRevertError,
    BackendError,
    HandshakeCancelledError,
    StreamClosedError,
    UpError,
    UpValidationError,
    UsageError,
)
from .flags import FlagSet, ParsedFlags, UpArgs, new_up_flag_set
from .builder import apply_implicit_prefs, prefs_from_up_args
from .checker import UpCheckEnv, check_for_accidental_setting_reverts, prefs_to_flags
from .mode import UpdateMode, select_update_mode
from .handshake import HandshakeMachine, HandshakeWatcher

__all__ = [
    # Main engine
    "UpEngine",
    "UpResult",
    # Errors
    "AccidentalRevertError",
    "BackendError",
    "HandshakeCancelledError",
    "StreamClosedError",
    "UpError",
    "UpValidationError",
    "UsageError",
    # Flags
    "FlagSet",
    "ParsedFlags",
    "UpArgs",
    "new_up_flag_set",
    # Components (for advanced use)
    "apply_implicit_prefs",
    "prefs_from_up_args",
    "UpCheckEnv",
    "check_for_accidental_setting_reverts",
    "prefs_to_flags",
    "UpdateMode",
    "select_update_mode",
    "HandshakeMachine",
    "HandshakeWatcher",
]
