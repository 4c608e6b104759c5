"""Choosing how to apply new prefs to the daemon."""
import logging
from enum import Enum

from ..daemon.base import BackendState, Status
from ..prefs.schema import MaskedPrefs, Prefs, is_login_server_synonym
from .errors import UpValidationError
from .flagmap import update_masked_prefs
from .flags import ParsedFlags, UpArgs

logger = logging.getLogger(__name__)


class UpdateMode(str, Enum):
    """How an up invocation reaches the daemon."""
    WARM_EDIT = "warm_edit"      # already running: patch the changed prefs
    BARE_RESUME = "bare_resume"  # no flags: just set want_running
    FULL_START = "full_start"    # (re)start with complete prefs, maybe log in


def control_url_changed(cur_url: str, new_url: str) -> bool:
    """True if new_url points at a different control server than cur_url."""
    if cur_url == new_url:
        return False
    return not (is_login_server_synonym(cur_url) and is_login_server_synonym(new_url))


def select_update_mode(
    up_args: UpArgs,
    parsed: ParsedFlags,
    status: Status,
    cur_prefs: Prefs,
    new_prefs: Prefs,
) -> UpdateMode:
    """Pick the update mode before anything is sent to the daemon.

    Raises:
        UpValidationError: the control server would change on a running
            backend without --force-reauth
    """
    running = status.backend_state == BackendState.RUNNING
    url_changed = control_url_changed(cur_prefs.control_url, new_prefs.control_url)

    if url_changed and running and not up_args.force_reauth:
        raise UpValidationError("can't change --login-server without --force-reauth")

    if running and not up_args.force_reauth and not up_args.reset and not up_args.auth_key and not url_changed:
        mode = UpdateMode.WARM_EDIT
    elif (
        parsed.n_flag() == 0
        and cur_prefs.logged_in
        and status.backend_state != BackendState.NEEDS_LOGIN
    ):
        mode = UpdateMode.BARE_RESUME
    else:
        mode = UpdateMode.FULL_START

    logger.debug(f"Update mode {mode.value} (state={status.backend_state.value}, flags={parsed.n_flag()})")
    return mode


def warm_edit_masked_prefs(prefs: Prefs, parsed: ParsedFlags) -> MaskedPrefs:
    """Partial update touching only the explicitly given flags' fields."""
    mp = MaskedPrefs(prefs=prefs)
    mp.mark("want_running")
    for flag_name, _ in parsed.visit():
        update_masked_prefs(mp, flag_name)
    return mp


def bare_resume_masked_prefs() -> MaskedPrefs:
    """Partial update that only sets want_running."""
    return MaskedPrefs(prefs=Prefs(want_running=True), set_fields={"want_running"})
