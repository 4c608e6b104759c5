"""Accidental setting revert checker.

A user might have advertised a tag, and later run up again to change just
the hostname, forgetting to mention the tag. Without this check the tag would
silently be wiped out by the flag's default value. Changing a pref back to a
default now requires either mentioning the flag or passing --reset.

The check works by projecting both the current and the new prefs back onto
the flags that would produce them, and comparing per flag.
"""
import logging
import shlex
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..daemon.base import Status
from ..prefs.schema import IPAddress, IPNetwork, Prefs, is_login_server_synonym
from .errors import AccidentalRevertError
from .flagmap import applies_to_platform, is_configurationless
from .flags import ParsedFlags, new_up_flag_set

logger = logging.getLogger(__name__)


@dataclass
class UpCheckEnv:
    """What the checker needs to know about the environment."""
    goos: str
    cur_exit_node_ip: Optional[IPAddress] = None
    distro: Optional[str] = None


def has_exit_node_routes(routes: list[IPNetwork]) -> bool:
    """True if routes contain both the IPv4 and the IPv6 /0 route."""
    v4 = any(r.prefixlen == 0 and r.version == 4 for r in routes)
    v6 = any(r.prefixlen == 0 and r.version == 6 for r in routes)
    return v4 and v6


def without_exit_nodes(routes: list[IPNetwork]) -> list[IPNetwork]:
    """routes minus the /0 pair, if both halves are present."""
    if not has_exit_node_routes(routes):
        return routes
    return [r for r in routes if r.prefixlen > 0]


def exit_node_ip(prefs: Optional[Prefs], status: Status) -> Optional[IPAddress]:
    """The exit node address of prefs, resolving an ID via the peer table."""
    if prefs is None:
        return None
    if prefs.exit_node_ip is not None:
        return prefs.exit_node_ip
    if not prefs.exit_node_id:
        return None
    for peer in status.peers.values():
        if peer.id == prefs.exit_node_id:
            if peer.tailscale_ips:
                return peer.tailscale_ips[0]
            break
    return None


def _exit_node_flag_value(env: UpCheckEnv, prefs: Prefs) -> str:
    if prefs.exit_node_ip is not None:
        return str(prefs.exit_node_ip)
    if not prefs.exit_node_id or env.cur_exit_node_ip is None:
        return ""
    return str(env.cur_exit_node_ip)


_FLAG_VALUE_OF: dict[str, Callable[[UpCheckEnv, Prefs], Any]] = {
    "login-server": lambda env, p: p.control_url,
    "accept-routes": lambda env, p: p.route_all,
    "host-routes": lambda env, p: p.allow_single_hosts,
    "accept-dns": lambda env, p: p.corp_dns,
    "shields-up": lambda env, p: p.shields_up,
    "exit-node": _exit_node_flag_value,
    "exit-node-allow-lan-access": lambda env, p: p.exit_node_allow_lan_access,
    "advertise-tags": lambda env, p: ",".join(p.advertise_tags),
    "hostname": lambda env, p: p.hostname,
    "operator": lambda env, p: p.operator_user,
    "advertise-routes": lambda env, p: ",".join(str(r) for r in without_exit_nodes(p.advertise_routes)),
    "advertise-exit-node": lambda env, p: has_exit_node_routes(p.advertise_routes),
    "snat-subnet-routes": lambda env, p: not p.no_snat,
    "netfilter-mode": lambda env, p: str(p.netfilter_mode),
    "unattended": lambda env, p: p.force_daemon,
}


def prefs_to_flags(env: UpCheckEnv, prefs: Prefs) -> dict[str, Any]:
    """Flag values that would reproduce prefs on env's platform.

    Flags that don't apply to the platform map to None.
    """
    ret: dict[str, Any] = {}
    for flag in new_up_flag_set(env.goos, env.distro).visit_all():
        if is_configurationless(flag.name):
            continue
        if flag.name not in _FLAG_VALUE_OF:
            raise RuntimeError(f"unhandled flag {flag.name!r}")
        if applies_to_platform(flag.name, env.goos):
            ret[flag.name] = _FLAG_VALUE_OF[flag.name](env, prefs)
        else:
            ret[flag.name] = None
    return ret


def fmt_flag_value_arg(flag_name: str, value: Any) -> str:
    """Render one flag the way a user would type it."""
    if value is True:
        return f"--{flag_name}"
    if value is False:
        return f"--{flag_name}=false"
    if value == "":
        return f"--{flag_name}="
    return f"--{flag_name}={shlex.quote(str(value))}"


def check_for_accidental_setting_reverts(
    parsed: ParsedFlags,
    cur_prefs: Prefs,
    new_prefs: Prefs,
    env: UpCheckEnv,
) -> None:
    """Refuse an up that would silently revert unmentioned settings.

    Args:
        parsed: Flags explicitly given on this invocation
        cur_prefs: Prefs currently active on the daemon
        new_prefs: Prefs built from this invocation, including implicit ones
        env: Platform and resolved exit node of the current prefs

    Raises:
        AccidentalRevertError: with the full command line that would keep
            every current setting
    """
    if cur_prefs.control_url == "":
        # Never been up; there is nothing to revert
        return

    if parsed.n_flag() == 0:
        # A bare up just brings the network up without changes
        return

    flags_cur = prefs_to_flags(env, cur_prefs)
    flags_new = prefs_to_flags(env, new_prefs)

    missing = []
    for flag_name, val_cur in flags_cur.items():
        if parsed.is_set(flag_name):
            continue
        val_new = flags_new.get(flag_name)
        if val_cur == val_new:
            continue
        if flag_name == "login-server" and is_login_server_synonym(val_cur) and is_login_server_synonym(val_new):
            continue
        logger.debug(f"--{flag_name} would change from {val_cur!r} to {val_new!r}")
        missing.append(fmt_flag_value_arg(flag_name, val_cur))

    if not missing:
        return
    missing.sort()

    explicit = [fmt_flag_value_arg(name, value) for name, value in parsed.visit()]
    raise AccidentalRevertError(explicit, missing)

