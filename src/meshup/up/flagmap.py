"""Mapping between up flags and the Prefs fields they control.

The table is checked against the Prefs dataclass at import, so a typo in a
field name fails the first import rather than a user's command.
"""
from ..prefs.schema import PREF_FIELD_NAMES, MaskedPrefs

PREFS_OF_FLAG: dict[str, tuple[str, ...]] = {}

# Flags that steer the command rather than set a pref
PREFLESS_FLAGS = frozenset({"authkey", "force-reauth", "reset"})

# Flags only meaningful on one platform
_FLAG_PLATFORMS = {
    "netfilter-mode": "linux",
    "snat-subnet-routes": "linux",
    "unattended": "windows",
}


def _add_pref_flag_mapping(flag_name: str, *pref_names: str) -> None:
    for pref in pref_names:
        if pref not in PREF_FIELD_NAMES:
            raise RuntimeError(f"invalid Prefs field {pref!r} for flag --{flag_name}")
    PREFS_OF_FLAG[flag_name] = pref_names


# Both of these set the same pref
_add_pref_flag_mapping("advertise-exit-node", "advertise_routes")
_add_pref_flag_mapping("advertise-routes", "advertise_routes")

# And this one sets two: the address and the node ID forms
_add_pref_flag_mapping("exit-node", "exit_node_ip", "exit_node_id")

_add_pref_flag_mapping("accept-dns", "corp_dns")
_add_pref_flag_mapping("accept-routes", "route_all")
_add_pref_flag_mapping("advertise-tags", "advertise_tags")
_add_pref_flag_mapping("host-routes", "allow_single_hosts")
_add_pref_flag_mapping("hostname", "hostname")
_add_pref_flag_mapping("login-server", "control_url")
_add_pref_flag_mapping("netfilter-mode", "netfilter_mode")
_add_pref_flag_mapping("shields-up", "shields_up")
_add_pref_flag_mapping("snat-subnet-routes", "no_snat")
_add_pref_flag_mapping("exit-node-allow-lan-access", "exit_node_allow_lan_access")
_add_pref_flag_mapping("unattended", "force_daemon")
_add_pref_flag_mapping("operator", "operator_user")


def fields_for(flag_name: str) -> list[str]:
    """Prefs fields governed by flag_name.

    Raises:
        KeyError: flag_name is neither mapped nor prefless
    """
    if flag_name in PREFLESS_FLAGS:
        return []
    if flag_name not in PREFS_OF_FLAG:
        raise KeyError(f"internal error: unhandled flag {flag_name!r}")
    return list(PREFS_OF_FLAG[flag_name])


def is_configurationless(flag_name: str) -> bool:
    """True for flags that don't correspond to a pref."""
    return flag_name in PREFLESS_FLAGS


def applies_to_platform(flag_name: str, goos: str) -> bool:
    platform = _FLAG_PLATFORMS.get(flag_name)
    return platform is None or platform == goos


def update_masked_prefs(mp: MaskedPrefs, flag_name: str) -> None:
    """Mark every field flag_name governs as set in mp."""
    for pref in fields_for(flag_name):
        mp.mark(pref)
