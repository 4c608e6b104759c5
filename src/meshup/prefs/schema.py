"""Preference schema shared by the builder, the revert checker and the daemon client.

Field names are snake_case here; the daemon speaks Go-style names on the wire
(``ControlURL``, ``RouteAll``...), see ``WIRE_NAMES``.
"""
import ipaddress
import re
from dataclasses import dataclass, field, fields
from enum import IntEnum
from typing import Any, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

DEFAULT_CONTROL_URL = "https://controlplane.tailscale.com"
LOGIN_CONTROL_URL = "https://login.tailscale.com"

# Hosted control servers that are the same service under two names
_CONTROL_URL_SYNONYMS = {DEFAULT_CONTROL_URL, LOGIN_CONTROL_URL}

_TAG_PREFIX = "tag:"


def is_login_server_synonym(url: Any) -> bool:
    """Check if url names the hosted control server."""
    return isinstance(url, str) and url in _CONTROL_URL_SYNONYMS


def check_tag(tag: str) -> None:
    """Validate an ACL tag name like ``tag:eng``.

    Raises:
        ValueError: describing the first grammar violation
    """
    if not tag.startswith(_TAG_PREFIX):
        raise ValueError("tags must start with 'tag:'")
    name = tag[len(_TAG_PREFIX):]
    if not name:
        raise ValueError("tag names must not be empty")
    if not ("a" <= name[0].lower() <= "z"):
        raise ValueError("tag names must start with a letter, after 'tag:'")
    if not re.fullmatch(r"[A-Za-z0-9-]+", name):
        raise ValueError("tag names can only contain numbers, letters, or dashes")


class NetfilterMode(IntEnum):
    """How much of the host firewall the daemon manages."""
    OFF = 0       # no netfilter management at all
    NODIVERT = 1  # manage ts-* chains, but don't call them
    ON = 2        # manage and divert traffic into ts-* chains

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, name: str) -> "NetfilterMode":
        for mode in cls:
            if str(mode) == name:
                return mode
        raise ValueError(f"unknown netfilter mode {name!r}")


@dataclass
class Persist:
    """Login state the daemon keeps between runs."""
    login_name: str = ""


@dataclass
class Prefs:
    """Complete desired state for the daemon."""
    control_url: str = ""
    route_all: bool = False
    allow_single_hosts: bool = False
    exit_node_id: str = ""
    exit_node_ip: Optional[IPAddress] = None
    exit_node_allow_lan_access: bool = False
    corp_dns: bool = False
    want_running: bool = False
    shields_up: bool = False
    advertise_tags: list[str] = field(default_factory=list)
    hostname: str = ""
    force_daemon: bool = False
    advertise_routes: list[IPNetwork] = field(default_factory=list)
    no_snat: bool = False
    netfilter_mode: NetfilterMode = NetfilterMode.OFF
    operator_user: str = ""
    persist: Optional[Persist] = None

    @classmethod
    def new(cls) -> "Prefs":
        """Prefs as a freshly installed daemon has them."""
        return cls(
            control_url=DEFAULT_CONTROL_URL,
            allow_single_hosts=True,
            corp_dns=True,
            netfilter_mode=NetfilterMode.ON,
        )

    def control_url_or_default(self) -> str:
        return self.control_url or DEFAULT_CONTROL_URL

    def admin_page_url(self) -> str:
        """URL of the machine admin page on this control server."""
        url = self.control_url_or_default()
        if is_login_server_synonym(url):
            url = LOGIN_CONTROL_URL
        return url + "/admin/machines"

    @property
    def logged_in(self) -> bool:
        return self.persist is not None and self.persist.login_name != ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to the daemon's JSON representation."""
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "exit_node_ip":
                value = str(value) if value is not None else ""
            elif f.name == "advertise_routes":
                value = [str(r) for r in value]
            elif f.name == "netfilter_mode":
                value = int(value)
            elif f.name == "persist":
                value = {"LoginName": value.login_name} if value else None
            out[WIRE_NAMES[f.name]] = value
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Prefs":
        """Build Prefs from the daemon's JSON representation."""
        kwargs: dict[str, Any] = {}
        for name, wire in WIRE_NAMES.items():
            if wire not in data or data[wire] is None:
                continue
            value = data[wire]
            if name == "exit_node_ip":
                value = ipaddress.ip_address(value) if value else None
            elif name == "advertise_routes":
                value = [ipaddress.ip_network(r) for r in value]
            elif name == "netfilter_mode":
                value = NetfilterMode(value)
            elif name == "persist":
                value = Persist(login_name=value.get("LoginName", ""))
            elif name == "advertise_tags":
                value = list(value)
            kwargs[name] = value
        return cls(**kwargs)


WIRE_NAMES = {
    "control_url": "ControlURL",
    "route_all": "RouteAll",
    "allow_single_hosts": "AllowSingleHosts",
    "exit_node_id": "ExitNodeID",
    "exit_node_ip": "ExitNodeIP",
    "exit_node_allow_lan_access": "ExitNodeAllowLANAccess",
    "corp_dns": "CorpDNS",
    "want_running": "WantRunning",
    "shields_up": "ShieldsUp",
    "advertise_tags": "AdvertiseTags",
    "hostname": "Hostname",
    "force_daemon": "ForceDaemon",
    "advertise_routes": "AdvertiseRoutes",
    "no_snat": "NoSNAT",
    "netfilter_mode": "NetfilterMode",
    "operator_user": "OperatorUser",
    "persist": "Persist",
}

PREF_FIELD_NAMES = frozenset(f.name for f in fields(Prefs))


@dataclass
class MaskedPrefs:
    """A partial update: prefs plus the names of the fields to overwrite."""
    prefs: Prefs = field(default_factory=Prefs)
    set_fields: set[str] = field(default_factory=set)

    def mark(self, name: str) -> None:
        if name not in PREF_FIELD_NAMES:
            raise KeyError(f"invalid Prefs field {name!r}")
        self.set_fields.add(name)

    def is_set(self, name: str) -> bool:
        return name in self.set_fields

    def to_dict(self) -> dict[str, Any]:
        """Wire form: the prefs plus one ``<Field>Set`` marker per field."""
        out = self.prefs.to_dict()
        out.pop("Persist", None)
        for name in sorted(self.set_fields):
            out[WIRE_NAMES[name] + "Set"] = True
        return out
