"""Flag set for the up command.

The flags offered depend on the host platform, and the parse result keeps
track of which flags the user actually typed, as opposed to those merely
holding their default. That distinction drives both the revert checker and
the choice of update mode.
"""
import argparse
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from ..prefs.schema import DEFAULT_CONTROL_URL
from .errors import UsageError

SYNOLOGY = "synology"

# Platforms where the daemon identifies local callers by socket peer credentials
_PEER_CRED_PLATFORMS = {"linux", "darwin", "freebsd"}


def current_goos() -> str:
    """Short platform name: linux, darwin, windows, freebsd..."""
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform.startswith("freebsd"):
        return "freebsd"
    return sys.platform


def detect_distro() -> Optional[str]:
    """Name of a Linux distribution that needs special handling, if any."""
    if os.path.exists("/etc.defaults/VERSION") and os.path.isdir("/usr/syno"):
        return SYNOLOGY
    return None


def default_netfilter_mode(distro: Optional[str] = None) -> str:
    if distro == SYNOLOGY:
        return "off"
    return "on"


def uses_peer_creds(goos: str) -> bool:
    return goos in _PEER_CRED_PLATFORMS


@dataclass
class UpArgs:
    """Raw values of every up flag for one invocation."""
    reset: bool = False
    server: str = DEFAULT_CONTROL_URL
    accept_routes: bool = False
    accept_dns: bool = True
    single_routes: bool = True
    exit_node_ip: str = ""
    exit_node_allow_lan_access: bool = False
    shields_up: bool = False
    force_reauth: bool = False
    force_daemon: bool = False
    advertise_routes: str = ""
    advertise_default_route: bool = False
    advertise_tags: str = ""
    snat: bool = True
    netfilter_mode: str = "on"
    auth_key: str = ""
    hostname: str = ""
    op_user: str = ""


@dataclass(frozen=True)
class FlagDef:
    """A single flag: its name, where it lands in UpArgs, and its default."""
    name: str
    dest: str
    default: Any
    help: str

    @property
    def is_bool(self) -> bool:
        return isinstance(self.default, bool)


@dataclass
class ParsedFlags:
    """Flags explicitly given on the command line, with their values."""
    values: dict[str, Any] = field(default_factory=dict)

    def is_set(self, name: str) -> bool:
        return name in self.values

    def n_flag(self) -> int:
        return len(self.values)

    def visit(self) -> Iterator[tuple[str, Any]]:
        """Explicit flags in lexicographical order."""
        for name in sorted(self.values):
            yield name, self.values[name]


def parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in ("1", "t", "true"):
        return True
    if lowered in ("0", "f", "false"):
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {value!r}")


class _RaisingParser(argparse.ArgumentParser):
    def error(self, message):
        raise UsageError(message)


class FlagSet:
    """The platform-specific set of up flags."""

    def __init__(self, goos: str):
        self.goos = goos
        self._flags: dict[str, FlagDef] = {}

    def add(self, name: str, dest: str, default: Any, help: str) -> None:
        if not hasattr(UpArgs, dest):
            raise RuntimeError(f"flag --{name} targets unknown UpArgs field {dest!r}")
        self._flags[name] = FlagDef(name=name, dest=dest, default=default, help=help)

    def lookup(self, name: str) -> Optional[FlagDef]:
        return self._flags.get(name)

    def visit_all(self) -> Iterator[FlagDef]:
        """All flags in lexicographical order."""
        for name in sorted(self._flags):
            yield self._flags[name]

    def build_parser(self, prog: str = "meshup up") -> argparse.ArgumentParser:
        parser = _RaisingParser(
            prog=prog,
            allow_abbrev=False,
            description="Connect to the tailnet, logging in if needed.",
            epilog=UP_LONG_HELP,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        for flag in self._flags.values():
            if flag.is_bool:
                parser.add_argument(
                    f"--{flag.name}",
                    dest=flag.name,
                    nargs="?",
                    const=True,
                    type=parse_bool,
                    default=argparse.SUPPRESS,
                    metavar="BOOL",
                    help=f"{flag.help} (default: {str(flag.default).lower()})",
                )
            else:
                parser.add_argument(
                    f"--{flag.name}",
                    dest=flag.name,
                    default=argparse.SUPPRESS,
                    help=f"{flag.help} (default: {flag.default!r})",
                )
        parser.add_argument("args", nargs="*", help=argparse.SUPPRESS)
        return parser

    def parse(self, argv: list[str]) -> tuple[UpArgs, ParsedFlags]:
        """Parse argv into flag values plus the record of explicit flags.

        Raises:
            UsageError: unknown flag, bad value, or positional arguments
        """
        ns = vars(self.build_parser().parse_args(self._bind_bool_flags(argv)))
        extra = ns.pop("args", [])
        if extra:
            raise UsageError(f"too many non-flag arguments: {extra!r}")
        return self.up_args_from(ns)

    def _bind_bool_flags(self, argv: list[str]) -> list[str]:
        """Rewrite bare ``--flag`` booleans as ``--flag=true``.

        A bool flag only takes a value through ``=``, so the token after a
        bare ``--shields-up`` stays a positional argument.
        """
        out = []
        for i, arg in enumerate(argv):
            if arg == "--":
                return out + argv[i:]
            flag = self._flags.get(arg[2:]) if arg.startswith("--") else None
            out.append(f"{arg}=true" if flag is not None and flag.is_bool else arg)
        return out

    def up_args_from(self, values: dict[str, Any]) -> tuple[UpArgs, ParsedFlags]:
        """UpArgs with values applied over the defaults, as if typed.

        None values are skipped, so the output of prefs_to_flags can be fed
        straight back in.
        """
        up_args = UpArgs()
        for flag in self._flags.values():
            setattr(up_args, flag.dest, flag.default)
        parsed = ParsedFlags()
        for name, value in values.items():
            if value is None:
                continue
            flag = self._flags.get(name)
            if flag is None:
                raise UsageError(f"flag provided but not defined: --{name}")
            setattr(up_args, flag.dest, value)
            parsed.values[name] = value
        return up_args, parsed


UP_LONG_HELP = """\
With no flags, "up" brings the network online without changing any
settings. (That is, it's the opposite of "down").

If flags are specified, the flags must be the complete set of desired
settings. An error is returned if any setting would be changed as a
result of an unspecified flag's default value, unless the --reset
flag is also used.
"""


def new_up_flag_set(goos: str, distro: Optional[str] = None) -> FlagSet:
    """Build the up flags offered on goos."""
    fs = FlagSet(goos)
    fs.add("force-reauth", "force_reauth", False, "force reauthentication")
    fs.add("reset", "reset", False, "reset unspecified settings to their default values")

    fs.add("login-server", "server", DEFAULT_CONTROL_URL, "base URL of control server")
    fs.add("accept-routes", "accept_routes", False, "accept routes advertised by other nodes")
    fs.add("accept-dns", "accept_dns", True, "accept DNS configuration from the admin panel")
    fs.add("host-routes", "single_routes", True, "install host routes to other nodes")
    fs.add("exit-node", "exit_node_ip", "", "IP of the exit node for internet traffic")
    fs.add(
        "exit-node-allow-lan-access", "exit_node_allow_lan_access", False,
        "allow direct access to the local network when routing traffic via an exit node",
    )
    fs.add("shields-up", "shields_up", False, "don't allow incoming connections")
    fs.add(
        "advertise-tags", "advertise_tags", "",
        'comma-separated ACL tags to request; each must start with "tag:" '
        '(e.g. "tag:eng,tag:montreal,tag:ssh")',
    )
    fs.add("authkey", "auth_key", "", "node authorization key")
    fs.add("hostname", "hostname", "", "hostname to use instead of the one provided by the OS")
    fs.add(
        "advertise-routes", "advertise_routes", "",
        'routes to advertise to other nodes (comma-separated, e.g. "10.0.0.0/8,192.168.0.0/24")',
    )
    fs.add(
        "advertise-exit-node", "advertise_default_route", False,
        "offer to be an exit node for internet traffic for the tailnet",
    )
    if uses_peer_creds(goos):
        fs.add("operator", "op_user", "", "Unix username to allow to operate on the daemon without sudo")
    if goos == "linux":
        fs.add(
            "snat-subnet-routes", "snat", True,
            "source NAT traffic to local routes advertised with --advertise-routes",
        )
        fs.add(
            "netfilter-mode", "netfilter_mode", default_netfilter_mode(distro),
            "netfilter mode (one of on, nodivert, off)",
        )
    elif goos == "windows":
        fs.add(
            "unattended", "force_daemon", False,
            'run in "Unattended Mode" where the client keeps running even after '
            "the current GUI user logs out (Windows-only)",
        )
    return fs
