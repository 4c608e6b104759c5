"""Turn up flags into validated Prefs.

Nothing here talks to the daemon: the status snapshot is passed in, and the
only side effect is advisory warnings through the caller's ``warnf``.
"""
import ipaddress
import logging
from typing import Callable, Optional

from ..daemon.base import Status
from ..prefs.schema import IPNetwork, NetfilterMode, Prefs, check_tag
from .errors import UpValidationError
from .flags import SYNOLOGY, UpArgs, default_netfilter_mode

logger = logging.getLogger(__name__)

Warnf = Callable[[str], None]

IPV4_DEFAULT = ipaddress.ip_network("0.0.0.0/0")
IPV6_DEFAULT = ipaddress.ip_network("::/0")

MAX_HOSTNAME_BYTES = 256

_NOT_SUPPORTED_ON_SYNOLOGY = "not supported on Synology; see https://github.com/tailscale/tailscale/issues/1995"


def print_warning(message: str) -> None:
    """Default warning sink."""
    logger.warning(message)
    print(f"Warning: {message}")


def route_sort_key(route: IPNetwork) -> tuple[int, int, int]:
    """Order routes by prefix length, then IPv4 before IPv6, then address."""
    return (route.prefixlen, route.version, int(route.network_address))


def parse_advertise_routes(value: str) -> list[IPNetwork]:
    """Parse a comma-separated CIDR list.

    Raises:
        UpValidationError: a token isn't a prefix, has host bits set, or
            only one of the two default routes is present
    """
    routes: list[IPNetwork] = []
    if not value:
        return routes

    for token in value.split(","):
        if "/" not in token:
            raise UpValidationError(f"{token!r} is not a valid IP address or CIDR prefix")
        try:
            iface = ipaddress.ip_interface(token)
        except ValueError:
            raise UpValidationError(f"{token!r} is not a valid IP address or CIDR prefix") from None
        if iface.ip != iface.network.network_address:
            raise UpValidationError(
                f"{iface.with_prefixlen} has non-address bits set; expected {iface.network}"
            )
        routes.append(iface.network)

    default4 = IPV4_DEFAULT in routes
    default6 = IPV6_DEFAULT in routes
    if default4 and not default6:
        raise UpValidationError(
            f"{IPV4_DEFAULT} advertised without its IPv6 counterpart, please also advertise {IPV6_DEFAULT}"
        )
    if default6 and not default4:
        raise UpValidationError(
            f"{IPV6_DEFAULT} advertised without its IPv4 counterpart, please also advertise {IPV4_DEFAULT}"
        )
    return routes


def check_limited_platform(up_args: UpArgs, distro: Optional[str]) -> None:
    """Reject options a limited host platform can't honour."""
    if distro != SYNOLOGY:
        return
    if up_args.accept_routes:
        raise UpValidationError("--accept-routes is " + _NOT_SUPPORTED_ON_SYNOLOGY)
    if up_args.exit_node_ip:
        raise UpValidationError("--exit-node is " + _NOT_SUPPORTED_ON_SYNOLOGY)
    if up_args.netfilter_mode != "off":
        raise UpValidationError('--netfilter-mode values besides "off" ' + _NOT_SUPPORTED_ON_SYNOLOGY)


def prefs_from_up_args(
    up_args: UpArgs,
    warnf: Warnf,
    status: Status,
    goos: str,
    distro: Optional[str] = None,
) -> Prefs:
    """Build the desired Prefs for up_args.

    Args:
        up_args: Raw flag values
        warnf: Sink for non-fatal warnings
        status: Daemon status snapshot (for this node's own addresses)
        goos: Host platform name
        distro: Linux distribution needing special handling, if any

    Returns:
        Prefs with want_running set

    Raises:
        UpValidationError: describing the first invalid flag
    """
    routes = set(parse_advertise_routes(up_args.advertise_routes))
    if up_args.advertise_default_route:
        routes.update((IPV4_DEFAULT, IPV6_DEFAULT))
    sorted_routes = sorted(routes, key=route_sort_key)

    exit_node_ip = None
    if up_args.exit_node_ip:
        try:
            exit_node_ip = ipaddress.ip_address(up_args.exit_node_ip)
        except ValueError as e:
            raise UpValidationError(
                f"invalid IP address {up_args.exit_node_ip!r} for --exit-node: {e}"
            ) from None
        if exit_node_ip in status.tailscale_ips:
            raise UpValidationError(
                f"cannot use {up_args.exit_node_ip} as the exit node as it is a local IP "
                f"address to this machine, did you mean --advertise-exit-node?"
            )
    elif up_args.exit_node_allow_lan_access:
        raise UpValidationError("--exit-node-allow-lan-access can only be used with --exit-node")

    tags: list[str] = []
    if up_args.advertise_tags:
        tags = up_args.advertise_tags.split(",")
        for tag in tags:
            try:
                check_tag(tag)
            except ValueError as e:
                raise UpValidationError(f"tag: {tag!r}: {e}") from None

    hostname_len = len(up_args.hostname.encode("utf-8"))
    if hostname_len > MAX_HOSTNAME_BYTES:
        raise UpValidationError(
            f"hostname too long: {hostname_len} bytes (max {MAX_HOSTNAME_BYTES})"
        )

    prefs = Prefs.new()
    prefs.control_url = up_args.server
    prefs.want_running = True
    prefs.route_all = up_args.accept_routes
    prefs.exit_node_ip = exit_node_ip
    prefs.exit_node_allow_lan_access = up_args.exit_node_allow_lan_access
    prefs.corp_dns = up_args.accept_dns
    prefs.allow_single_hosts = up_args.single_routes
    prefs.shields_up = up_args.shields_up
    prefs.advertise_routes = sorted_routes
    prefs.advertise_tags = tags
    prefs.hostname = up_args.hostname
    prefs.operator_user = up_args.op_user

    if goos == "linux":
        prefs.no_snat = not up_args.snat
        try:
            prefs.netfilter_mode = NetfilterMode.parse(up_args.netfilter_mode)
        except ValueError:
            raise UpValidationError(
                f"invalid value --netfilter-mode={up_args.netfilter_mode!r}"
            ) from None
        if prefs.netfilter_mode == NetfilterMode.NODIVERT:
            warnf("netfilter=nodivert; add iptables calls to ts-* chains manually.")
        elif prefs.netfilter_mode == NetfilterMode.OFF and default_netfilter_mode(distro) != "off":
            warnf("netfilter=off; configure iptables yourself.")
    elif goos == "windows":
        prefs.force_daemon = up_args.force_daemon

    return prefs


def apply_implicit_prefs(prefs: Prefs, old_prefs: Prefs, cur_user: str) -> None:
    """Carry the operator user forward if it's the invoking user.

    Re-running up without --operator shouldn't take away the operator
    access the same user granted themselves earlier.
    """
    if prefs.operator_user == "" and old_prefs.operator_user == cur_user:
        prefs.operator_user = old_prefs.operator_user
