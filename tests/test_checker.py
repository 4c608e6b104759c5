"""Tests for the accidental setting revert checker."""
import ipaddress

import pytest
from conftest import self_status
from meshup.daemon.base import Status
from meshup.prefs.schema import DEFAULT_CONTROL_URL, LOGIN_CONTROL_URL, Prefs
from meshup.up.builder import apply_implicit_prefs, prefs_from_up_args
from meshup.up.checker import (
    UpCheckEnv,
    check_for_accidental_setting_reverts,
    exit_node_ip,
    fmt_flag_value_arg,
    has_exit_node_routes,
    prefs_to_flags,
    without_exit_nodes,
)
from meshup.up.errors import AccidentalRevertError
from meshup.up.flags import new_up_flag_set


def prefs_for(argv, goos="linux", status=None):
    up_args, _ = new_up_flag_set(goos).parse(argv)
    return prefs_from_up_args(up_args, lambda msg: None, status or Status(), goos)


def check(cur_argv, new_argv, goos="linux", cur_user="", cur_prefs=None):
    """Run the checker as up would: cur prefs from an earlier up, then new flags."""
    cur = cur_prefs or prefs_for(cur_argv, goos)
    up_args, parsed = new_up_flag_set(goos).parse(new_argv)
    new = prefs_from_up_args(up_args, lambda msg: None, Status(), goos)
    apply_implicit_prefs(new, cur, cur_user)
    check_for_accidental_setting_reverts(parsed, cur, new, UpCheckEnv(goos=goos))


def nets(*cidrs):
    return [ipaddress.ip_network(c) for c in cidrs]


class TestFmtFlagValueArg:
    """Tests for rendering flags as typed."""

    def test_true_is_bare(self):
        assert fmt_flag_value_arg("shields-up", True) == "--shields-up"

    def test_false_is_explicit(self):
        assert fmt_flag_value_arg("accept-dns", False) == "--accept-dns=false"

    def test_empty_string(self):
        assert fmt_flag_value_arg("hostname", "") == "--hostname="

    def test_plain_value(self):
        assert fmt_flag_value_arg("advertise-tags", "tag:eng,tag:web") == "--advertise-tags=tag:eng,tag:web"

    def test_value_needing_quotes(self):
        assert fmt_flag_value_arg("hostname", "my host") == "--hostname='my host'"


class TestExitNodeRoutes:
    """Tests for default-route pair helpers."""

    def test_pair_detected(self):
        assert has_exit_node_routes(nets("0.0.0.0/0", "::/0", "10.0.0.0/8"))
        assert not has_exit_node_routes(nets("0.0.0.0/0", "10.0.0.0/8"))

    def test_without_exit_nodes(self):
        assert without_exit_nodes(nets("0.0.0.0/0", "::/0", "10.0.0.0/8")) == nets("10.0.0.0/8")

    def test_single_default_kept(self):
        routes = nets("0.0.0.0/0", "10.0.0.0/8")
        assert without_exit_nodes(routes) == routes


class TestExitNodeIP:
    """Tests for resolving the exit node address."""

    def test_ip_form(self):
        prefs = Prefs(exit_node_ip=ipaddress.ip_address("100.64.0.9"))
        assert exit_node_ip(prefs, Status()) == ipaddress.ip_address("100.64.0.9")

    def test_id_form_resolved_through_peers(self):
        assert exit_node_ip(Prefs(exit_node_id="n123"), self_status()) == ipaddress.ip_address("100.64.0.9")

    def test_unknown_id(self):
        assert exit_node_ip(Prefs(exit_node_id="n999"), self_status()) is None

    def test_none(self):
        assert exit_node_ip(None, Status()) is None
        assert exit_node_ip(Prefs(), Status()) is None


class TestPrefsToFlags:
    """Tests for the prefs -> flags projection."""

    def test_routes_split_from_exit_node(self):
        prefs = Prefs(advertise_routes=nets("0.0.0.0/0", "::/0", "10.0.0.0/8", "192.168.0.0/24"))
        flags = prefs_to_flags(UpCheckEnv(goos="linux"), prefs)
        assert flags["advertise-routes"] == "10.0.0.0/8,192.168.0.0/24"
        assert flags["advertise-exit-node"] is True

    def test_exit_node_id_uses_env_address(self):
        env = UpCheckEnv(goos="linux", cur_exit_node_ip=ipaddress.ip_address("100.64.0.9"))
        flags = prefs_to_flags(env, Prefs(exit_node_id="n123"))
        assert flags["exit-node"] == "100.64.0.9"

    def test_prefless_flags_excluded(self):
        flags = prefs_to_flags(UpCheckEnv(goos="linux"), Prefs())
        assert "authkey" not in flags
        assert "reset" not in flags
        assert "force-reauth" not in flags

    def test_platform_flags(self):
        linux = prefs_to_flags(UpCheckEnv(goos="linux"), Prefs.new())
        windows = prefs_to_flags(UpCheckEnv(goos="windows"), Prefs.new())
        assert linux["netfilter-mode"] == "on"
        assert linux["snat-subnet-routes"] is True
        assert "unattended" not in linux
        assert windows["unattended"] is False
        assert "netfilter-mode" not in windows

    @pytest.mark.parametrize("goos,argv", [
        ("linux", []),
        ("linux", ["--advertise-routes=10.0.0.0/8,fd00::/8", "--advertise-exit-node", "--hostname=box"]),
        ("linux", ["--exit-node=100.64.0.9", "--exit-node-allow-lan-access", "--accept-routes"]),
        ("linux", ["--advertise-tags=tag:eng,tag:web", "--netfilter-mode=nodivert", "--snat-subnet-routes=false"]),
        ("linux", ["--login-server=https://hs.example.com", "--operator=alice", "--shields-up"]),
        ("windows", ["--unattended", "--accept-dns=false", "--host-routes=false"]),
    ])
    def test_round_trip(self, goos, argv):
        """Rendering prefs as flags and rebuilding gives the same prefs."""
        prefs = prefs_for(argv, goos)
        fs = new_up_flag_set(goos)
        up_args, _ = fs.up_args_from(prefs_to_flags(UpCheckEnv(goos=goos), prefs))
        rebuilt = prefs_from_up_args(up_args, lambda msg: None, Status(), goos)
        assert rebuilt == prefs

    def test_auth_key_not_round_tripped(self):
        flags = prefs_to_flags(UpCheckEnv(goos="linux"), prefs_for(["--authkey=tskey-123"]))
        assert "tskey-123" not in flags.values()


class TestCheckForAccidentalSettingReverts:
    """Tests for the checker itself."""

    def test_bare_up_always_passes(self):
        check(["--advertise-tags=tag:eng", "--shields-up", "--hostname=box"], [])

    def test_never_logged_in_passes(self):
        cur = prefs_for(["--advertise-tags=tag:eng"])
        cur.control_url = ""
        check([], ["--hostname=foo"], cur_prefs=cur)

    def test_same_flags_pass(self):
        check(["--advertise-tags=tag:eng"], ["--advertise-tags=tag:eng"])

    def test_changing_mentioned_flag_passes(self):
        check(["--hostname=old"], ["--hostname=new"])

    def test_forgotten_tag(self):
        with pytest.raises(AccidentalRevertError) as exc:
            check(["--advertise-tags=tag:eng"], ["--hostname=foo"])
        err = exc.value
        assert err.explicit == ["--hostname=foo"]
        assert err.missing == ["--advertise-tags=tag:eng"]
        assert "--reset" in str(err)
        assert str(err).rstrip().endswith("meshup up --hostname=foo --advertise-tags=tag:eng")

    def test_missing_flags_sorted(self):
        with pytest.raises(AccidentalRevertError) as exc:
            check(["--shields-up", "--advertise-tags=tag:eng", "--accept-dns=false"], ["--hostname=foo"])
        assert exc.value.missing == [
            "--accept-dns=false",
            "--advertise-tags=tag:eng",
            "--shields-up",
        ]

    def test_explicit_flags_rendered(self):
        with pytest.raises(AccidentalRevertError) as exc:
            check(["--advertise-tags=tag:eng"], ["--shields-up", "--accept-dns=false", "--hostname="])
        assert exc.value.explicit == ["--accept-dns=false", "--hostname=", "--shields-up"]

    def test_forgotten_exit_node_advertisement(self):
        with pytest.raises(AccidentalRevertError) as exc:
            check(["--advertise-exit-node", "--advertise-routes=10.0.0.0/8"], ["--advertise-routes=10.0.0.0/8"])
        assert exc.value.missing == ["--advertise-exit-node"]

    def test_login_server_synonyms_are_equal(self):
        cur = prefs_for([])
        cur.control_url = LOGIN_CONTROL_URL
        check([], ["--hostname="], cur_prefs=cur)

    def test_different_login_server_reported(self):
        with pytest.raises(AccidentalRevertError) as exc:
            check(["--login-server=https://hs.example.com"], ["--shields-up"])
        assert exc.value.missing == ["--login-server=https://hs.example.com"]

    def test_operator_inherited_for_same_user(self):
        check(["--operator=alice"], ["--shields-up"], cur_user="alice")

    def test_operator_of_other_user_reported(self):
        with pytest.raises(AccidentalRevertError) as exc:
            check(["--operator=alice"], ["--shields-up"], cur_user="bob")
        assert exc.value.missing == ["--operator=alice"]

    def test_default_control_url_constant(self):
        assert prefs_for([]).control_url == DEFAULT_CONTROL_URL
