"""Tests for the command-line entry point."""
import logging

import pytest
from meshup import cli
from meshup.daemon.base import DaemonError
from meshup.up.engine import UpResult
from meshup.up.errors import AccidentalRevertError, BackendError
from meshup.up.mode import UpdateMode


@pytest.fixture(autouse=True)
def isolated_logging(tmp_path, monkeypatch):
    monkeypatch.setenv("MESHUP_LOG_FILE", str(tmp_path / "meshup.log"))
    root = logging.getLogger("meshup")
    before = list(root.handlers)
    yield
    for handler in root.handlers[len(before):]:
        root.removeHandler(handler)
        handler.close()


def fake_run_up(result=None, error=None):
    calls = []

    async def _run_up(settings, goos, distro, up_args, parsed):
        calls.append(parsed)
        if error is not None:
            raise error
        return result

    return _run_up, calls


class TestMain:
    """Tests for exit codes and error output."""

    def test_success(self, monkeypatch):
        run, calls = fake_run_up(result=UpResult(mode=UpdateMode.WARM_EDIT))
        monkeypatch.setattr(cli, "_run_up", run)

        assert cli.main(["up", "--shields-up"]) == 0
        assert calls[0].values == {"shields-up": True}

    def test_usage_error(self, monkeypatch, capsys):
        run, calls = fake_run_up()
        monkeypatch.setattr(cli, "_run_up", run)

        assert cli.main(["up", "--no-such-flag"]) == 2
        assert calls == []
        assert "up:" in capsys.readouterr().err

    def test_positional_argument(self, monkeypatch, capsys):
        run, _ = fake_run_up()
        monkeypatch.setattr(cli, "_run_up", run)

        assert cli.main(["up", "now"]) == 2
        assert "too many non-flag arguments" in capsys.readouterr().err

    def test_accidental_revert_printed_verbatim(self, monkeypatch, capsys):
        err = AccidentalRevertError(["--hostname=foo"], ["--advertise-tags=tag:eng"])
        run, _ = fake_run_up(error=err)
        monkeypatch.setattr(cli, "_run_up", run)

        assert cli.main(["up", "--hostname=foo"]) == 1
        assert capsys.readouterr().err == str(err)

    @pytest.mark.parametrize("error", [
        BackendError("backend error: permission denied"),
        DaemonError("failed to connect to local daemon"),
    ])
    def test_failures(self, monkeypatch, capsys, error):
        run, _ = fake_run_up(error=error)
        monkeypatch.setattr(cli, "_run_up", run)

        assert cli.main(["up"]) == 1
        assert str(error) in capsys.readouterr().err
