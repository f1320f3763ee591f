from __future__ import annotations

import pytest

from ircfw import cli
from ircfw.core.errors import ClientConnectionError
from ircfw.state.script import ActionSyncLine, IRCMessageLine, ScriptResults

SCRIPT_TEXT = "#~ Registration\n! c\nc NICK c\n  -> 001\n"
SETTINGS_TEXT = "servers:\n  ergo:\n    name: Ergo\n    address: localhost:6667\n"


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda level, fmt: None)


@pytest.fixture
def script_path(tmp_path):
    path = tmp_path / "register.txt"
    path.write_text(SCRIPT_TEXT, encoding="utf-8")
    return path


def test_print_command(script_path, capsys):
    assert cli.main(["print", str(script_path)]) == 0
    out = capsys.readouterr().out
    assert out.startswith("Clients: c\nc will send: NICK c\n  c will wait for: 001\n")


def test_parse_errors_exit_with_status_1(tmp_path, capsys):
    path = tmp_path / "bad.txt"
    path.write_text("! c\nwhat\n", encoding="utf-8")
    assert cli.main(["print", str(path)]) == 1
    assert "error: line 2: could not understand line [what]" in capsys.readouterr().err


def test_missing_script_file(tmp_path, capsys):
    assert cli.main(["print", str(tmp_path / "missing.txt")]) == 1
    assert capsys.readouterr().err.startswith("error: ")


def test_run_streams_transcript(script_path, capsys, monkeypatch):
    calls = {}

    async def fake_run_on_server(script, address, use_tls=False, tls_skip_verify=False, *, observer=None, read_timeout=None):
        calls.update(address=address, use_tls=use_tls, tls_skip_verify=tls_skip_verify, read_timeout=read_timeout)
        observer(ActionSyncLine(client="c", raw_line="NICK c"))
        observer(IRCMessageLine(client="c", raw_line=":srv 001 c :hi"))
        return ScriptResults(clients=script.clients)

    monkeypatch.setattr(cli, "run_on_server", fake_run_on_server)

    code = cli.main(["run", "localhost:6697", str(script_path), "--tls-noverify", "--no-colours", "--timeout", "3"])

    assert code == 0
    assert calls == {"address": "localhost:6697", "use_tls": True, "tls_skip_verify": True, "read_timeout": 3.0}
    assert capsys.readouterr().out == "c  -> NICK c\nc <-  :srv 001 c :hi\n"


def test_run_multi_writes_report(script_path, tmp_path, capsys, monkeypatch):
    settings_path = tmp_path / "servers.yaml"
    settings_path.write_text(SETTINGS_TEXT, encoding="utf-8")
    report_path = tmp_path / "report.html"

    async def fake_run_all(script, servers, *, read_timeout=None, on_server_start=None, on_server_done=None):
        results = {}
        for server_id in sorted(servers):
            on_server_start(server_id, servers[server_id])
            results[server_id] = ScriptResults(clients=script.clients, lines=[ActionSyncLine(client="c", raw_line="NICK c")])
            on_server_done(server_id, servers[server_id])
        return results

    def fake_write_report(output, directory=None):
        report_path.write_text(output, encoding="utf-8")
        return report_path

    monkeypatch.setattr(cli, "run_all", fake_run_all)
    monkeypatch.setattr(cli, "write_report", fake_write_report)

    assert cli.main(["run-multi", str(settings_path), str(script_path)]) == 0

    out = capsys.readouterr().out
    assert "- Ergo ...OK!" in out
    assert f"Results are in: {report_path}" in out
    assert "<h1>Registration</h1>" in report_path.read_text(encoding="utf-8")


def test_run_multi_connection_failure(script_path, tmp_path, capsys, monkeypatch):
    settings_path = tmp_path / "servers.yaml"
    settings_path.write_text(SETTINGS_TEXT, encoding="utf-8")

    async def failing_run_all(script, servers, **kwargs):
        raise ClientConnectionError("could not connect client: refused")

    monkeypatch.setattr(cli, "run_all", failing_run_all)

    assert cli.main(["run-multi", str(settings_path), str(script_path)]) == 1
    assert "error: could not connect client: refused" in capsys.readouterr().err


def test_run_multi_requires_servers(script_path, tmp_path, capsys):
    settings_path = tmp_path / "servers.yaml"
    settings_path.write_text("servers: {}\n", encoding="utf-8")
    assert cli.main(["run-multi", str(settings_path), str(script_path)]) == 1
    assert "does not define any servers" in capsys.readouterr().err


def test_script_that_is_not_utf8(tmp_path, capsys):
    path = tmp_path / "latin1.txt"
    path.write_bytes(b"! c\nc PRIVMSG #chan :caf\xe9\n")
    assert cli.main(["print", str(path)]) == 1
    assert "not valid UTF-8" in capsys.readouterr().err
