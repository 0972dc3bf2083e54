import io
import json
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from hostprobe.cli import EXIT_ERROR, EXIT_INTERRUPTED, EXIT_OK, main

SNAPSHOT = """\
keys:
  HKLM\\SOFTWARE\\Microsoft\\PowerShell\\1\\PowerShellEngine: {PowerShellVersion: "2.0"}
  HKLM\\SOFTWARE\\Microsoft\\PowerShell\\3\\PowerShellEngine: {PowerShellVersion: "5.1"}
  HKLM\\SOFTWARE\\Policies\\Microsoft\\Windows\\PowerShell\\ModuleLogging: {EnableModuleLogging: "1"}
  HKLM\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Policies\\System: {EnableLUA: 0}
hosts:
  WS01:
    HKLM\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Policies\\System: {EnableLUA: 1}
"""


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for var in ("HOSTPROBE_CONFIG", "HOSTPROBE_PROBE_TIMEOUT", "HOSTPROBE_MAX_WORKERS", "HOSTPROBE_OUTPUT_FORMAT",
                "HOSTPROBE_WEBHOOK_URL", "HOSTPROBE_LOG_LEVEL", "HOSTPROBE_SNAPSHOT"):
        monkeypatch.delenv(var, raising=False)
    with patch("hostprobe.cli.configure_logging"):
        yield


@pytest.fixture
def snapshot(tmp_path):
    path = tmp_path / "lab.yaml"
    path.write_text(SNAPSHOT)
    return str(path)


def run_cli(argv):
    buffer = io.StringIO()
    code = main(argv, console=Console(file=buffer, width=200, color_system=None))
    return code, buffer.getvalue()


def test_list_commands():
    code, output = run_cli(["--list"])

    assert code == EXIT_OK
    for name in ("PowerShell", "UAC", "AutoRuns", "SecurityServices"):
        assert name in output


def test_no_commands_is_an_error():
    code, output = run_cli([])
    assert code == EXIT_ERROR
    assert "no commands selected" in output


def test_unknown_commands_only(snapshot):
    code, output = run_cli(["Bogus", "--snapshot", snapshot])

    assert code == EXIT_ERROR
    assert "[!] selection error: Unknown command or group 'Bogus'" in output


def test_invalid_target(snapshot):
    code, _ = run_cli(["UAC", "-c", "bad host!", "--snapshot", snapshot])
    assert code == EXIT_ERROR


def test_missing_snapshot(tmp_path):
    code, output = run_cli(["UAC", "--snapshot", str(tmp_path / "missing.yaml")])
    assert code == EXIT_ERROR
    assert "Registry snapshot not found" in output


def test_snapshot_with_unknown_hive(tmp_path):
    path = tmp_path / "typo.json"
    path.write_text(json.dumps({"keys": {"HKXX\\SOFTWARE\\Vendor": {"Name": "x"}}}))

    code, output = run_cli(["UAC", "--snapshot", str(path)])

    assert code == EXIT_ERROR
    assert "unknown hive" in " ".join(output.split())


def test_invalid_setting():
    code, _ = run_cli(["UAC", "--workers", "0"])
    assert code == EXIT_ERROR


def test_local_run(snapshot):
    code, output = run_cli(["PowerShell", "UAC", "--snapshot", snapshot])

    assert code == EXIT_OK
    assert "====== PowerShell ======" in output
    assert "[!] You can do a PowerShell version downgrade to bypass the logging." in output
    assert "[*] EnableLUA != 1, UAC policies disabled." in output


def test_probe_failures_do_not_change_exit_code(snapshot):
    code, output = run_cli(["remote", "-c", "WS01,WS09", "--snapshot", snapshot])

    assert code == EXIT_OK
    assert "#### Target: WS01 ####" in output
    assert "#### Target: WS09 ####" in output
    assert "[!] probe error: PowerShell: Terminating exception running command: TransportError" in output


def test_remote_incapable_command_is_reported(snapshot):
    code, output = run_cli(["SecurityServices", "UAC", "-c", "WS01", "--snapshot", snapshot])

    assert code == EXIT_OK
    assert "[!] selection error: SecurityServices: Command does not support remote targets" in output
    assert "====== UAC ======" in output


def test_json_output_file(snapshot, tmp_path):
    output_file = tmp_path / "results.jsonl"
    code, output = run_cli(["UAC", "--format", "json", "-o", str(output_file), "--snapshot", snapshot])

    assert code == EXIT_OK
    documents = [json.loads(line) for line in output_file.read_text().splitlines()]
    assert len(documents) == 1
    assert documents[0]["Type"] == "UacRecord"
    assert documents[0]["Data"]["enable_lua"] == 0
    assert [json.loads(line) for line in output.splitlines()] == documents


def test_json_fleet_output_is_one_document_per_line(snapshot, tmp_path):
    output_file = tmp_path / "fleet.jsonl"
    code, output = run_cli(["UAC", "Bogus", "--format", "json", "-c", "WS01,WS02",
                            "-o", str(output_file), "--snapshot", snapshot])

    assert code == EXIT_OK
    for text in (output, output_file.read_text()):
        documents = [json.loads(line) for line in text.splitlines()]
        assert documents[0]["type"] == "diagnostic"
        assert documents[0]["kind"] == "selection"
        records = [d for d in documents if d.get("Type") == "UacRecord"]
        assert [r["Target"] for r in records] == ["WS01"]
        assert any(d.get("type") == "diagnostic" and d["target"] == "WS02" for d in documents)


@patch("hostprobe.output.sinks.requests.post")
def test_webhook_delivery(mock_post, snapshot):
    mock_post.return_value = MagicMock(status_code=200)
    code, _ = run_cli(["UAC", "--webhook", "https://hooks.example.com/run", "--snapshot", snapshot])

    assert code == EXIT_OK
    mock_post.assert_called_once()
    assert mock_post.call_args[0][0] == "https://hooks.example.com/run"


@patch("hostprobe.cli.Dispatcher.run", side_effect=KeyboardInterrupt)
def test_interrupted_run(mock_run, snapshot):
    code, _ = run_cli(["UAC", "--snapshot", snapshot])
    assert code == EXIT_INTERRUPTED
