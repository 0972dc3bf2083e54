from unittest.mock import MagicMock, patch

import psutil

from hostprobe.commands.security_services import (
    SECURITY_SERVICES,
    SecurityServiceRecord,
    SecurityServicesCommand,
    SecurityServiceTextFormatter,
)
from hostprobe.output.sinks import BufferSink


def fake_service(status):
    service = MagicMock()
    service.as_dict.return_value = {
        "display_name": "Microsoft Defender Antivirus Service",
        "status": status,
        "start_type": "automatic",
        "binpath": r"C:\ProgramData\Microsoft\Windows Defender\MsMpEng.exe",
    }
    return service


@patch("psutil.win_service_get", create=True)
def test_reports_each_security_service(mock_win_service_get, make_accessor):
    mock_win_service_get.side_effect = [fake_service("running"), psutil.NoSuchProcess(pid=0), fake_service("stopped")]

    records = list(SecurityServicesCommand().execute(make_accessor(), []))

    assert [r.name for r in records] == list(SECURITY_SERVICES)
    assert records[0].installed and records[0].status == "running"
    assert records[1] == SecurityServiceRecord(name="Sense", installed=False)
    assert records[2].status == "stopped"


@patch("psutil.win_service_get", create=True)
def test_extra_services_from_arguments(mock_win_service_get, make_accessor):
    mock_win_service_get.return_value = fake_service("running")

    records = list(SecurityServicesCommand().execute(make_accessor(), ["Sysmon64", "WinDefend"]))

    assert [r.name for r in records] == list(SECURITY_SERVICES) + ["Sysmon64"]


def test_without_service_manager(make_accessor, monkeypatch):
    monkeypatch.delattr(psutil, "win_service_get", raising=False)

    records = list(SecurityServicesCommand().execute(make_accessor(), []))

    assert all(not r.installed for r in records)


def test_is_local_only():
    assert SecurityServicesCommand.metadata().supports_remote is False


def test_formatter_flags_stopped_service():
    sink = BufferSink()
    record = SecurityServiceRecord(name="WinDefend", installed=True, display_name="Defender", status="stopped")
    SecurityServiceTextFormatter(sink).format_result(record)

    assert "  Status      : stopped" in sink.lines
    assert "  [!] Defender is not running." in sink.lines


def test_formatter_missing_service():
    sink = BufferSink()
    SecurityServiceTextFormatter(sink).format_result(SecurityServiceRecord(name="Sense", installed=False))

    assert "  Installed   : False" in sink.lines
    assert not any("[!]" in line for line in sink.lines)
