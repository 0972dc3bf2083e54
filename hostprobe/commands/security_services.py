"""
State of the local security services (MITRE ATT&CK T1562.001).

Reads the service control manager through psutil, so it only works against
the local machine.
"""
import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

import psutil

from hostprobe.core.command import CommandBase, CommandGroup, ResultRecord
from hostprobe.core.registry import RegistryAccessor
from hostprobe.output.formatters import TextFormatterBase, format_value

logger = logging.getLogger(__name__)

# Windows Defender, Defender for Endpoint (ATP), Windows Firewall
SECURITY_SERVICES = ("WinDefend", "Sense", "MpsSvc")


@dataclass(frozen=True)
class SecurityServiceRecord(ResultRecord):
    name: str
    installed: bool
    display_name: Optional[str] = None
    status: Optional[str] = None
    start_type: Optional[str] = None
    binpath: Optional[str] = None


class SecurityServicesCommand(CommandBase):
    """Extra service names can be passed as arguments: SecurityServices=Sysmon64,WdNisSvc"""

    name = "SecurityServices"
    description = "Status of the local security services (Defender, ATP, firewall)"
    groups = (CommandGroup.SYSTEM,)
    supports_remote = False

    def _query(self, service_name: str) -> SecurityServiceRecord:
        win_service_get = getattr(psutil, "win_service_get", None)
        if win_service_get is None:
            logger.debug("Service control manager is not available on this platform")
            return SecurityServiceRecord(name=service_name, installed=False)

        try:
            service = win_service_get(service_name).as_dict()
        except psutil.NoSuchProcess:
            return SecurityServiceRecord(name=service_name, installed=False)

        return SecurityServiceRecord(
            name=service_name,
            installed=True,
            display_name=service.get("display_name"),
            status=service.get("status"),
            start_type=service.get("start_type"),
            binpath=service.get("binpath"),
        )

    def execute(self, accessor: RegistryAccessor, args: Sequence[str]) -> Iterator[SecurityServiceRecord]:
        for service_name in list(SECURITY_SERVICES) + [a for a in args if a not in SECURITY_SERVICES]:
            yield self._query(service_name)


class SecurityServiceTextFormatter(TextFormatterBase):
    def format_result(self, record: SecurityServiceRecord) -> None:
        self.write_line(f"  Name        : {record.name}")
        self.write_line(f"  DisplayName : {format_value(record.display_name)}")
        self.write_line(f"  Installed   : {record.installed}")
        self.write_line(f"  Status      : {format_value(record.status)}")
        self.write_line(f"  StartType   : {format_value(record.start_type)}")
        self.write_line(f"  BinaryPath  : {format_value(record.binpath)}")
        if record.installed and record.status != "running":
            self.write_line(f"  [!] {record.display_name or record.name} is not running.")
        self.write_line()
