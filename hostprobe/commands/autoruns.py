"""Machine-wide autorun registry keys (MITRE ATT&CK T1547.001)."""
import logging
from dataclasses import dataclass
from typing import Iterator, Sequence, Tuple

from hostprobe.core.command import CommandBase, CommandGroup, ResultRecord
from hostprobe.core.registry import RegistryAccessor, RegistryHive, normalize_path
from hostprobe.output.formatters import TextFormatterBase

logger = logging.getLogger(__name__)

RUN_KEYS = (
    r"SOFTWARE\Microsoft\Windows\CurrentVersion\Run",
    r"SOFTWARE\Microsoft\Windows\CurrentVersion\RunOnce",
    r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Run",  # 32-bit apps on 64-bit Windows
    r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\RunOnce",
)


@dataclass(frozen=True)
class AutoRunRecord(ResultRecord):
    key: str
    entries: Tuple[Tuple[str, str], ...]


class AutoRunsCommand(CommandBase):
    """Extra HKLM key paths can be passed as arguments: AutoRuns=SOFTWARE\\Vendor\\Run"""

    name = "AutoRuns"
    description = "Auto run executables/scripts/programs from HKLM Run keys"
    groups = (CommandGroup.SYSTEM, CommandGroup.REMOTE)
    supports_remote = True

    def execute(self, accessor: RegistryAccessor, args: Sequence[str]) -> Iterator[AutoRunRecord]:
        keys = list(RUN_KEYS) + [normalize_path(arg) for arg in args]
        for key in keys:
            values = accessor.get_values(RegistryHive.LOCAL_MACHINE, key)
            if values is None:
                logger.debug(f"Registry key not found: HKLM\\{key}")
                continue
            yield AutoRunRecord(
                key=f"HKLM:\\{key}",
                entries=tuple((name, data or "") for name, data in sorted(values.items())),
            )


class AutoRunTextFormatter(TextFormatterBase):
    def format_result(self, record: AutoRunRecord) -> None:
        self.write_line(f"  {record.key} :")
        for name, data in record.entries:
            self.write_line(f"    {name} : {data}")
        self.write_line()
