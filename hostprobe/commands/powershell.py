"""
PowerShell versions and logging policy.

Collects installed Windows PowerShell / PowerShell Core versions together with
the transcription, module logging and script block logging policies. The
formatter points out when a configured logging feature is inert on every
installed engine, or can be dodged by launching an older engine.
"""
import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

from hostprobe.core.command import CommandBase, CommandGroup, ResultRecord
from hostprobe.core.errors import VersionFormatError
from hostprobe.core.registry import RegistryAccessor, RegistryHive
from hostprobe.output.formatters import TextFormatterBase, parse_version

logger = logging.getLogger(__name__)

HKLM = RegistryHive.LOCAL_MACHINE

ENGINE_KEYS = (
    r"SOFTWARE\Microsoft\PowerShell\1\PowerShellEngine",  # 2.0
    r"SOFTWARE\Microsoft\PowerShell\3\PowerShellEngine",  # 3.0 - 5.1
)
CORE_VERSIONS_KEY = r"SOFTWARE\Microsoft\PowerShellCore\InstalledVersions"
POLICY_KEY = r"SOFTWARE\Policies\Microsoft\Windows\PowerShell"
TRANSCRIPTION_KEY = POLICY_KEY + r"\Transcription"
MODULE_LOGGING_KEY = POLICY_KEY + r"\ModuleLogging"
SCRIPT_BLOCK_KEY = POLICY_KEY + r"\ScriptBlockLogging"
CURRENT_VERSION_KEY = r"SOFTWARE\Microsoft\Windows NT\CurrentVersion"

# Module logging needs PSv3, script block logging needs PSv5
MODULE_LOGGING_MIN_MAJOR = 3
SCRIPT_BLOCK_LOGGING_MIN_MAJOR = 5
AMSI_MIN_MAJOR = 3
AMSI_MIN_OS_MAJOR = 10


@dataclass(frozen=True)
class PowerShellRecord(ResultRecord):
    installed_versions: Tuple[str, ...]
    transcription_logging: bool
    transcription_invocation_logging: bool
    transcription_directory: Optional[str]
    module_logging: bool
    module_names: Optional[Tuple[str, ...]]
    script_block_logging: bool
    script_block_invocation_logging: bool
    os_supports_amsi: bool


class PowerShellCommand(CommandBase):
    name = "PowerShell"
    description = "PowerShell versions and security settings"
    groups = (CommandGroup.SYSTEM, CommandGroup.REMOTE)
    supports_remote = True

    def _windows_powershell_versions(self, accessor: RegistryAccessor) -> List[str]:
        versions = []
        for key in ENGINE_KEYS:
            version = accessor.get_string(HKLM, key, "PowerShellVersion")
            if version is not None:
                versions.append(version)
        return versions

    def _powershell_core_versions(self, accessor: RegistryAccessor) -> List[str]:
        versions = []
        for subkey in accessor.get_subkey_names(HKLM, CORE_VERSIONS_KEY):
            version = accessor.get_string(HKLM, CORE_VERSIONS_KEY + "\\" + subkey, "SemanticVersion")
            if version is not None:
                versions.append(version)
        return versions

    def _enabled(self, accessor: RegistryAccessor, path: str, value_name: str) -> bool:
        return accessor.get_string(HKLM, path, value_name) == "1"

    def execute(self, accessor: RegistryAccessor, args: Sequence[str]) -> Iterator[PowerShellRecord]:
        installed = self._windows_powershell_versions(accessor) + self._powershell_core_versions(accessor)
        logger.debug(f"Installed PowerShell versions on {accessor.target}: {installed}")

        module_names = accessor.get_values(HKLM, MODULE_LOGGING_KEY + r"\ModuleNames")
        os_major = accessor.get_dword(HKLM, CURRENT_VERSION_KEY, "CurrentMajorVersionNumber")

        yield PowerShellRecord(
            installed_versions=tuple(installed),
            transcription_logging=self._enabled(accessor, TRANSCRIPTION_KEY, "EnableTranscripting"),
            transcription_invocation_logging=self._enabled(accessor, TRANSCRIPTION_KEY, "EnableInvocationHeader"),
            transcription_directory=accessor.get_string(HKLM, TRANSCRIPTION_KEY, "OutputDirectory"),
            module_logging=self._enabled(accessor, MODULE_LOGGING_KEY, "EnableModuleLogging"),
            module_names=tuple(module_names) if module_names is not None else None,
            script_block_logging=self._enabled(accessor, SCRIPT_BLOCK_KEY, "EnableScriptBlockLogging"),
            script_block_invocation_logging=self._enabled(accessor, SCRIPT_BLOCK_KEY, "EnableScriptBlockInvocationLogging"),
            # CurrentMajorVersionNumber only exists from Windows 10 on
            os_supports_amsi=os_major is not None and os_major >= AMSI_MIN_OS_MAJOR,
        )


class PowerShellTextFormatter(TextFormatterBase):
    """
    A version that does not parse is flagged in place and left out of the
    advisories. The whole report is still written before VersionFormatError
    is raised for it.
    """

    def format_result(self, record: PowerShellRecord) -> None:
        parsed = []
        malformed = []
        self.write_line("  Installed PowerShell Versions")
        for version in record.installed_versions:
            try:
                parsed.append(parse_version(version))
            except VersionFormatError:
                malformed.append(version)
                self.write_line(f"      [!] Unparseable version '{version}'")
            else:
                self.write_line("      " + version)

        lowest_major = min(parsed)[0] if parsed else None
        highest_major = max(parsed)[0] if parsed else None

        def below(major: Optional[int], threshold: int) -> bool:
            return major is not None and major < threshold

        self.write_line("\n  Transcription Logging Settings")
        self.write_line(f"      Enabled            : {record.transcription_logging}")
        self.write_line(f"      Invocation Logging : {record.transcription_invocation_logging}")
        self.write_line(f"      Log Directory      : {record.transcription_directory or ''}")

        self.write_line("\n  Module Logging Settings")
        self.write_line(f"      Enabled             : {record.module_logging}")
        self.write_line("      Logged Module Names :")
        for module in record.module_names or ():
            self.write_line("          " + module)

        if record.module_logging:
            if below(lowest_major, MODULE_LOGGING_MIN_MAJOR):
                self.write_line("      [!] You can do a PowerShell version downgrade to bypass the logging.")
            if below(highest_major, MODULE_LOGGING_MIN_MAJOR):
                self.write_line("      [!] Module logging is configured. Logging will not occur, however, "
                                "because it requires PSv3.")

        self.write_line("\n  Script Block Logging Settings")
        self.write_line(f"      Enabled            : {record.script_block_logging}")
        self.write_line(f"      Invocation Logging : {record.script_block_invocation_logging}")
        if record.script_block_logging:
            if below(highest_major, SCRIPT_BLOCK_LOGGING_MIN_MAJOR):
                self.write_line("      [!] Script block logging is configured. Logging will not occur, however, "
                                "because it requires PSv5.")
            if below(lowest_major, SCRIPT_BLOCK_LOGGING_MIN_MAJOR):
                self.write_line("      [!] You can do a PowerShell version downgrade to bypass the logging.")

        self.write_line("\n  Anti-Malware Scan Interface (AMSI)")
        self.write_line(f"      OS Supports AMSI: {record.os_supports_amsi}")
        if record.os_supports_amsi and below(lowest_major, AMSI_MIN_MAJOR):
            self.write_line("      [!] You can do a PowerShell version downgrade to bypass AMSI.")

        if malformed:
            raise VersionFormatError(f"Malformed version string(s): {', '.join(repr(v) for v in malformed)}")
