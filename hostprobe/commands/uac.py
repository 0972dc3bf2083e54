"""UAC system policies."""
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from hostprobe.core.command import CommandBase, CommandGroup, ResultRecord
from hostprobe.core.registry import RegistryAccessor, RegistryHive
from hostprobe.output.formatters import TextFormatterBase, format_value

SYSTEM_POLICIES_KEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Policies\System"

CONSENT_PROMPT_BEHAVIORS = {
    0: "No prompting",
    1: "PromptOnSecureDesktop",
    2: "PromptPermitDenyOnSecureDesktop",
    3: "PromptForCredsNotOnSecureDesktop",
    4: "PromptForPermitDenyNotOnSecureDesktop",
    5: "PromptForNonWindowsBinaries",
}


@dataclass(frozen=True)
class UacRecord(ResultRecord):
    enable_lua: Optional[int]
    consent_prompt_behavior_admin: Optional[int]
    local_account_token_filter_policy: Optional[int]
    filter_administrator_token: Optional[int]


class UacCommand(CommandBase):
    name = "UAC"
    description = "UAC system policy settings"
    groups = (CommandGroup.SYSTEM, CommandGroup.REMOTE)
    supports_remote = True

    def execute(self, accessor: RegistryAccessor, args: Sequence[str]) -> Iterator[UacRecord]:
        def read(value_name: str) -> Optional[int]:
            return accessor.get_dword(RegistryHive.LOCAL_MACHINE, SYSTEM_POLICIES_KEY, value_name)

        yield UacRecord(
            enable_lua=read("EnableLUA"),
            consent_prompt_behavior_admin=read("ConsentPromptBehaviorAdmin"),
            local_account_token_filter_policy=read("LocalAccountTokenFilterPolicy"),
            filter_administrator_token=read("FilterAdministratorToken"),
        )


class UacTextFormatter(TextFormatterBase):
    def format_result(self, record: UacRecord) -> None:
        behavior = record.consent_prompt_behavior_admin
        if behavior is not None:
            behavior_text = f"{behavior} - {CONSENT_PROMPT_BEHAVIORS.get(behavior, 'Unknown')}"
        else:
            behavior_text = ""

        self.write_line(f"  {'ConsentPromptBehaviorAdmin':<30}: {behavior_text}")
        self.write_line(f"  {'EnableLUA (Is UAC enabled?)':<30}: {format_value(record.enable_lua)}")
        self.write_line(f"  {'LocalAccountTokenFilterPolicy':<30}: {format_value(record.local_account_token_filter_policy)}")
        self.write_line(f"  {'FilterAdministratorToken':<30}: {format_value(record.filter_administrator_token)}")

        if record.enable_lua == 0:
            self.write_line("    [*] EnableLUA != 1, UAC policies disabled.")
            self.write_line("    [+] Any local account can be used for lateral movement.")
        elif record.local_account_token_filter_policy == 1:
            self.write_line("    [*] LocalAccountTokenFilterPolicy set to 1.")
            self.write_line("    [+] Any local admin account can be used for lateral movement.")
        elif record.filter_administrator_token != 1:
            self.write_line("    [*] Default Windows settings - Only the RID-500 local admin account can be used "
                            "for lateral movement.")
