# -*- coding: utf-8 -*-
"""
The 'commands' package contains the built-in probes, their result records and
the text formatters bound to them.

New commands are added to the catalog in default_catalog() together with the
formatter for every record type they yield.
"""
from hostprobe.commands.autoruns import AutoRunRecord, AutoRunsCommand, AutoRunTextFormatter
from hostprobe.commands.powershell import PowerShellCommand, PowerShellRecord, PowerShellTextFormatter
from hostprobe.commands.security_services import (
    SecurityServiceRecord,
    SecurityServicesCommand,
    SecurityServiceTextFormatter,
)
from hostprobe.commands.uac import UacCommand, UacRecord, UacTextFormatter
from hostprobe.core.catalog import CommandCatalog, CommandCatalogBuilder

BUILTIN_COMMANDS = (
    (PowerShellCommand, PowerShellRecord, PowerShellTextFormatter),
    (UacCommand, UacRecord, UacTextFormatter),
    (AutoRunsCommand, AutoRunRecord, AutoRunTextFormatter),
    (SecurityServicesCommand, SecurityServiceRecord, SecurityServiceTextFormatter),
)


def default_catalog() -> CommandCatalog:
    """Catalog of every built-in command with its formatter bindings."""
    builder = CommandCatalogBuilder()
    for command, record_type, formatter in BUILTIN_COMMANDS:
        builder.add_command(command).bind_formatter(record_type, formatter)
    return builder.build()
