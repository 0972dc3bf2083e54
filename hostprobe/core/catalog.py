"""
The command catalog: which commands exist and which formatter renders each
record type. Built once with CommandCatalogBuilder, read-only afterwards.
"""
import logging
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Type

from hostprobe.core.command import CommandBase, CommandGroup, CommandMetadata, ResultRecord
from hostprobe.core.errors import CatalogError

logger = logging.getLogger(__name__)


class CommandCatalog:
    def __init__(self, commands: Mapping[str, Type[CommandBase]],
                 formatters: Mapping[type, type]):
        self._commands = MappingProxyType(dict(commands))
        self._formatters = MappingProxyType(dict(formatters))

    @property
    def commands(self) -> Mapping[str, Type[CommandBase]]:
        """Command classes keyed by lower-cased name, in registration order."""
        return self._commands

    @property
    def formatters(self) -> Mapping[type, type]:
        return self._formatters

    def get(self, name: str) -> Optional[Type[CommandBase]]:
        return self._commands.get(name.strip().lower())

    def in_group(self, group: CommandGroup) -> List[Type[CommandBase]]:
        return [command for command in self._commands.values() if group in command.metadata().groups]

    def metadata(self) -> List[CommandMetadata]:
        return [command.metadata() for command in self._commands.values()]

    def formatter_for(self, record_type: type) -> Optional[type]:
        """Exact type lookup. Subclasses of a bound record type need their own binding."""
        return self._formatters.get(record_type)

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None


class CommandCatalogBuilder:
    def __init__(self):
        self._commands: Dict[str, Type[CommandBase]] = {}
        self._formatters: Dict[type, type] = {}

    def add_command(self, command: Type[CommandBase]) -> "CommandCatalogBuilder":
        if not command.name:
            raise CatalogError(f"Command class {command.__name__} has no name")
        key = command.name.lower()
        if CommandGroup.lookup(key) is not None or key == "all":
            raise CatalogError(f"Command name '{command.name}' collides with a group name")
        if key in self._commands:
            raise CatalogError(f"Command '{command.name}' is already registered")
        self._commands[key] = command
        return self

    def bind_formatter(self, record_type: Type[ResultRecord], formatter: type) -> "CommandCatalogBuilder":
        if not (isinstance(record_type, type) and issubclass(record_type, ResultRecord)):
            raise CatalogError(f"{record_type!r} is not a ResultRecord type")
        if record_type in self._formatters:
            raise CatalogError(f"A formatter is already bound to {record_type.__name__}")
        self._formatters[record_type] = formatter
        return self

    def build(self) -> CommandCatalog:
        logger.debug(f"Command catalog built with {len(self._commands)} commands and "
                     f"{len(self._formatters)} formatter bindings")
        return CommandCatalog(self._commands, self._formatters)
