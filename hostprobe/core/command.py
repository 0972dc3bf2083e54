"""
The probe ("command") contract.

To add a new command:
    1. Define a frozen dataclass subclassing ResultRecord for what it reports
    2. Subclass CommandBase, set name, description, groups, supports_remote
    3. Implement execute(accessor, args) as a generator of records
    4. Write a TextFormatterBase subclass for the record and bind both in the catalog

Commands never render anything and never check whether the target is remote;
the dispatcher filters remote-incapable commands before execute() is called.
"""
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, Iterator, Sequence

from hostprobe.core.registry import RegistryAccessor


class CommandGroup(str, Enum):
    SYSTEM = "system"
    USER = "user"
    MISC = "misc"
    REMOTE = "remote"

    @classmethod
    def lookup(cls, name: str):
        """Case-insensitive lookup, None when the name is not a group."""
        for group in cls:
            if group.value == name.strip().lower():
                return group
        return None


@dataclass(frozen=True)
class CommandMetadata:
    name: str
    description: str
    groups: FrozenSet[CommandGroup]
    supports_remote: bool


@dataclass(frozen=True)
class ResultRecord:
    """Base class of every immutable record a command yields."""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CommandBase(ABC):
    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    groups: ClassVar[Sequence[CommandGroup]] = ()
    supports_remote: ClassVar[bool] = False

    @classmethod
    def metadata(cls) -> CommandMetadata:
        return CommandMetadata(
            name=cls.name,
            description=cls.description,
            groups=frozenset(cls.groups),
            supports_remote=cls.supports_remote,
        )

    @abstractmethod
    def execute(self, accessor: RegistryAccessor, args: Sequence[str]) -> Iterator[ResultRecord]:
        """
        Collect facts and yield zero or more records.

        Args:
            accessor: Registry reader bound to the run's target.
            args:     Command specific arguments from the selection token.
        """
        ...

    def __repr__(self) -> str:
        return f"<Command {self.name!r}>"
