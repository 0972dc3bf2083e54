import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from hostprobe.core.errors import InvalidTargetError

LOCAL_ALIASES = {"", ".", "localhost", "127.0.0.1", "::1"}

_IP_PATTERN = re.compile(r"^(?:[0-9]{1,3}\.){3}[0-9]{1,3}$")
_HOSTNAME_PATTERN = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9.-]{0,252}[a-zA-Z0-9])?$")


def validate_target(target: str) -> bool:
    """Validate the target to be a valid IPv4 address or hostname."""
    if _IP_PATTERN.match(target):
        return all(0 <= int(octet) <= 255 for octet in target.split("."))
    return bool(_HOSTNAME_PATTERN.match(target))


@dataclass(frozen=True)
class Target:
    """Where a run reads configuration from. host=None is the local machine."""

    host: Optional[str] = None

    @classmethod
    def local(cls) -> "Target":
        return cls(None)

    @classmethod
    def remote(cls, host: str) -> "Target":
        if not host or not validate_target(host):
            raise InvalidTargetError(f"Invalid target host: {host!r}")
        return cls(host)

    @classmethod
    def parse(cls, value: Optional[str]) -> "Target":
        value = (value or "").strip()
        # UNC style \\HOST is common on Windows command lines
        value = value.lstrip("\\/")
        if value.lower() in LOCAL_ALIASES:
            return cls.local()
        return cls.remote(value)

    @property
    def is_remote(self) -> bool:
        return self.host is not None

    def __str__(self) -> str:
        return self.host or "localhost"


def parse_targets(hosts: Optional[Iterable[str]]) -> List[Target]:
    """
    Parses a list of host names, expanding comma separated entries.

    Blank entries are skipped and host names are compared case-insensitively,
    keeping the first spelling. Empty input means local.
    """
    targets: List[Target] = []
    seen = set()
    for value in hosts or []:
        for part in value.split(","):
            if not part.strip():
                continue
            target = Target.parse(part)
            key = (target.host or "").lower()
            if key not in seen:
                seen.add(key)
                targets.append(target)
    return targets or [Target.local()]
