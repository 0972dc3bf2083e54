"""
Uniform read access to the Windows registry of a local or remote target.

Probes only ever see RegistryAccessor. Below it sits a RegistryBackend:
WinregBackend talks to the live registry through winreg.ConnectRegistry
(local when the target has no host, the Remote Registry service otherwise),
MemoryBackend serves a snapshot held in memory. Both answer with the same
absent-vs-empty semantics and raise TransportError for the same failures.
"""
import json
import logging
import os
import platform
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from hostprobe.core.errors import ConfigError, ProbeCancelled, TransportError
from hostprobe.core.target import Target

# Conditional import for winreg
if platform.system() == "Windows":
    import winreg
else:
    winreg = None

logger = logging.getLogger(__name__)

# Win32 error codes that mean the store itself is unreachable
TRANSPORT_WINERRORS = {
    5: "access denied",
    53: "network path not found",
    67: "network name not found",
    1326: "logon failure",
    1722: "RPC server unavailable",
    1727: "remote procedure call failed",
}

# EnumKey / EnumValue past the last entry
ERROR_NO_MORE_ITEMS = 259


class RegistryHive(str, Enum):
    LOCAL_MACHINE = "HKLM"
    CURRENT_USER = "HKCU"
    USERS = "HKU"
    CLASSES_ROOT = "HKCR"
    CURRENT_CONFIG = "HKCC"

    @property
    def winreg_name(self) -> str:
        return "HKEY_" + self.name

    @classmethod
    def parse(cls, value: Union["RegistryHive", str]) -> "RegistryHive":
        if isinstance(value, RegistryHive):
            return value
        text = str(value).strip().upper()
        for hive in cls:
            if text in (hive.value, hive.name, hive.winreg_name):
                return hive
        raise ValueError(f"Unknown registry hive: {value!r}")


# The Remote Registry service only exposes these roots
REMOTE_HIVES = frozenset({RegistryHive.LOCAL_MACHINE, RegistryHive.USERS})

HiveLike = Union[RegistryHive, str]


def normalize_path(path: Optional[str]) -> str:
    """Converts a slash or backslash delimited key path to canonical backslash form."""
    parts = (path or "").replace("/", "\\").split("\\")
    return "\\".join(part for part in parts if part)


def stringify(value: Any) -> Optional[str]:
    """Renders raw registry data the way a string read reports it."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


class RegistryBackend(ABC):
    """
    Raw access to one target's registry.

    Readers return None when the key (or value) does not exist and raise
    TransportError when the store cannot be reached.
    """

    def __init__(self, target: Target):
        self.target = target

    def check_hive(self, hive: RegistryHive) -> None:
        if self.target.is_remote and hive not in REMOTE_HIVES:
            raise TransportError(
                f"Hive {hive.value} is not available over the remote registry",
                host=self.target.host,
            )

    @abstractmethod
    def read_value(self, hive: RegistryHive, path: str, name: str) -> Any:
        ...

    @abstractmethod
    def subkey_names(self, hive: RegistryHive, path: str) -> Optional[List[str]]:
        ...

    @abstractmethod
    def values(self, hive: RegistryHive, path: str) -> Optional[Dict[str, Any]]:
        ...

    def close(self) -> None:
        pass


class WinregBackend(RegistryBackend):
    """Live registry through winreg. One connection per hive, opened on first use."""

    def __init__(self, target: Target):
        super().__init__(target)
        self._connections: Dict[RegistryHive, Any] = {}
        self._lock = threading.Lock()

    def _transport_error(self, exc: OSError, context: str) -> TransportError:
        code = getattr(exc, "winerror", None)
        reason = TRANSPORT_WINERRORS.get(code, str(exc))
        return TransportError(f"{context} on {self.target}: {reason}", host=self.target.host, winerror=code)

    def _connect(self, hive: RegistryHive):
        if winreg is None:
            raise TransportError("The winreg module is not available on this platform", host=self.target.host)
        self.check_hive(hive)
        with self._lock:
            handle = self._connections.get(hive)
            if handle is None:
                try:
                    handle = winreg.ConnectRegistry(self.target.host, getattr(winreg, hive.winreg_name))
                except OSError as e:
                    raise self._transport_error(e, f"Could not connect to {hive.value}") from e
                logger.debug(f"Connected to {hive.value} on {self.target}")
                self._connections[hive] = handle
            return handle

    def _open(self, hive: RegistryHive, path: str):
        root = self._connect(hive)
        try:
            return winreg.OpenKey(root, path, 0, winreg.KEY_READ)
        except FileNotFoundError:
            logger.debug(f"Registry key not found: {hive.value}\\{path}")
            return None
        except OSError as e:
            raise self._transport_error(e, f"Could not open {hive.value}\\{path}") from e

    def read_value(self, hive: RegistryHive, path: str, name: str) -> Any:
        handle = self._open(hive, path)
        if handle is None:
            return None
        with handle as key:
            try:
                value, _ = winreg.QueryValueEx(key, name)
            except FileNotFoundError:
                return None
            except OSError as e:
                raise self._transport_error(e, f"Could not read {hive.value}\\{path}\\{name}") from e
        return value

    def subkey_names(self, hive: RegistryHive, path: str) -> Optional[List[str]]:
        handle = self._open(hive, path)
        if handle is None:
            return None
        names = []
        with handle as key:
            i = 0
            while True:
                try:
                    names.append(winreg.EnumKey(key, i))
                    i += 1
                except OSError as e:
                    if getattr(e, "winerror", None) == ERROR_NO_MORE_ITEMS:
                        break
                    raise self._transport_error(e, f"Could not enumerate {hive.value}\\{path}") from e
        return names

    def values(self, hive: RegistryHive, path: str) -> Optional[Dict[str, Any]]:
        handle = self._open(hive, path)
        if handle is None:
            return None
        values = {}
        with handle as key:
            i = 0
            while True:
                try:
                    name, value, _ = winreg.EnumValue(key, i)
                    values[name] = value
                    i += 1
                except OSError as e:
                    if getattr(e, "winerror", None) == ERROR_NO_MORE_ITEMS:
                        break
                    raise self._transport_error(e, f"Could not enumerate values of {hive.value}\\{path}") from e
        return values

    def close(self) -> None:
        with self._lock:
            for hive, handle in self._connections.items():
                try:
                    winreg.CloseKey(handle)
                except OSError as e:
                    logger.debug(f"Error closing {hive.value} connection to {self.target}: {e}")
            self._connections.clear()


class MemoryBackend(RegistryBackend):
    """
    Registry contents held in memory.

    `keys` maps full key paths ("HKLM\\SOFTWARE\\Vendor") to their values.
    Parent keys exist implicitly. Key paths and value names are
    case-insensitive like the real registry. With unreachable=True every
    read fails the way a dead remote host does.
    """

    def __init__(self, keys: Optional[Mapping[str, Mapping[str, Any]]] = None,
                 target: Optional[Target] = None, unreachable: bool = False):
        super().__init__(target or Target.local())
        self.unreachable = unreachable
        self._values: Dict[Tuple[RegistryHive, str], Dict[str, Any]] = {}
        self._children: Dict[Tuple[RegistryHive, str], Dict[str, str]] = {}
        for full_path, values in (keys or {}).items():
            self._add_key(full_path, values or {})

    def _add_key(self, full_path: str, values: Mapping[str, Any]) -> None:
        hive_name, _, path = normalize_path(full_path).partition("\\")
        hive = RegistryHive.parse(hive_name)
        parts = path.split("\\") if path else []
        for depth in range(len(parts) + 1):
            node = (hive, "\\".join(parts[:depth]).lower())
            self._values.setdefault(node, {})
            self._children.setdefault(node, {})
            if depth < len(parts):
                self._children[node].setdefault(parts[depth].lower(), parts[depth])
        self._values[(hive, path.lower())].update(values)

    def _node(self, hive: RegistryHive, path: str) -> Optional[Tuple[RegistryHive, str]]:
        if self.unreachable:
            raise TransportError(f"Host {self.target} is unreachable", host=self.target.host, winerror=53)
        self.check_hive(hive)
        node = (hive, path.lower())
        return node if node in self._values else None

    def read_value(self, hive: RegistryHive, path: str, name: str) -> Any:
        node = self._node(hive, path)
        if node is None:
            return None
        wanted = name.lower()
        for value_name, value in self._values[node].items():
            if value_name.lower() == wanted:
                return value
        return None

    def subkey_names(self, hive: RegistryHive, path: str) -> Optional[List[str]]:
        node = self._node(hive, path)
        if node is None:
            return None
        return list(self._children[node].values())

    def values(self, hive: RegistryHive, path: str) -> Optional[Dict[str, Any]]:
        node = self._node(hive, path)
        if node is None:
            return None
        return dict(self._values[node])


class RegistryAccessor:
    """
    Typed, read-only view of one target's registry.

    Absence is reported as None (or an empty list for subkeys) and never
    raises. TransportError propagates to the caller.
    """

    def __init__(self, backend: RegistryBackend, cancel_event: Optional[threading.Event] = None):
        self.backend = backend
        self._cancel_event = cancel_event

    @property
    def target(self) -> Target:
        return self.backend.target

    def bind_cancel(self, cancel_event: threading.Event) -> "RegistryAccessor":
        """Returns an accessor sharing this connection whose reads stop once the event is set."""
        return RegistryAccessor(self.backend, cancel_event)

    def _prepare(self, hive: HiveLike, path: str) -> Tuple[RegistryHive, str]:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise ProbeCancelled(f"Read cancelled on {self.target}")
        return RegistryHive.parse(hive), normalize_path(path)

    def get_string(self, hive: HiveLike, path: str, value_name: str) -> Optional[str]:
        hive, path = self._prepare(hive, path)
        return stringify(self.backend.read_value(hive, path, value_name))

    def get_dword(self, hive: HiveLike, path: str, value_name: str) -> Optional[int]:
        hive, path = self._prepare(hive, path)
        value = self.backend.read_value(hive, path, value_name)
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.debug(f"Value {hive.value}\\{path}\\{value_name} is not numeric: {value!r}")
            return None

    def get_subkey_names(self, hive: HiveLike, path: str) -> List[str]:
        hive, path = self._prepare(hive, path)
        return self.backend.subkey_names(hive, path) or []

    def get_values(self, hive: HiveLike, path: str) -> Optional[Dict[str, str]]:
        hive, path = self._prepare(hive, path)
        values = self.backend.values(hive, path)
        if values is None:
            return None
        return {name: stringify(value) for name, value in values.items()}

    def close(self) -> None:
        self.backend.close()

    def __enter__(self) -> "RegistryAccessor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


AccessorFactory = Callable[[Target], RegistryAccessor]


def winreg_accessor(target: Target) -> RegistryAccessor:
    """Accessor over the live registry of the target."""
    return RegistryAccessor(WinregBackend(target))


class RegistrySnapshot:
    """
    Offline registry contents loaded from a JSON or YAML file.

    Layout::

        keys:                      # served for the local target
          HKLM\\SOFTWARE\\Vendor: {Value: "1"}
        hosts:                     # served for named remote targets
          WS01:
            HKLM\\SOFTWARE\\Vendor: {Value: "0"}

    A remote target missing from `hosts` behaves as an unreachable host.
    """

    def __init__(self, keys: Optional[Mapping[str, Mapping[str, Any]]] = None,
                 hosts: Optional[Mapping[str, Mapping[str, Mapping[str, Any]]]] = None):
        self.keys = dict(keys or {})
        self.hosts = {str(host).lower(): dict(host_keys or {}) for host, host_keys in (hosts or {}).items()}

    @staticmethod
    def _check_keys(keys: Any, where: str) -> None:
        """Raises ConfigError unless keys maps registry paths with a known hive to value mappings."""
        if keys is None:
            return
        if not isinstance(keys, dict):
            raise ConfigError(f"{where} must map registry key paths to values")
        for full_path, values in keys.items():
            if not isinstance(full_path, str):
                raise ConfigError(f"{where}: key path {full_path!r} is not a string")
            hive_name = normalize_path(full_path).partition("\\")[0]
            try:
                RegistryHive.parse(hive_name)
            except ValueError as e:
                raise ConfigError(f"{where}: key {full_path!r} has an unknown hive '{hive_name}'") from e
            if values is not None and not isinstance(values, dict):
                raise ConfigError(f"{where}: values of key {full_path!r} must be a mapping")

    @classmethod
    def load(cls, path: str) -> "RegistrySnapshot":
        if not os.path.isfile(path):
            raise ConfigError(f"Registry snapshot not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                if path.lower().endswith(".json"):
                    document = json.load(f)
                else:
                    document = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError, OSError) as e:
            raise ConfigError(f"Could not read registry snapshot {path}: {e}") from e
        if not isinstance(document, dict):
            raise ConfigError(f"Registry snapshot {path} must contain a mapping")
        if "keys" not in document and "hosts" not in document:
            document = {"keys": document}

        cls._check_keys(document.get("keys"), f"Registry snapshot {path}")
        hosts = document.get("hosts")
        if hosts is not None and not isinstance(hosts, dict):
            raise ConfigError(f"Registry snapshot {path}: hosts must map host names to keys")
        for host, host_keys in (hosts or {}).items():
            cls._check_keys(host_keys, f"Registry snapshot {path}, host {host}")
        logger.info(f"Loaded registry snapshot from {path}")
        return cls(document.get("keys"), document.get("hosts"))

    def backend_for(self, target: Target) -> MemoryBackend:
        if not target.is_remote:
            return MemoryBackend(self.keys, target)
        host_keys = self.hosts.get(target.host.lower())
        if host_keys is None:
            return MemoryBackend(target=target, unreachable=True)
        return MemoryBackend(host_keys, target)

    def accessor_for(self, target: Target) -> RegistryAccessor:
        return RegistryAccessor(self.backend_for(target))


def open_accessor(target: Target, snapshot: Optional[RegistrySnapshot] = None) -> RegistryAccessor:
    """Snapshot-backed accessor when a snapshot is loaded, live registry otherwise."""
    if snapshot is not None:
        return snapshot.accessor_for(target)
    return winreg_accessor(target)
