"""Extra label derivation: process identity, runtime properties and flag labels."""
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple
import getpass
import logging
import os
import platform
import socket
import sys

from pushagent.config import AgentConfig
from pushagent.errors import MalformedIdentity

logger = logging.getLogger(__name__)

PID_LABEL = "jvm_pid"
HOST_LABEL = "jvm_host"

PropertyProvider = Callable[[], Mapping[str, str]]


@dataclass(frozen=True)
class ProcessIdentity:
    """Identity of the running process, as in ``pid@host``."""
    pid: str
    host: str

    @classmethod
    def parse(cls, identity: str) -> "ProcessIdentity":
        pid, sep, host = identity.partition("@")
        if not sep:
            raise MalformedIdentity(identity)
        return cls(pid, host)

    @classmethod
    def current(cls) -> "ProcessIdentity":
        return cls.parse(f"{os.getpid()}@{socket.gethostname()}")

    @property
    def job_name(self) -> str:
        """Push destination name for this process."""
        return f"{self.host}_{self.pid}"


@dataclass(frozen=True)
class LabelSet:
    """Parallel label names and values attached to every pushed sample."""
    names: Tuple[str, ...] = ()
    values: Tuple[str, ...] = ()

    def __post_init__(self):
        if len(self.names) != len(self.values):
            raise ValueError("Label names and values must have the same length")

    def __len__(self) -> int:
        return len(self.names)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(zip(self.names, self.values))

    def pairs(self) -> List[Tuple[str, str]]:
        return list(self)

    def as_dict(self) -> Dict[str, str]:
        """Labels as a mapping; a later duplicate name overrides an earlier one."""
        return dict(self)


def system_properties() -> Dict[str, str]:
    """Snapshot of runtime properties of the current interpreter."""
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = ""

    return {
        "python.version": platform.python_version(),
        "python.implementation": platform.python_implementation(),
        "python.executable": sys.executable or "",
        "os.name": platform.system(),
        "os.arch": platform.machine(),
        "os.version": platform.release(),
        "user.name": user,
        "user.dir": os.getcwd(),
        "file.encoding": sys.getfilesystemencoding(),
    }


def sanitize(text: str) -> str:
    """Make a property key or value usable as a label: '.' -> '__', ' ' -> '_'."""
    return text.replace(".", "__").replace(" ", "_")


def split_list(value: Optional[str]) -> List[str]:
    """Split a comma separated option value, dropping empty entries."""
    if not value:
        return []
    return [item for item in value.split(",") if item]


def jvm_property_labels(properties: Mapping[str, str], prefixes: Sequence[str] = ()) -> Dict[str, str]:
    """
    Sanitized property labels, optionally restricted to keys starting with one of prefixes.

    Args:
        properties: property key/value mapping to scan
        prefixes: allowed key prefixes; empty means every property is included

    Returns:
        Mapping of sanitized label name to sanitized label value
    """
    labels: Dict[str, str] = {}
    for key, value in properties.items():
        key = str(key)
        if prefixes and not any(key.startswith(prefix) for prefix in prefixes):
            continue
        labels[sanitize(key)] = sanitize(str(value))
    return labels


def derive_labels(
    config: AgentConfig,
    identity: ProcessIdentity,
    properties: Optional[PropertyProvider] = None,
) -> LabelSet:
    """Build the extra label set for every pushed sample."""
    names: List[str] = [PID_LABEL, HOST_LABEL]
    values: List[str] = [identity.pid, identity.host]

    jvm_labels = config.option("jvmLabels")
    if jvm_labels is not None and jvm_labels.lower() == "true":
        provider = properties or system_properties
        prefixes = split_list(config.option("allowedJVMLabelPrefixes"))
        property_labels = jvm_property_labels(provider(), prefixes)
        names.extend(property_labels.keys())
        values.extend(property_labels.values())
        logger.info(f"Added {len(property_labels)} property labels (prefixes: {prefixes or 'all'})")

    for name in split_list(config.option("extraTrueLabels")):
        names.append(name)
        values.append("true")

    labels = LabelSet(tuple(names), tuple(values))
    duplicates = {name for name in labels.names if labels.names.count(name) > 1}
    if duplicates:
        logger.warning(f"Duplicate label names {sorted(duplicates)}, later values take precedence")

    logger.info(f"Labels added to all metrics: {list(labels.names)}")
    return labels
