from __future__ import annotations
from dataclasses import dataclass, field
from enum import IntFlag
from typing import Any, Dict, List
import datetime as dt

from .errors import ConfigError
from .utils import truncate_proc_name


class Feature(IntFlag):
    """Security features a baseline entry may require of a process."""

    NONE = 0
    PID_NS = 1 << 0                # unique PID namespace
    MNT_NS = 1 << 1                # unique mount namespace, pivot_root(2) called
    MNT_NS_NO_PIVOT_ROOT = 1 << 2  # like MNT_NS, but pivot_root() not required
    RESTRICT_CAPS = 1 << 3         # effective capabilities differ from init's
    NO_NEW_PRIVS = 1 << 4          # no_new_privs set
    SECCOMP = 1 << 5               # seccomp filter mode

    @classmethod
    def parse(cls, value: Any) -> "Feature":
        """Accept a list of names, a "a|b" string, an int or nothing."""
        if value is None or value == "" or value == []:
            return cls.NONE
        if isinstance(value, bool):
            raise ConfigError(f"Invalid feature value {value!r}")
        if isinstance(value, int):
            if value < 0 or value & ~_ALL_FEATURES:
                raise ConfigError(f"Unknown sandboxing feature bits in {value!r}")
            return cls(value)
        if isinstance(value, str):
            value = value.split("|")
        out = cls.NONE
        for item in value:
            key = str(item).strip().upper()
            if not key:
                continue
            try:
                out |= cls[key]
            except KeyError:
                raise ConfigError(f"Unknown sandboxing feature {item!r}") from None
        return out

    def names(self) -> List[str]:
        return [f.name.lower() for f in Feature if f is not Feature.NONE and f in self]


_ALL_FEATURES = sum(int(f) for f in Feature)


@dataclass(frozen=True)
class ProcessFacts:
    pid: int
    ppid: int
    name: str
    exe: str = ""
    euid: int = 0
    egid: int = 0
    pid_ns: int = 0
    mnt_ns: int = 0
    ecaps: int = 0
    no_new_privs: bool = False
    seccomp: bool = False
    has_test_image_mounts: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pid": self.pid,
            "ppid": self.ppid,
            "name": self.name,
            "exe": self.exe,
            "euid": self.euid,
            "egid": self.egid,
            "pid_ns": self.pid_ns,
            "mnt_ns": self.mnt_ns,
            "ecaps": hex(self.ecaps),
            "no_new_privs": self.no_new_privs,
            "seccomp": self.seccomp,
            "has_test_image_mounts": self.has_test_image_mounts,
        }


@dataclass(frozen=True)
class Requirement:
    name: str
    user: str
    group: str
    features: Feature = Feature.NONE

    @classmethod
    def from_config(cls, entry: Dict[str, Any]) -> "Requirement":
        try:
            name = str(entry["name"])
            user = str(entry["user"])
        except (KeyError, TypeError):
            raise ConfigError(f"Baseline entry needs 'name' and 'user': {entry!r}") from None
        group = str(entry.get("group", user))
        return cls(
            name=truncate_proc_name(name),
            user=user,
            group=group,
            features=Feature.parse(entry.get("features")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "user": self.user,
            "group": self.group,
            "features": self.features.names(),
        }


@dataclass
class ProcessReport:
    pid: int
    name: str
    exe: str = ""
    problems: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"pid": self.pid, "name": self.name, "exe": self.exe, "problems": list(self.problems)}


@dataclass
class AuditResult:
    reports: List[ProcessReport] = field(default_factory=list)
    checked: int = 0
    errors: List[str] = field(default_factory=list)
    skip_seccomp: bool = False
    ts: str = ""

    def __post_init__(self):
        if not self.ts:
            self.ts = now_iso()

    @property
    def failed(self) -> bool:
        return bool(self.reports or self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.ts,
            "checked": self.checked,
            "failed": self.failed,
            "skip_seccomp": self.skip_seccomp,
            "violations": [r.to_dict() for r in self.reports],
            "errors": list(self.errors),
        }

def now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()
