from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence
import os
import re

import psutil

from .errors import ProcessIntrospectionError
from .models import ProcessFacts
from .utils import printable, read_lines, read_text

PROC_ROOT = Path("/proc")

# Mount points that only exist on test images, and only in init's mount namespace.
TEST_IMAGE_MOUNTS = ("/usr/local", "/var/db/pkg", "/var/lib/portage")

SANITIZER_FLAGS_FILE = Path("/etc/session_manager_use_flags.txt")

# "Name:\tpowerd", "Uid:\t0\t0\t0\t0", ...
STATUS_LINE_RE = re.compile(r"^([^:]+):\t(.*)$")


@dataclass
class Snapshot:
    facts: Dict[int, ProcessFacts] = field(default_factory=dict)
    errors: List[ProcessIntrospectionError] = field(default_factory=list)


class SnapshotProvider(Protocol):
    def collect(self) -> Snapshot: ...


def parse_status(lines: Iterable[str]) -> Dict[str, str]:
    """Parse /proc/<pid>/status; any malformed line is an error."""
    data: Dict[str, str] = {}
    for line in lines:
        # Some kernels emit blank lines.
        if not line:
            continue
        m = STATUS_LINE_RE.match(line)
        if not m:
            raise ValueError(f"failed to parse line {line!r}")
        data[m.group(1)] = m.group(2)
    return data

def read_status(pid: int, proc_root: Path = PROC_ROOT) -> Dict[str, str]:
    return parse_status(read_lines(proc_root / str(pid) / "status"))

def read_namespace(pid: int, name: str, proc_root: Path = PROC_ROOT) -> int:
    """Return the ID from /proc/<pid>/ns/<name>, a link of the form "<name>:[<id>]"."""
    link = os.readlink(proc_root / str(pid) / "ns" / name)
    pre, suf = f"{name}:[", "]"
    if not link.startswith(pre) or not link.endswith(suf):
        raise ValueError(f"unexpected value {link!r}")
    return int(link[len(pre):-len(suf)])

def read_mountpoints(pid: int, proc_root: Path = PROC_ROOT) -> List[str]:
    mounts = []
    for line in read_lines(proc_root / str(pid) / "mounts", limit_lines=100000):
        if not line.strip():
            continue
        # run /var/run tmpfs rw,nosuid,nodev,noexec,relatime,mode=755 0 0
        parts = line.split()
        if len(parts) != 6:
            raise ValueError(f"failed to parse line {line!r}")
        mounts.append(parts[1])
    return mounts

def _effective_id(status: Dict[str, str], key: str) -> int:
    # real, effective, saved, filesystem
    fields = status.get(key, "").split()
    if len(fields) < 2:
        raise ValueError(f"bad {key} line {status.get(key)!r}")
    return int(fields[1])

def get_exe(pid: int) -> str:
    try:
        return psutil.Process(pid).exe()
    except psutil.Error:
        # kernel threads have no executable
        return ""

def is_alive(pid: int) -> bool:
    """True if pid still exists and is not a zombie (zombies lack namespace data)."""
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.Error:
        return False

def analyze_process(pid: int, proc_root: Path = PROC_ROOT,
                    test_image_mounts: Sequence[str] = TEST_IMAGE_MOUNTS) -> ProcessFacts:
    """Gather sandboxing facts for pid.

    Raises OSError if a file can't be read and ValueError on malformed data.
    """
    status = read_status(pid, proc_root)
    missing = [k for k in ("Name", "PPid", "CapEff") if k not in status]
    if missing:
        raise ValueError(f"status is missing {', '.join(missing)}")
    try:
        ecaps = int(status["CapEff"], 16)
    except ValueError:
        raise ValueError(f"failed parsing effective caps {status['CapEff']!r}") from None

    mounts = set(read_mountpoints(pid, proc_root))
    return ProcessFacts(
        pid=pid,
        ppid=int(status["PPid"]),
        name=status["Name"],
        exe=get_exe(pid),
        euid=_effective_id(status, "Uid"),
        egid=_effective_id(status, "Gid"),
        pid_ns=read_namespace(pid, "pid", proc_root),
        mnt_ns=read_namespace(pid, "mnt", proc_root),
        ecaps=ecaps,
        no_new_privs=status.get("NoNewPrivs") == "1",
        seccomp=status.get("Seccomp") == "2",  # 1 is strict, 2 is filter
        has_test_image_mounts=any(m in mounts for m in test_image_mounts),
    )


class ProcSnapshotProvider:
    """Reads one snapshot of every live process from /proc."""

    def __init__(self, proc_root: Path = PROC_ROOT, test_image_mounts: Sequence[str] = TEST_IMAGE_MOUNTS):
        self.proc_root = Path(proc_root)
        self.test_image_mounts = tuple(test_image_mounts)

    def get_proc_ids(self) -> List[int]:
        return sorted(psutil.pids())

    def collect(self) -> Snapshot:
        # Parents may have higher PIDs than their children after wraparound,
        # so everything is gathered before anything is evaluated.
        snap = Snapshot()
        for pid in self.get_proc_ids():
            try:
                snap.facts[pid] = analyze_process(pid, self.proc_root, self.test_image_mounts)
            except (OSError, ValueError) as e:
                # Either the process exited or /proc couldn't be parsed; only the
                # latter is worth reporting.
                if is_alive(pid):
                    snap.errors.append(ProcessIntrospectionError(pid, str(e)))
        return snap


def format_facts(info: ProcessFacts) -> str:
    return (f"{info.pid:5d} {printable(info.name):<15} uid={info.euid:<6d} gid={info.egid:<6d} "
            f"pidns={info.pid_ns:<10d} mntns={info.mnt_ns:<10d} nnp={str(info.no_new_privs):<5} "
            f"seccomp={str(info.seccomp):<5} ecaps={info.ecaps:#x}")

def sanitizer_build_enabled(flags_file: Optional[Path] = SANITIZER_FLAGS_FILE) -> bool:
    """True if the USE flags the image was built with include "asan"."""
    if not flags_file:
        return False
    return any(line.strip() == "asan" for line in read_text(Path(flags_file)).splitlines())
