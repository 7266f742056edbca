from typing import Collection, Mapping

from .errors import ProcessNotInSnapshot
from .models import ProcessFacts
from .utils import truncate_proc_name

INIT_PID = 1


def has_ignored_ancestor(pid: int, ignored: Collection[str], snapshot: Mapping[int, ProcessFacts],
                         init_pid: int = INIT_PID) -> bool:
    """Return True if any ancestor of pid is named in ignored.

    The walk stops at init. Every PID along the way has to be in the snapshot;
    a missing one raises ProcessNotInSnapshot, as does a parent chain that loops
    without ever reaching init.
    """
    info = snapshot.get(pid)
    if info is None:
        raise ProcessNotInSnapshot(pid)

    seen = {pid}
    while True:
        parent = snapshot.get(info.ppid)
        if parent is None:
            raise ProcessNotInSnapshot(info.ppid, f"parent of {info.pid}")
        if truncate_proc_name(parent.name) in ignored:
            return True
        if info.ppid == init_pid:
            return False
        if info.ppid in seen:
            raise ProcessNotInSnapshot(init_pid, f"ancestry of {pid} loops at {info.ppid}")
        seen.add(info.ppid)
        info = parent
