from __future__ import annotations

from typing import Any, Callable, Dict, List

import pytest

from sandwatch.baseline import BaselineIndex, Policy, name_set
from sandwatch.identity import IdentityResolver
from sandwatch.models import Feature, ProcessFacts, Requirement

ROOT_PID_NS = 100
ROOT_MNT_NS = 200
ROOT_CAPS = 0xFFFF

USERS = {"root": 0, "power": 1, "syslog": 202, "shill": 20104, "chronos": 1000}
GROUPS = {"root": 0, "power": 1, "syslog": 202, "shill": 20104, "chronos": 1000}


def facts(pid: int, name: str, ppid: int = 1, **kw: Any) -> ProcessFacts:
    """A process that shares everything with init unless told otherwise."""
    defaults: Dict[str, Any] = {
        "exe": f"/usr/bin/{name}",
        "euid": 0,
        "egid": 0,
        "pid_ns": ROOT_PID_NS,
        "mnt_ns": ROOT_MNT_NS,
        "ecaps": ROOT_CAPS,
    }
    defaults.update(kw)
    return ProcessFacts(pid=pid, ppid=ppid, name=name, **defaults)


def req(name: str, user: str, group: str | None = None, features: Any = Feature.NONE) -> Requirement:
    return Requirement.from_config({"name": name, "user": user, "group": group or user, "features": features})


@pytest.fixture
def init_proc() -> ProcessFacts:
    return facts(1, "init", ppid=0, exe="/sbin/init")


@pytest.fixture
def make_snapshot(init_proc) -> Callable[..., Dict[int, ProcessFacts]]:
    def _make(*procs: ProcessFacts, with_init: bool = True) -> Dict[int, ProcessFacts]:
        snap = {p.pid: p for p in procs}
        if with_init:
            snap[init_proc.pid] = init_proc
        return snap
    return _make


@pytest.fixture
def make_policy() -> Callable[..., Policy]:
    def _make(requirements: List[Requirement] = (), exclusions=(), ignored_ancestors=()) -> Policy:
        return Policy(
            baseline=BaselineIndex.build(requirements),
            exclusions=name_set(exclusions),
            ignored_ancestors=name_set(ignored_ancestors),
        )
    return _make


@pytest.fixture
def identities() -> IdentityResolver:
    return IdentityResolver(users=USERS, groups=GROUPS)
