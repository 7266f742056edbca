from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

from .ancestry import INIT_PID
from .baseline import Policy
from .config import check_settings
from .errors import RootProcessMissing
from .evaluator import ComplianceEvaluator
from .identity import IdentityResolver
from .models import AuditResult, ProcessFacts
from .proc import ProcSnapshotProvider, Snapshot, SnapshotProvider, sanitizer_build_enabled


def find_reference(snapshot: Mapping[int, ProcessFacts], init_pid: int = INIT_PID) -> ProcessFacts:
    info = snapshot.get(init_pid)
    if info is None:
        raise RootProcessMissing(init_pid)
    return info

def run_audit(snapshot: Mapping[int, ProcessFacts], policy: Policy,
              identities: Optional[IdentityResolver] = None, skip_seccomp: bool = False,
              init_pid: int = INIT_PID, snapshot_errors: Iterable[Exception] = ()) -> AuditResult:
    """Evaluate one snapshot. Raises RootProcessMissing before checking anything."""
    reference = find_reference(snapshot, init_pid)
    evaluator = ComplianceEvaluator(policy, identities, skip_seccomp=skip_seccomp, init_pid=init_pid)
    ev = evaluator.evaluate(snapshot, reference)
    return AuditResult(
        reports=ev.reports,
        checked=ev.checked,
        errors=[str(e) for e in snapshot_errors] + ev.errors,
        skip_seccomp=skip_seccomp,
    )


class Auditor:
    """Snapshot provider, policy and run settings for one or more audits."""

    def __init__(self, policy: Policy, provider: SnapshotProvider,
                 identities: Optional[IdentityResolver] = None, skip_seccomp: bool = False,
                 init_pid: int = INIT_PID):
        self.policy = policy
        self.provider = provider
        self.identities = identities
        self.skip_seccomp = skip_seccomp
        self.init_pid = init_pid
        self.last_snapshot: Optional[Snapshot] = None
        # set by from_config when seccomp is skipped because of an ASan build
        self.asan_detected = False

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], provider: Optional[SnapshotProvider] = None) -> "Auditor":
        check_settings(cfg)
        policy = Policy.from_config(cfg)
        if provider is None:
            provider = ProcSnapshotProvider(Path(cfg["proc_root"]), cfg["test_image_mounts"])
        skip = cfg.get("skip_seccomp")
        asan = False
        if skip is None:
            flags = cfg.get("sanitizer_flags_file")
            skip = asan = sanitizer_build_enabled(Path(flags) if flags else None)
        auditor = cls(policy, provider, skip_seccomp=skip, init_pid=cfg["init_pid"])
        auditor.asan_detected = asan
        return auditor

    def snapshot(self) -> Snapshot:
        self.last_snapshot = self.provider.collect()
        return self.last_snapshot

    def run(self) -> AuditResult:
        snap = self.snapshot()
        # Fresh resolver per run so user database changes are picked up.
        identities = self.identities or IdentityResolver()
        return run_audit(snap.facts, self.policy, identities, self.skip_seccomp,
                         self.init_pid, snap.errors)
