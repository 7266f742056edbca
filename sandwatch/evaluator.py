from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Tuple

from .ancestry import INIT_PID, has_ignored_ancestor
from .baseline import Policy
from .errors import IdentityLookupError, ProcessNotInSnapshot
from .identity import IdentityResolver
from .models import Feature, ProcessFacts, ProcessReport, Requirement
from .utils import truncate_proc_name

UNEXPECTED_ROOT = "unexpected root process outside baseline"

# (feature bits, message when none of the bits is satisfied)
FEATURE_CHECKS = (
    (Feature.PID_NS, "missing PID namespace"),
    (Feature.MNT_NS | Feature.MNT_NS_NO_PIVOT_ROOT, "missing mount namespace"),
    (Feature.RESTRICT_CAPS, "no restricted capabilities"),
    (Feature.NO_NEW_PRIVS, "missing no_new_privs"),
    (Feature.SECCOMP, "seccomp filter disabled"),
)

NO_PIVOT_ROOT = "did not call pivot_root(2)"


@dataclass
class Evaluation:
    reports: List[ProcessReport] = field(default_factory=list)
    checked: int = 0
    errors: List[str] = field(default_factory=list)


class ComplianceEvaluator:
    """Checks a process snapshot against the sandboxing baseline.

    Whether a process "has its own" PID namespace, mount namespace or
    capability set is decided by comparing it with the reference (init)
    process, since the kernel's identifiers carry no meaning on their own.
    """

    def __init__(self, policy: Policy, identities: Optional[IdentityResolver] = None,
                 skip_seccomp: bool = False, init_pid: int = INIT_PID):
        self.policy = policy
        self.identities = identities or IdentityResolver()
        self.skip_seccomp = skip_seccomp
        self.init_pid = init_pid

    def evaluate(self, snapshot: Mapping[int, ProcessFacts], reference: ProcessFacts) -> Evaluation:
        result = Evaluation()
        for pid in sorted(snapshot):
            if pid == self.init_pid:
                continue
            info = snapshot[pid]
            if self._skipped(info, snapshot):
                continue
            result.checked += 1
            problems = self.check_process(info, reference, result.errors)
            if problems:
                result.reports.append(ProcessReport(pid=info.pid, name=info.name, exe=info.exe, problems=problems))
        return result

    def _skipped(self, info: ProcessFacts, snapshot: Mapping[int, ProcessFacts]) -> bool:
        name = truncate_proc_name(info.name)
        if name in self.policy.exclusions:
            return True
        if name in self.policy.ignored_ancestors:
            return True
        try:
            return has_ignored_ancestor(info.pid, self.policy.ignored_ancestors, snapshot, self.init_pid)
        except ProcessNotInSnapshot:
            # Parent exited between enumeration and capture; check the process anyway.
            return False

    def check_process(self, info: ProcessFacts, reference: ProcessFacts, errors: List[str]) -> List[str]:
        """Return the problems found for one process; lookup failures go to errors."""
        selected = self._select_requirement(info, errors)
        if selected is None:
            # Every root process has to be listed. Unlisted non-root processes are
            # assumed to have already dropped privileges.
            if info.euid == 0:
                return [UNEXPECTED_ROOT]
            return []

        req, req_uid = selected
        problems: List[str] = []
        self._check_identity(info, req, req_uid, problems, errors)
        self._check_features(info, reference, req, problems)
        return problems

    def _select_requirement(self, info: ProcessFacts, errors: List[str]) -> Optional[Tuple[Requirement, int]]:
        # Favor an entry matching the process's EUID, fall back to the first one.
        chosen: Optional[Tuple[Requirement, int]] = None
        for req in self.policy.baseline.lookup(info.name):
            try:
                uid = self.identities.uid(req.user)
            except IdentityLookupError:
                errors.append(f"Failed to look up user {req.user!r} for PID {info.pid}")
                continue
            if uid == info.euid:
                return req, uid
            if chosen is None:
                chosen = (req, uid)
        return chosen

    def _check_identity(self, info: ProcessFacts, req: Requirement, req_uid: int,
                        problems: List[str], errors: List[str]):
        if info.euid != req_uid:
            problems.append(f"effective UID {info.euid}; want {req_uid}")
        try:
            gid = self.identities.gid(req.group)
        except IdentityLookupError:
            errors.append(f"Failed to look up group {req.group!r} for PID {info.pid}")
            return
        if info.egid != gid:
            problems.append(f"effective GID {info.egid}; want {gid}")

    def _check_features(self, info: ProcessFacts, reference: ProcessFacts, req: Requirement,
                        problems: List[str]):
        has = {
            Feature.PID_NS: info.pid_ns != reference.pid_ns,
            Feature.MNT_NS | Feature.MNT_NS_NO_PIVOT_ROOT: info.mnt_ns != reference.mnt_ns,
            Feature.RESTRICT_CAPS: info.ecaps != reference.ecaps,
            Feature.NO_NEW_PRIVS: info.no_new_privs,
            Feature.SECCOMP: info.seccomp,
        }
        for bits, msg in FEATURE_CHECKS:
            # Minijail turns seccomp off when the image is built with ASan.
            if bits == Feature.SECCOMP and self.skip_seccomp:
                continue
            if req.features & bits and not has[bits]:
                problems.append(msg)

        # Test-image mounts only exist in init's mount namespace, so seeing them
        # from a private namespace means pivot_root() was skipped.
        if req.features & Feature.MNT_NS and info.mnt_ns != reference.mnt_ns and info.has_test_image_mounts:
            problems.append(NO_PIVOT_ROOT)
