from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List

from .errors import ConfigError, DuplicateBaselineEntry
from .models import Requirement
from .utils import truncate_proc_name


def name_set(names: Iterable[str]) -> FrozenSet[str]:
    """Build an exclusion or ignored-ancestor set keyed by truncated names."""
    return frozenset(truncate_proc_name(str(n)) for n in names)


class BaselineIndex:
    """Requirements grouped by (truncated) process name.

    A single name may be listed several times for processes that fork and drop
    privileges, but never twice for the same user: with two entries for one user
    there would be no way to decide which one applies.
    """

    def __init__(self, groups: Dict[str, List[Requirement]]):
        self._groups = groups

    @classmethod
    def build(cls, requirements: Iterable[Requirement]) -> "BaselineIndex":
        groups: Dict[str, List[Requirement]] = {}
        for req in requirements:
            groups.setdefault(truncate_proc_name(req.name), []).append(req)
        for name, reqs in groups.items():
            users = set()
            for req in reqs:
                if req.user in users:
                    raise DuplicateBaselineEntry(name, req.user)
                users.add(req.user)
        return cls(groups)

    def lookup(self, name: str) -> List[Requirement]:
        return list(self._groups.get(truncate_proc_name(name), []))

    def names(self) -> List[str]:
        return sorted(self._groups)

    def requirements(self) -> List[Requirement]:
        return [req for name in self.names() for req in self._groups[name]]

    def __contains__(self, name: str) -> bool:
        return truncate_proc_name(name) in self._groups

    def __len__(self) -> int:
        return sum(len(reqs) for reqs in self._groups.values())


@dataclass
class Policy:
    baseline: BaselineIndex
    exclusions: FrozenSet[str] = field(default_factory=frozenset)
    ignored_ancestors: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "Policy":
        pol = cfg.get("policy", {})
        entries = pol.get("baseline", []) or []
        if not isinstance(entries, list):
            raise ConfigError("policy.baseline must be a list of entries")
        return cls(
            baseline=BaselineIndex.build(Requirement.from_config(e) for e in entries),
            exclusions=name_set(pol.get("exclusions", []) or []),
            ignored_ancestors=name_set(pol.get("ignored_ancestors", []) or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseline": [r.to_dict() for r in self.baseline.requirements()],
            "exclusions": sorted(self.exclusions),
            "ignored_ancestors": sorted(self.ignored_ancestors),
        }
