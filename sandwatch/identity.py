from __future__ import annotations
from typing import Callable, Dict, Mapping, Optional, Tuple
import grp
import pwd

from .errors import IdentityLookupError


def _system_uid(name: str) -> int:
    return pwd.getpwnam(name).pw_uid

def _system_gid(name: str) -> int:
    return grp.getgrnam(name).gr_gid


class IdentityResolver:
    """Turns baseline user/group strings into numeric IDs.

    A string that parses as an integer is used as-is. Anything else goes through
    the supplied mapping, or the system user/group database when no mapping is
    given. Results and failures are cached for the lifetime of the resolver,
    which is one audit run.
    """

    def __init__(self, users: Optional[Mapping[str, int]] = None, groups: Optional[Mapping[str, int]] = None):
        self.users = users
        self.groups = groups
        self._cache: Dict[Tuple[str, str], Optional[int]] = {}

    def uid(self, spec: str) -> int:
        return self._resolve("user", spec, self.users, _system_uid)

    def gid(self, spec: str) -> int:
        return self._resolve("group", spec, self.groups, _system_gid)

    def _resolve(self, kind: str, spec: str, table: Optional[Mapping[str, int]],
                 lookup: Callable[[str], int]) -> int:
        key = (kind, spec)
        if key not in self._cache:
            self._cache[key] = self._lookup(spec, table, lookup)
        value = self._cache[key]
        if value is None:
            raise IdentityLookupError(kind, spec)
        return value

    @staticmethod
    def _lookup(spec: str, table: Optional[Mapping[str, int]], lookup: Callable[[str], int]) -> Optional[int]:
        try:
            return int(spec)
        except ValueError:
            pass
        try:
            if table is not None:
                return int(table[spec])
            return lookup(spec)
        except KeyError:
            return None
