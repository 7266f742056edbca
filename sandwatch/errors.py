class AuditError(Exception):
    """Base class for everything sandwatch raises on purpose."""


class ConfigError(AuditError):
    pass


class DuplicateBaselineEntry(AuditError):
    def __init__(self, name: str, user: str):
        super().__init__(f"Duplicate {name!r} requirements for user {user!r} in baseline")
        self.name = name
        self.user = user


class RootProcessMissing(AuditError):
    def __init__(self, pid: int):
        super().__init__(f"Didn't find init process (PID {pid}) in snapshot")
        self.pid = pid


class ProcessNotInSnapshot(AuditError):
    def __init__(self, pid: int, detail: str = ""):
        msg = f"process {pid} not found"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)
        self.pid = pid


class IdentityLookupError(AuditError):
    def __init__(self, kind: str, spec: str):
        super().__init__(f"couldn't parse {kind} {spec!r} as number and lookup failed")
        self.kind = kind
        self.spec = spec


class ProcessIntrospectionError(AuditError):
    def __init__(self, pid: int, reason: str):
        super().__init__(f"Failed to get info about process {pid}: {reason}")
        self.pid = pid
        self.reason = reason
