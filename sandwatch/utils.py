from pathlib import Path
from typing import List

# TASK_COMM_LEN is 16 bytes including the trailing NUL.
MAX_PROC_NAME_LEN = 15

class C:
    RESET = '\033[0m'
    RED = '\033[31m'
    YELLOW = '\033[33m'
    GREEN = '\033[32m'
    CYAN = '\033[36m'
    GRAY = '\033[90m'

def truncate_proc_name(name: str, max_len: int = MAX_PROC_NAME_LEN) -> str:
    """Shorten name the way the kernel does for /proc/<pid>/status "Name:".

    The limit is in bytes. A multibyte character cut in half decodes to the
    same surrogates read_lines produces for the kernel's truncated name.
    """
    raw = name.encode("utf-8", "surrogateescape")
    if len(raw) <= max_len:
        return name
    return raw[:max_len].decode("utf-8", "surrogateescape")

def printable(name: str) -> str:
    """Render a name that may carry undecodable bytes as \\xNN escapes."""
    return name.encode("utf-8", "surrogateescape").decode("utf-8", "backslashreplace")

def read_lines(path: Path, limit_lines: int = 10000) -> List[str]:
    """Read up to limit_lines lines; OSError propagates to the caller.

    Bytes that are not UTF-8 are kept as surrogates so they never compare
    equal to a plain ASCII name.
    """
    out = []
    with open(path, "r", encoding="utf-8", errors="surrogateescape") as f:
        for i, line in enumerate(f):
            if i >= limit_lines:
                break
            out.append(line.rstrip("\n"))
    return out

def read_text(path: Path, limit: int = 1_000_000) -> str:
    try:
        with open(path, "r", errors="ignore") as f:
            return f.read(limit)
    except (IOError, OSError):
        return ""
