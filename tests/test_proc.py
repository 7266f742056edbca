from __future__ import annotations

import os
from pathlib import Path

import pytest

from sandwatch import proc
from sandwatch.audit import run_audit
from sandwatch.errors import ProcessIntrospectionError
from sandwatch.evaluator import UNEXPECTED_ROOT
from sandwatch.models import ProcessFacts
from sandwatch.proc import (
    ProcSnapshotProvider,
    analyze_process,
    format_facts,
    parse_status,
    read_mountpoints,
    read_namespace,
    sanitizer_build_enabled,
)

STATUS = """Name:\t{name}
Umask:\t0022
State:\tS (sleeping)
Tgid:\t{pid}
Pid:\t{pid}
PPid:\t{ppid}
TracerPid:\t0
Uid:\t{uid}\t{uid}\t{uid}\t{uid}
Gid:\t{gid}\t{gid}\t{gid}\t{gid}
CapEff:\t{caps}
NoNewPrivs:\t{nnp}
Seccomp:\t{seccomp}
"""

MOUNTS_INIT = """/dev/root / ext2 ro,relatime 0 0
tmpfs /run tmpfs rw,nosuid,nodev,noexec,relatime,mode=755 0 0
/dev/sda1 /usr/local ext4 rw,nosuid,nodev,relatime 0 0
"""

MOUNTS_JAILED = """/dev/root / ext2 ro,relatime 0 0
proc /proc proc ro,nosuid,nodev,noexec,relatime 0 0
"""


def write_proc(root: Path, pid: int, name: str, ppid: int = 1, uid: int = 0, gid: int = 0,
               caps: str = "000001ffffffffff", nnp: int = 0, seccomp: int = 0,
               pid_ns: int = 4026531836, mnt_ns: int = 4026531840, mounts: str = MOUNTS_INIT):
    pdir = root / str(pid)
    (pdir / "ns").mkdir(parents=True)
    (pdir / "status").write_text(STATUS.format(name=name, pid=pid, ppid=ppid, uid=uid, gid=gid,
                                               caps=caps, nnp=nnp, seccomp=seccomp))
    (pdir / "mounts").write_text(mounts)
    os.symlink(f"pid:[{pid_ns}]", pdir / "ns" / "pid")
    os.symlink(f"mnt:[{mnt_ns}]", pdir / "ns" / "mnt")
    return pdir


@pytest.fixture(autouse=True)
def no_exe_lookup(monkeypatch):
    monkeypatch.setattr(proc, "get_exe", lambda pid: f"/usr/bin/exe{pid}")


def test_parse_status_skips_blank_lines():
    assert parse_status(["Name:\tpowerd", "", "PPid:\t1"]) == {"Name": "powerd", "PPid": "1"}


def test_parse_status_rejects_garbage():
    with pytest.raises(ValueError):
        parse_status(["Name powerd"])


def test_analyze_process(tmp_path):
    write_proc(tmp_path, 42, "powerd", uid=228, gid=229, caps="0000000000003000", nnp=1, seccomp=2,
               pid_ns=4026532001, mnt_ns=4026532002, mounts=MOUNTS_JAILED)

    info = analyze_process(42, tmp_path)

    assert info == ProcessFacts(
        pid=42, ppid=1, name="powerd", exe="/usr/bin/exe42", euid=228, egid=229,
        pid_ns=4026532001, mnt_ns=4026532002, ecaps=0x3000, no_new_privs=True,
        seccomp=True, has_test_image_mounts=False,
    )


def test_strict_seccomp_mode_is_not_a_filter(tmp_path):
    write_proc(tmp_path, 43, "x", seccomp=1)
    assert analyze_process(43, tmp_path).seccomp is False


def test_test_image_mounts_detected(tmp_path):
    write_proc(tmp_path, 44, "debugd")
    assert analyze_process(44, tmp_path).has_test_image_mounts is True
    assert analyze_process(44, tmp_path, test_image_mounts=("/var/db/pkg",)).has_test_image_mounts is False


def test_bad_caps(tmp_path):
    write_proc(tmp_path, 45, "x", caps="zz")
    with pytest.raises(ValueError, match="effective caps"):
        analyze_process(45, tmp_path)


def test_missing_ppid_is_malformed(tmp_path):
    pdir = write_proc(tmp_path, 46, "x")
    status = (pdir / "status").read_text()
    (pdir / "status").write_text(status.replace("PPid:\t1\n", ""))
    with pytest.raises(ValueError, match="PPid"):
        analyze_process(46, tmp_path)


def test_undecodable_name_never_matches_ascii_names(tmp_path, make_policy, identities):
    write_proc(tmp_path, 1, "init", ppid=0)
    pdir = write_proc(tmp_path, 66, "NAME")
    status = (pdir / "status").read_bytes()
    (pdir / "status").write_bytes(status.replace(b"NAME", b"s\xffh"))

    info = analyze_process(66, tmp_path)
    assert info.name != "sh"
    assert info.name.encode("utf-8", "surrogateescape") == b"s\xffh"
    assert format_facts(info).startswith("   66 s\\xffh ")

    snapshot = {1: analyze_process(1, tmp_path), 66: info}
    result = run_audit(snapshot, make_policy(exclusions=["sh"]), identities)
    assert result.checked == 1
    assert [r.pid for r in result.reports] == [66]
    assert result.reports[0].problems == [UNEXPECTED_ROOT]


def test_read_namespace_bad_link(tmp_path):
    pdir = tmp_path / "7" / "ns"
    pdir.mkdir(parents=True)
    os.symlink("net:[1]", pdir / "pid")
    with pytest.raises(ValueError):
        read_namespace(7, "pid", tmp_path)


def test_read_mountpoints_bad_line(tmp_path):
    (tmp_path / "8").mkdir()
    (tmp_path / "8" / "mounts").write_text("only three fields\n")
    with pytest.raises(ValueError):
        read_mountpoints(8, tmp_path)


def test_collect_reports_only_live_failures(tmp_path, monkeypatch):
    write_proc(tmp_path, 1, "init", ppid=0)
    write_proc(tmp_path, 50, "shill", uid=20104, gid=20104)
    # 60 is still running but its status file is unparseable; 61 has exited.
    (tmp_path / "60").mkdir()
    (tmp_path / "60" / "status").write_text("garbage\n")
    provider = ProcSnapshotProvider(tmp_path)
    monkeypatch.setattr(provider, "get_proc_ids", lambda: [1, 50, 60, 61])
    monkeypatch.setattr(proc, "is_alive", lambda pid: pid == 60)

    snap = provider.collect()

    assert sorted(snap.facts) == [1, 50]
    assert snap.facts[50].euid == 20104
    assert len(snap.errors) == 1
    assert isinstance(snap.errors[0], ProcessIntrospectionError)
    assert snap.errors[0].pid == 60


def test_format_facts():
    line = format_facts(ProcessFacts(pid=42, ppid=1, name="powerd", euid=228, egid=229, pid_ns=1,
                                     mnt_ns=2, ecaps=0x3000, no_new_privs=True))
    assert line.startswith("   42 powerd          uid=228    gid=229")
    assert "nnp=True " in line
    assert line.endswith("ecaps=0x3000")


def test_sanitizer_build_enabled(tmp_path):
    flags = tmp_path / "use_flags.txt"
    flags.write_text("cros_debug\nasan\n")
    assert sanitizer_build_enabled(flags)
    flags.write_text("cros_debug\nasan_extra\n")
    assert not sanitizer_build_enabled(flags)
    assert not sanitizer_build_enabled(tmp_path / "missing.txt")
    assert not sanitizer_build_enabled(None)
