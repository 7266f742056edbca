from __future__ import annotations
from pathlib import Path
from typing import IO, Iterable, Optional, Protocol
import json
import sys

from .models import AuditResult, ProcessReport, now_iso
from .utils import C, printable


class ReportSink(Protocol):
    def process(self, report: ProcessReport) -> None: ...
    def error(self, message: str) -> None: ...
    def summary(self, result: AuditResult) -> None: ...


def pretty_row(report: ProcessReport) -> str:
    pid_str = f"{report.pid:<7}"
    name_str = f"{C.CYAN}{printable(report.name):<16}{C.RESET}"
    exe_str = f"{C.GRAY}{(report.exe or '-')[:40]:<40}{C.RESET}"
    problems_str = ", ".join(report.problems)
    return f"{C.RED}FAIL{C.RESET}  {pid_str} {name_str} {exe_str} {problems_str}"


class ConsoleSink:
    def __init__(self, out: Optional[IO[str]] = None, topk: int = 0):
        self.out = out if out is not None else sys.stdout
        self.topk = topk
        self._shown = 0
        self._header = False

    def process(self, report: ProcessReport) -> None:
        if not self._header:
            header = f"{'':<4}  {'PID':<7} {'NAME':<16} {'EXE':<40} PROBLEMS"
            print(header + "\n" + "-" * len(header), file=self.out)
            self._header = True
        self._shown += 1
        if self.topk and self._shown > self.topk:
            return
        print(pretty_row(report), file=self.out)

    def error(self, message: str) -> None:
        print(f"{C.YELLOW}ERROR{C.RESET} {message}", file=self.out)

    def summary(self, result: AuditResult) -> None:
        if self.topk and self._shown > self.topk:
            print(f"... {self._shown - self.topk} more not shown", file=self.out)
        if result.skip_seccomp:
            print("Seccomp checks were skipped", file=self.out)
        color = C.RED if result.failed else C.GREEN
        print(f"{color}Checked {result.checked} processes after exclusions: "
              f"{len(result.reports)} not properly sandboxed, {len(result.errors)} errors{C.RESET}",
              file=self.out)


class JsonlSink:
    """Appends one JSON object per line to path."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _write(self, record: dict) -> None:
        with open(self.path, "a") as f:
            f.write(json.dumps(record) + "\n")

    def process(self, report: ProcessReport) -> None:
        self._write({"type": "violation", "ts": now_iso(), **report.to_dict()})

    def error(self, message: str) -> None:
        self._write({"type": "error", "ts": now_iso(), "message": message})

    def summary(self, result: AuditResult) -> None:
        self._write({
            "type": "summary",
            "ts": result.ts,
            "checked": result.checked,
            "violations": len(result.reports),
            "errors": len(result.errors),
            "failed": result.failed,
        })


def emit(result: AuditResult, sinks: Iterable[ReportSink]) -> None:
    sinks = list(sinks)
    for report in result.reports:
        for sink in sinks:
            sink.process(report)
    for message in result.errors:
        for sink in sinks:
            sink.error(message)
    for sink in sinks:
        sink.summary(result)
