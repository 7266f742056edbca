from __future__ import annotations
import argparse
from pathlib import Path
import sys
from typing import List

from .audit import Auditor
from .baseline import Policy
from .config import load_config
from .errors import AuditError
from .proc import format_facts
from .report import ConsoleSink, JsonlSink, ReportSink, emit

EXIT_OK = 0
EXIT_VIOLATIONS = 1
EXIT_FATAL = 2

def dump_snapshot(auditor: Auditor, dump_dir: Path) -> None:
    snap = auditor.last_snapshot
    if snap is None:
        return
    try:
        dump_dir.mkdir(parents=True, exist_ok=True)
        path = dump_dir / "processes.txt"
        path.write_text("".join(format_facts(snap.facts[pid]) + "\n" for pid in sorted(snap.facts)))
        print(f"Wrote {len(snap.facts)} processes to {path}", file=sys.stderr)
    except OSError as e:
        print(f"Could not write process list to {dump_dir}: {e}", file=sys.stderr)

def cmd_audit(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    if args.skip_seccomp:
        cfg["skip_seccomp"] = True
    if args.topk is not None:
        cfg["topk"] = args.topk

    auditor = Auditor.from_config(cfg)
    if auditor.asan_detected:
        print("ASan is enabled; will skip seccomp checks", file=sys.stderr)
    elif auditor.skip_seccomp:
        print("Skipping seccomp checks", file=sys.stderr)

    result = auditor.run()
    print(f"Compared {len(auditor.last_snapshot.facts)} processes against baseline", file=sys.stderr)

    sinks: List[ReportSink] = [ConsoleSink(topk=cfg["topk"])]
    if args.jsonl:
        sinks.append(JsonlSink(Path(args.jsonl)))
    emit(result, sinks)

    if args.dump:
        dump_snapshot(auditor, Path(args.dump))
    return EXIT_VIOLATIONS if result.failed else EXIT_OK

def cmd_snapshot(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    auditor = Auditor.from_config(cfg)
    snap = auditor.snapshot()
    for pid in sorted(snap.facts):
        print(format_facts(snap.facts[pid]))
    for err in snap.errors:
        print(f"Warning: {err}", file=sys.stderr)
    return EXIT_VIOLATIONS if snap.errors else EXIT_OK

def cmd_baseline(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    policy = Policy.from_config(cfg)
    for req in policy.baseline.requirements():
        features = ",".join(req.features.names()) or "-"
        print(f"{req.name:<16} {req.user:<14} {req.group:<14} {features}")
    print(f"{len(policy.baseline)} requirements for {len(policy.baseline.names())} names, "
          f"{len(policy.exclusions)} exclusions, {len(policy.ignored_ancestors)} ignored ancestors",
          file=sys.stderr)
    return EXIT_OK

def cmd_api(args: argparse.Namespace) -> int:
    from .api import run_api_server
    run_api_server(args.host, args.port, args.config)
    return EXIT_OK

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="sandwatch - audit process sandboxing against a baseline")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_audit = sub.add_parser("audit", help="Check running processes against the baseline")
    p_audit.add_argument("--config", type=str, help="Config YAML")
    p_audit.add_argument("--jsonl", type=str, help="Append results to this JSONL file")
    p_audit.add_argument("--dump", type=str, help="Write processes.txt to this directory")
    p_audit.add_argument("--skip-seccomp", action="store_true", help="Don't check seccomp (ASan builds)")
    p_audit.add_argument("--topk", type=int, help="Override: max violations to print (0=all)")
    p_audit.set_defaults(func=cmd_audit)

    p_snap = sub.add_parser("snapshot", help="Print sandboxing facts for every process")
    p_snap.add_argument("--config", type=str, help="Config YAML")
    p_snap.set_defaults(func=cmd_snapshot)

    p_base = sub.add_parser("baseline", help="Validate and print the baseline")
    p_base.add_argument("--config", type=str, help="Config YAML")
    p_base.set_defaults(func=cmd_baseline)

    p_api = sub.add_parser("api", help="Run REST API server")
    p_api.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")
    p_api.add_argument("--port", type=int, default=8080, help="Port to bind to")
    p_api.add_argument("--config", type=str, help="Config YAML")
    p_api.set_defaults(func=cmd_api)

    return ap

def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except AuditError as e:
        print(f"Fatal: {e}", file=sys.stderr)
        return EXIT_FATAL

if __name__ == "__main__":
    sys.exit(main())
