#!/usr/bin/env python3
from __future__ import annotations
import json
import sys
from typing import Any, Dict, List
from http.server import HTTPServer, BaseHTTPRequestHandler
from urllib.parse import urlparse

from .audit import Auditor
from .config import load_config
from .models import now_iso
from .proc import SnapshotProvider


class SandwatchAPI:
    def __init__(self, config_path: str | None = None, provider: SnapshotProvider | None = None):
        self.cfg = load_config(config_path)
        self.auditor = Auditor.from_config(self.cfg, provider)

    def get_audit(self) -> Dict[str, Any]:
        """Run a fresh audit"""
        return self.auditor.run().to_dict()

    def get_processes(self) -> List[Dict[str, Any]]:
        """Sandboxing facts for every process"""
        snap = self.auditor.snapshot()
        return [snap.facts[pid].to_dict() for pid in sorted(snap.facts)]

    def get_process_by_pid(self, pid: int) -> Dict[str, Any] | None:
        """Facts plus any problems for a single process"""
        result = self.auditor.run()
        snap = self.auditor.last_snapshot
        info = snap.facts.get(pid) if snap else None
        if info is None:
            return None
        out = info.to_dict()
        out["problems"] = next((r.problems for r in result.reports if r.pid == pid), [])
        return out

    def get_baseline(self) -> Dict[str, Any]:
        return self.auditor.policy.to_dict()

    def get_stats(self) -> Dict[str, Any]:
        result = self.auditor.run()
        return {
            "total_processes": len(self.auditor.last_snapshot.facts),
            "checked": result.checked,
            "violations": len(result.reports),
            "errors": len(result.errors),
            "skip_seccomp": result.skip_seccomp,
            "timestamp": now_iso(),
        }


class APIHandler(BaseHTTPRequestHandler):
    api: SandwatchAPI = None

    def do_GET(self):
        path = urlparse(self.path).path.rstrip("/") or "/"

        try:
            if path == "/api/audit":
                self.send_json(self.api.get_audit())

            elif path == "/api/processes":
                self.send_json(self.api.get_processes())

            elif path.startswith("/api/process/"):
                try:
                    pid = int(path.split("/")[-1])
                except ValueError:
                    self.send_error(400, "PID must be an integer")
                    return
                proc = self.api.get_process_by_pid(pid)
                if proc:
                    self.send_json(proc)
                else:
                    self.send_error(404, "Process not found")

            elif path == "/api/baseline":
                self.send_json(self.api.get_baseline())

            elif path == "/api/stats":
                self.send_json(self.api.get_stats())

            elif path == "/" or path == "/api":
                self.send_json({
                    "endpoints": {
                        "/api/audit": "GET - Run an audit and return violations",
                        "/api/processes": "GET - Sandboxing facts for all processes",
                        "/api/process/{pid}": "GET - Facts and problems for one process",
                        "/api/baseline": "GET - Baseline, exclusions and ignored ancestors",
                        "/api/stats": "GET - Audit summary counts",
                    }
                })

            else:
                self.send_error(404, "Endpoint not found")

        except Exception as e:
            self.send_error(500, str(e))

    def send_json(self, data: Any):
        body = json.dumps(data, indent=2).encode()
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        print(f"{self.address_string()} - [{self.log_date_time_string()}] {format % args}", file=sys.stderr)


def run_api_server(host: str = "127.0.0.1", port: int = 8080, config: str | None = None):
    """Run the API server"""
    APIHandler.api = SandwatchAPI(config)
    server = HTTPServer((host, port), APIHandler)
    print(f"sandwatch API server running on http://{host}:{port}", file=sys.stderr)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down server...", file=sys.stderr)
        server.server_close()
