"""
sandwatch — audit running processes' sandboxing against a baseline
(namespaces, capabilities, seccomp, no_new_privs, effective IDs).

CLI entry: sandwatch (see pyproject.toml)
"""

from .models import Feature, ProcessFacts, Requirement, ProcessReport, AuditResult
from .baseline import BaselineIndex, Policy
from .evaluator import ComplianceEvaluator
from .audit import Auditor, run_audit

__all__ = [
    "Feature",
    "ProcessFacts",
    "Requirement",
    "ProcessReport",
    "AuditResult",
    "BaselineIndex",
    "Policy",
    "ComplianceEvaluator",
    "Auditor",
    "run_audit",
]

__version__ = "1.0.0"
