"""Compliance case engine: DSR and breach-incident lifecycles.

Key components:
- models: domain dataclasses and status enums
- sla / reportability / fanout / progress: pure policy functions
- state_machine: validated transitions producing audit tuples
- CaseService: the façade every caller goes through

Usage:
    from caseflow.compliance import CaseService
"""

from __future__ import annotations

from caseflow.compliance.service import CaseService, DSRView, IncidentView, TransitionOutcome

__all__ = [
    "CaseService",
    "DSRView",
    "IncidentView",
    "TransitionOutcome",
]
