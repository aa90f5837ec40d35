"""Breach reportability policy.

Decides whether an incident must be reported to CERT-In and/or the Data
Protection Board, and builds the immutable regulator report payloads.

The two ``is_reportable_*`` flags on an incident are cached outputs of this
module. ``apply_reportability`` is called after every field write; nothing
else may set them.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime
from typing import Any

import structlog

from caseflow.compliance.models import (
    BreachIncident,
    IncidentSeverity,
    Regulator,
    RegulatorReport,
)
from caseflow.core.errors import NotReportable

log = structlog.get_logger(__name__)

CERT_IN_SEVERITIES = frozenset({IncidentSeverity.HIGH, IncidentSeverity.CRITICAL})


def cert_in_required(severity: IncidentSeverity) -> bool:
    return severity in CERT_IN_SEVERITIES


def dpb_required(pii_categories: Iterable[str], affected_data_subject_count: int) -> bool:
    """True when personal data of at least one subject was actually exposed."""
    return any(pii_categories) and affected_data_subject_count > 0


def apply_reportability(incident: BreachIncident) -> BreachIncident:
    """Recompute the cached reportability flags in place and return the incident."""
    incident.is_reportable_cert_in = cert_in_required(incident.severity)
    incident.is_reportable_dpb = dpb_required(
        incident.pii_categories, incident.affected_data_subject_count
    )
    return incident


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _cert_in_payload(incident: BreachIncident) -> dict[str, Any]:
    return {
        "incident_id": str(incident.id),
        "title": incident.title,
        "severity": incident.severity.value,
        "date_occurred": _iso(incident.occurred_at),
        "date_detected": incident.detected_at.isoformat(),
        "affected_systems": list(incident.affected_systems),
        "nature_of_breach": incident.type,
        "poc_details": {
            "name": incident.poc_name,
            "role": incident.poc_role,
            "email": incident.poc_email,
        },
    }


def _build_report(
    regulator: Regulator, incident: BreachIncident, payload: dict[str, Any], now: datetime
) -> RegulatorReport:
    report = RegulatorReport(
        regulator=regulator,
        incident_id=incident.id,
        generated_at=now,
        payload_json=json.dumps(payload, sort_keys=True),
    )
    log.info(
        "incident.report_built",
        regulator=regulator,
        incident_id=str(incident.id),
        severity=incident.severity,
    )
    return report


def generate_cert_in_report(incident: BreachIncident, now: datetime) -> RegulatorReport:
    """Build the CERT-In notification for *incident*.

    Raises:
        NotReportable: If the incident's severity does not require CERT-In reporting.
    """
    if not cert_in_required(incident.severity):
        raise NotReportable(
            f"incident {incident.id} with severity {incident.severity} is not reportable to CERT-In",
            incident_id=str(incident.id),
            severity=incident.severity.value,
        )
    return _build_report(Regulator.CERT_IN, incident, _cert_in_payload(incident), now)


def generate_dpb_report(incident: BreachIncident, now: datetime) -> RegulatorReport:
    """Build the Data Protection Board notification for *incident*.

    Raises:
        NotReportable: If no personal data of any subject was exposed.
    """
    if not dpb_required(incident.pii_categories, incident.affected_data_subject_count):
        raise NotReportable(
            f"incident {incident.id} exposed no personal data and is not reportable to the DPB",
            incident_id=str(incident.id),
        )
    payload = _cert_in_payload(incident)
    payload.update(
        {
            "description": incident.description,
            "pii_categories": list(incident.pii_categories),
            "affected_data_subject_count": incident.affected_data_subject_count,
        }
    )
    return _build_report(Regulator.DPB, incident, payload, now)
