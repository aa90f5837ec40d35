"""Tests for the breach reportability policy and regulator report payloads."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from caseflow.compliance.models import (
    BreachIncident,
    IncidentSeverity,
    IncidentStatus,
    Regulator,
)
from caseflow.compliance.reportability import (
    apply_reportability,
    cert_in_required,
    dpb_required,
    generate_cert_in_report,
    generate_dpb_report,
)
from caseflow.core.errors import NotReportable

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def make_incident(**overrides) -> BreachIncident:
    fields = {
        "id": uuid.uuid4(),
        "tenant_id": uuid.uuid4(),
        "title": "Exposed S3 bucket",
        "severity": IncidentSeverity.HIGH,
        "status": IncidentStatus.OPEN,
        "detected_at": T0,
        "created_at": T0,
        "updated_at": T0,
        "type": "misconfiguration",
        "affected_systems": ["storage"],
        "poc_name": "Asha",
        "poc_role": "DPO",
        "poc_email": "dpo@example.com",
    }
    fields.update(overrides)
    return BreachIncident(**fields)


class TestReportabilityRules:
    @pytest.mark.parametrize(
        ("severity", "expected"),
        [
            (IncidentSeverity.LOW, False),
            (IncidentSeverity.MEDIUM, False),
            (IncidentSeverity.HIGH, True),
            (IncidentSeverity.CRITICAL, True),
        ],
    )
    def test_cert_in_required_by_severity(self, severity, expected):
        assert cert_in_required(severity) is expected

    @pytest.mark.parametrize(
        ("categories", "count", "expected"),
        [
            ([], 0, False),
            ([], 10, False),
            (["EMAIL"], 0, False),
            (["EMAIL"], 1, True),
            (["EMAIL", "PHONE"], 50, True),
        ],
    )
    def test_dpb_requires_exposed_personal_data(self, categories, count, expected):
        assert dpb_required(categories, count) is expected

    def test_apply_reportability_recomputes_cached_flags(self):
        incident = make_incident(severity=IncidentSeverity.LOW)
        incident.is_reportable_cert_in = True  # stale value
        apply_reportability(incident)
        assert incident.is_reportable_cert_in is False
        assert incident.is_reportable_dpb is False

        incident.severity = IncidentSeverity.CRITICAL
        incident.pii_categories = ["EMAIL"]
        incident.affected_data_subject_count = 50
        apply_reportability(incident)
        assert incident.is_reportable_cert_in is True
        assert incident.is_reportable_dpb is True


class TestCertInReport:
    @pytest.mark.parametrize("severity", [IncidentSeverity.LOW, IncidentSeverity.MEDIUM])
    def test_not_reportable_below_high(self, severity):
        with pytest.raises(NotReportable):
            generate_cert_in_report(make_incident(severity=severity), T0)

    @pytest.mark.parametrize("severity", [IncidentSeverity.HIGH, IncidentSeverity.CRITICAL])
    def test_generated_for_high_and_critical(self, severity):
        incident = make_incident(severity=severity, occurred_at=T0 - timedelta(hours=2))
        report = generate_cert_in_report(incident, T0 + timedelta(hours=1))

        assert report.regulator == Regulator.CERT_IN
        assert report.incident_id == incident.id
        assert report.generated_at == T0 + timedelta(hours=1)
        payload = report.payload
        assert payload["severity"] == severity.value
        assert payload["date_detected"] == T0.isoformat()
        assert payload["date_occurred"] == (T0 - timedelta(hours=2)).isoformat()
        assert payload["affected_systems"] == ["storage"]
        assert payload["nature_of_breach"] == "misconfiguration"
        assert payload["poc_details"] == {"name": "Asha", "role": "DPO", "email": "dpo@example.com"}

    def test_report_is_not_changed_by_later_edits(self):
        """The payload is bound to the incident as it was at generation time."""
        incident = make_incident()
        report = generate_cert_in_report(incident, T0)

        incident.title = "Renamed"
        incident.affected_systems.append("billing")
        report.payload["title"] = "mutated copy"

        assert report.payload["title"] == "Exposed S3 bucket"
        assert report.payload["affected_systems"] == ["storage"]


class TestDpbReport:
    def test_not_reportable_without_exposed_subjects(self):
        with pytest.raises(NotReportable):
            generate_dpb_report(make_incident(pii_categories=["EMAIL"]), T0)

    def test_payload_carries_pii_details(self):
        incident = make_incident(
            severity=IncidentSeverity.LOW,
            description="Export shared publicly",
            pii_categories=["EMAIL"],
            affected_data_subject_count=50,
        )
        report = generate_dpb_report(incident, T0)

        assert report.regulator == Regulator.DPB
        assert report.payload["pii_categories"] == ["EMAIL"]
        assert report.payload["affected_data_subject_count"] == 50
        assert report.payload["description"] == "Export shared publicly"
