"""
Pruebas de validación de configuración de medicamentos
"""

import pytest
from pydantic import ValidationError

from app.schemas.medication import AdministrationRequest, MedicationCreate, MedicationUpdate
from app.scheduler.records import EscalationTier, MedicationPlan


def base_payload(**overrides):
    payload = {
        "patient_id": 1,
        "name": "  Escitalopram ",
        "dose": "10mg",
        "schedule_times": ["20:00", "08:00", "08:00"],
        "critical": True,
    }
    payload.update(overrides)
    return payload


def test_schedule_times_are_normalized():
    medication = MedicationCreate(**base_payload())

    assert medication.name == "Escitalopram"
    assert medication.schedule_times == ["08:00", "20:00"]
    assert medication.alert_after_minutes is None


@pytest.mark.parametrize("bad_time", ["8:00", "25:00", "08:60", "0800", "mañana"])
def test_invalid_schedule_time_is_rejected(bad_time):
    with pytest.raises(ValidationError):
        MedicationCreate(**base_payload(schedule_times=[bad_time]))


def test_empty_schedule_is_rejected():
    with pytest.raises(ValidationError):
        MedicationCreate(**base_payload(schedule_times=[]))


@pytest.mark.parametrize("alert,escalate", [(10, 10), (20, 10)])
def test_escalation_must_exceed_alert(alert, escalate):
    with pytest.raises(ValidationError):
        MedicationCreate(**base_payload(alert_after_minutes=alert, escalate_after_minutes=escalate))


def test_negative_alert_is_rejected():
    with pytest.raises(ValidationError):
        MedicationCreate(**base_payload(alert_after_minutes=-1, escalate_after_minutes=5))


def test_update_validates_only_given_fields():
    update = MedicationUpdate(alert_after_minutes=5)
    assert update.dict(exclude_unset=True) == {"alert_after_minutes": 5}

    with pytest.raises(ValidationError):
        MedicationUpdate(schedule_times=["24:00"])


def test_administration_request_requires_valid_time():
    with pytest.raises(ValidationError):
        AdministrationRequest(scheduled_time="8am", administered_by=1, evidence_ref="foto")


def test_medication_plan_rejects_invalid_configuration():
    with pytest.raises(ValidationError):
        MedicationPlan(
            id=1, patient_id=1, name="X", dose="1", schedule_times=["08:00"],
            alert_after_minutes=30, escalate_after_minutes=15
        )

    with pytest.raises(ValidationError):
        MedicationPlan(
            id=1, patient_id=1, name="X", dose="1", schedule_times=["08:00"],
            alert_after_minutes=10, escalate_after_minutes=20, timezone="Marte/Olympus"
        )


def test_medication_plan_thresholds():
    plan = MedicationPlan(
        id=1, patient_id=1, name="Escitalopram", dose="10mg", schedule_times=["08:00"],
        critical=True, alert_after_minutes=10, escalate_after_minutes=20, reminder_before_minutes=10
    )

    assert plan.threshold(EscalationTier.ALERT) == 10
    assert plan.threshold(EscalationTier.CRITICAL) == 20
    assert plan.threshold(EscalationTier.REMINDER) == -10
