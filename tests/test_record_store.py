"""
Pruebas del RecordStore SQLAlchemy
"""

from datetime import timedelta

import pytest

from app.models.dose_record import DoseStatus
from app.scheduler.records import EscalationTier
from app.services.record_store import MarkGivenResult, SqlRecordStore

from tests.conftest import slot


@pytest.fixture
def store(session_factory):
    return SqlRecordStore(session_factory)


def test_create_dose_twice_returns_existing_record(store, family, add_medication):
    med_id = add_medication(family.patient_id)

    first, created_first = store.create_dose_if_absent(med_id, slot())
    second, created_second = store.create_dose_if_absent(med_id, slot())

    assert created_first is True
    assert created_second is False
    assert second.id == first.id
    assert second == first
    assert first.status == DoseStatus.PENDING
    assert first.patient_id == family.patient_id


def test_create_dose_for_unknown_medication_raises(store):
    with pytest.raises(ValueError):
        store.create_dose_if_absent(999, slot())


def test_mark_given_is_compare_and_set(store, family, add_medication):
    med_id = add_medication(family.patient_id)
    dose, _ = store.create_dose_if_absent(med_id, slot())
    given_at = slot() + timedelta(minutes=3)

    assert store.mark_given(dose.id, family.caregiver_id, "abc123", given_at) == MarkGivenResult.SUCCESS
    assert store.mark_given(dose.id, family.owner_id, "zzz", given_at) == MarkGivenResult.ALREADY_GIVEN
    assert store.mark_given(12345, family.caregiver_id, "abc123", given_at) == MarkGivenResult.NOT_FOUND

    stored = store.get_dose_by_id(dose.id)
    assert stored.status == DoseStatus.GIVEN
    assert stored.given_by_id == family.caregiver_id
    assert stored.evidence_ref == "abc123"
    assert stored.given_at == given_at


def test_claim_tier_only_once(store, family, add_medication):
    med_id = add_medication(family.patient_id)
    dose, _ = store.create_dose_if_absent(med_id, slot())
    now = slot() + timedelta(minutes=10)

    assert store.claim_tier(dose.id, EscalationTier.ALERT, now) is True
    assert store.claim_tier(dose.id, EscalationTier.ALERT, now) is False

    stored = store.get_dose(med_id, slot())
    assert stored.status == DoseStatus.LATE
    assert stored.alert_notified_at == now
    assert stored.tier_notified(EscalationTier.ALERT)
    assert not stored.tier_notified(EscalationTier.CRITICAL)


def test_claim_tier_fails_after_administration(store, family, add_medication):
    med_id = add_medication(family.patient_id)
    dose, _ = store.create_dose_if_absent(med_id, slot())
    store.mark_given(dose.id, family.caregiver_id, "abc123", slot())

    assert store.claim_tier(dose.id, EscalationTier.CRITICAL, slot() + timedelta(minutes=20)) is False
    assert store.get_dose_by_id(dose.id).status == DoseStatus.GIVEN


def test_release_tier_allows_reclaim(store, family, add_medication):
    med_id = add_medication(family.patient_id)
    dose, _ = store.create_dose_if_absent(med_id, slot())
    now = slot() + timedelta(minutes=20)

    assert store.claim_tier(dose.id, EscalationTier.CRITICAL, now)
    store.release_tier(dose.id, EscalationTier.CRITICAL)
    assert store.claim_tier(dose.id, EscalationTier.CRITICAL, now)


def test_release_tier_restores_previous_status(store, family, add_medication):
    med_id = add_medication(family.patient_id)
    dose, _ = store.create_dose_if_absent(med_id, slot())

    store.claim_tier(dose.id, EscalationTier.ALERT, slot() + timedelta(minutes=10))
    store.claim_tier(dose.id, EscalationTier.CRITICAL, slot() + timedelta(minutes=20))
    store.release_tier(dose.id, EscalationTier.CRITICAL)

    stored = store.get_dose_by_id(dose.id)
    assert stored.status == DoseStatus.LATE
    assert stored.critical_notified_at is None

    store.release_tier(dose.id, EscalationTier.ALERT)
    stored = store.get_dose_by_id(dose.id)
    assert stored.status == DoseStatus.PENDING
    assert stored.alert_notified_at is None


def test_list_pending_doses_in_window(store, family, add_medication):
    med_id = add_medication(family.patient_id, schedule_times=["08:00", "20:00"])
    old, _ = store.create_dose_if_absent(med_id, slot() - timedelta(days=2))
    pending, _ = store.create_dose_if_absent(med_id, slot())
    given, _ = store.create_dose_if_absent(med_id, slot("20:00"))
    store.mark_given(given.id, family.caregiver_id, "abc", slot("20:00"))

    doses = store.list_pending_doses_in_window(slot() - timedelta(hours=24))

    assert [d.id for d in doses] == [pending.id]


def test_list_active_medications_skips_inactive(store, family, add_medication):
    active_id = add_medication(family.patient_id, name="Escitalopram")
    add_medication(family.patient_id, name="Omeprazol", critical=False, alert=15, escalate=30, active=False)

    plans = store.list_active_medications()

    assert [p.id for p in plans] == [active_id]
    assert plans[0].timezone == "America/Santiago"
    assert plans[0].patient_name == "Rosa Pérez"


def test_on_duty_caregiver_is_latest_open_attendance(store, family, check_in, db):
    from app.models.user import User, UserRole

    relief = User(email="paula@example.com", name="Paula Rojas", role=UserRole.CAREGIVER)
    db.add(relief)
    db.commit()

    check_in(family.caregiver_id, family.patient_id, slot("06:00"), check_out=slot("07:00"))
    assert store.get_on_duty_caregiver(family.patient_id) is None

    check_in(family.caregiver_id, family.patient_id, slot("07:00"))
    check_in(relief.id, family.patient_id, slot("07:30"))

    caregiver = store.get_on_duty_caregiver(family.patient_id)
    assert caregiver.id == relief.id


def test_list_family_returns_owner_and_observers(store, family):
    members = store.list_family(family.patient_id)

    assert [m.id for m in members] == [family.owner_id, family.observer_id]
    assert members[0].enabled_channels() == {"push", "email", "sms"}
    assert members[1].enabled_channels() == {"push", "email"}


def test_list_doses_for_patient_includes_given(store, family, add_medication):
    med_id = add_medication(family.patient_id, schedule_times=["08:00", "20:00"])
    morning, _ = store.create_dose_if_absent(med_id, slot())
    evening, _ = store.create_dose_if_absent(med_id, slot("20:00"))
    store.mark_given(morning.id, family.caregiver_id, "foto", slot())

    doses = store.list_doses_for_patient(family.patient_id, slot("00:00"), slot("23:59"))

    assert [d.id for d in doses] == [morning.id, evening.id]
    assert doses[0].is_given
    assert not doses[1].is_given
