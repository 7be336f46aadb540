"""
Endpoints de medicamentos
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import List

from app.core.dependencies import get_medication_service, get_supervisor
from app.scheduler.supervisor import MedicationSupervisor
from app.schemas.medication import (
    MedicationCreate,
    MedicationUpdate,
    MedicationResponse,
    AdministrationRequest,
    AdministrationResponse,
    PendingDoseResponse
)
from app.services.administration_service import AdministrationError
from app.services.medication_service import MedicationService
from app.utils.timezone import local_slot_to_utc, local_today

router = APIRouter()

ADMINISTRATION_STATUS = {
    AdministrationError.EVIDENCE_INVALID: status.HTTP_400_BAD_REQUEST,
    AdministrationError.DOSE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AdministrationError.MEDICATION_INACTIVE: status.HTTP_409_CONFLICT,
    AdministrationError.ALREADY_GIVEN: status.HTTP_409_CONFLICT,
    AdministrationError.STORE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@router.post("/", response_model=MedicationResponse, status_code=status.HTTP_201_CREATED)
async def create_medication(
        medication_data: MedicationCreate,
        medication_service: MedicationService = Depends(get_medication_service)
):
    """
    Configurar un medicamento y agendar sus horarios
    """
    try:
        return medication_service.create_medication(medication_data)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.get("/pending", response_model=List[PendingDoseResponse])
async def get_pending_medications(
        patient_id: int = Query(..., description="ID del paciente"),
        medication_service: MedicationService = Depends(get_medication_service)
):
    """
    Dosis del día del paciente con su estado (pending, late, critical_missed, given)
    """
    try:
        return medication_service.get_pending_doses(patient_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )


@router.get("/{medication_id}", response_model=MedicationResponse)
async def get_medication(
        medication_id: int,
        medication_service: MedicationService = Depends(get_medication_service)
):
    """
    Obtener un medicamento
    """
    medication = medication_service.get_medication_by_id(medication_id)
    if not medication:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Medicamento no encontrado"
        )

    return medication


@router.put("/{medication_id}", response_model=MedicationResponse)
async def update_medication(
        medication_id: int,
        medication_update: MedicationUpdate,
        medication_service: MedicationService = Depends(get_medication_service)
):
    """
    Actualizar medicamento y reagendar sus horarios
    """
    try:
        updated_medication = medication_service.update_medication(
            medication_id=medication_id,
            medication_update=medication_update
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    if not updated_medication:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Medicamento no encontrado"
        )

    return updated_medication


@router.delete("/{medication_id}")
async def deactivate_medication(
        medication_id: int,
        medication_service: MedicationService = Depends(get_medication_service)
):
    """
    Desactivar medicamento y cancelar sus escalamientos pendientes
    """
    if not medication_service.deactivate_medication(medication_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Medicamento no encontrado"
        )

    return {"message": "Medicamento desactivado exitosamente"}


@router.post("/{medication_id}/administer", response_model=AdministrationResponse)
async def administer_medication(
        medication_id: int,
        request: AdministrationRequest,
        supervisor: MedicationSupervisor = Depends(get_supervisor)
):
    """
    Registrar la administración de una dosis con su evidencia
    """
    medication = supervisor.store.get_medication(medication_id)
    if medication is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Medicamento no encontrado"
        )

    day = request.dose_date or local_today(medication.timezone, supervisor.clock.now())
    scheduled_time = local_slot_to_utc(day, request.scheduled_time, medication.timezone)

    result = await supervisor.administration.administer(
        medication_id=medication_id,
        scheduled_time=scheduled_time,
        administered_by=request.administered_by,
        evidence_ref=request.evidence_ref
    )

    if not result.success:
        raise HTTPException(
            status_code=ADMINISTRATION_STATUS[result.error],
            detail={"error": result.error.value, "message": result.message}
        )

    dose = result.dose
    return AdministrationResponse(
        success=True,
        message=result.message,
        dose_id=dose.id,
        medication_id=medication_id,
        scheduled_time=dose.scheduled_time,
        given_at=dose.given_at,
        minutes_late=dose.minutes_late(dose.given_at) if dose.given_at else 0,
        timers_cancelled=result.timers_cancelled
    )
