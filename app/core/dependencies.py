"""
Dependencias globales de la aplicación
"""
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.scheduler.supervisor import MedicationSupervisor
from app.services.medication_service import MedicationService


def get_supervisor(request: Request) -> MedicationSupervisor:
    """
    Supervisor de medicamentos creado en el lifespan de la aplicación
    """
    supervisor = getattr(request.app.state, "supervisor", None)
    if supervisor is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Programador de medicamentos no disponible"
        )
    return supervisor


def get_medication_service(
        db: Session = Depends(get_db),
        supervisor: MedicationSupervisor = Depends(get_supervisor)
) -> MedicationService:
    return MedicationService(db, supervisor)
