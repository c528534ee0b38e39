from fastapi import APIRouter, Depends, Response
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.core.errors import NotFoundError
from app.models.entities import Medication, MedicationLog, utcnow
from app.schemas.resources import (
    MedicationCreate,
    MedicationListResponse,
    MedicationLogCreate,
    MedicationLogListResponse,
    MedicationLogResponse,
    MedicationResponse,
)
from app.services.access import FamilyScope, family_scope, get_scoped
from app.services.policy import Action, ResourceKind

# Medications and their dose logs are both governed by the medicationLog
# capability: caregivers may read and log doses, not edit the regimen. Adding a
# medication edits the regimen, so it requires `update` rather than `create`.
router = APIRouter(prefix="/v1/families/{family_id}/medications", tags=["medications"])


def _to_medication_response(med: Medication) -> MedicationResponse:
    return MedicationResponse(
        id=med.id,
        family_id=med.family_id,
        name=med.name,
        dosage=med.dosage or "",
        instructions=med.instructions or "",
        created_by=med.created_by,
    )


def _to_log_response(log: MedicationLog) -> MedicationLogResponse:
    return MedicationLogResponse(
        id=log.id,
        family_id=log.family_id,
        medication_id=log.medication_id,
        given_at=log.given_at,
        notes=log.notes or "",
        logged_by=log.logged_by,
    )


@router.get("", response_model=MedicationListResponse)
def list_medications(
    family_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.medication_log, Action.read)),
):
    meds = db.execute(
        select(Medication).where(Medication.family_id == family_id).order_by(Medication.name.asc(), Medication.id.asc())
    ).scalars().all()
    return MedicationListResponse(items=[_to_medication_response(item) for item in meds])


@router.post("", response_model=MedicationResponse, status_code=201)
def create_medication(
    family_id: int,
    payload: MedicationCreate,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.medication_log, Action.update)),
):
    med = Medication(
        family_id=family_id,
        name=payload.name,
        dosage=payload.dosage,
        instructions=payload.instructions,
        created_by=scope.user_id,
    )
    db.add(med)
    db.commit()
    db.refresh(med)
    return _to_medication_response(med)


@router.delete("/{medication_id}", status_code=204)
def delete_medication(
    family_id: int,
    medication_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.medication_log, Action.delete)),
):
    med = get_scoped(db, Medication, medication_id, family_id, "medication")
    db.execute(delete(MedicationLog).where(MedicationLog.medication_id == med.id))
    db.delete(med)
    db.commit()
    return Response(status_code=204)


@router.get("/{medication_id}/logs", response_model=MedicationLogListResponse)
def list_medication_logs(
    family_id: int,
    medication_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.medication_log, Action.read)),
):
    med = get_scoped(db, Medication, medication_id, family_id, "medication")
    logs = db.execute(
        select(MedicationLog)
        .where(MedicationLog.medication_id == med.id)
        .order_by(MedicationLog.given_at.desc(), MedicationLog.id.desc())
    ).scalars().all()
    return MedicationLogListResponse(items=[_to_log_response(item) for item in logs])


@router.post("/{medication_id}/logs", response_model=MedicationLogResponse, status_code=201)
def log_medication_dose(
    family_id: int,
    medication_id: int,
    payload: MedicationLogCreate,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.medication_log, Action.create)),
):
    med = get_scoped(db, Medication, medication_id, family_id, "medication")
    log = MedicationLog(
        family_id=family_id,
        medication_id=med.id,
        given_at=payload.given_at or utcnow(),
        notes=payload.notes,
        logged_by=scope.user_id,
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return _to_log_response(log)


@router.delete("/{medication_id}/logs/{log_id}", status_code=204)
def delete_medication_log(
    family_id: int,
    medication_id: int,
    log_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.medication_log, Action.delete)),
):
    log = get_scoped(db, MedicationLog, log_id, family_id, "medication log")
    if log.medication_id != medication_id:
        raise NotFoundError("medication log not found")
    db.delete(log)
    db.commit()
    return Response(status_code=204)
