from fastapi import APIRouter, Depends, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.core.errors import NotFoundError, ValidationError
from app.models.entities import PayRate
from app.schemas.resources import PayRateListResponse, PayRateResponse, PayRateUpsert
from app.services.access import FamilyScope, family_scope
from app.services.memberships import find_membership
from app.services.policy import Action, ResourceKind

router = APIRouter(prefix="/v1/families/{family_id}/pay-rates", tags=["pay-rates"])


def _to_rate_response(rate: PayRate) -> PayRateResponse:
    return PayRateResponse(
        family_id=rate.family_id,
        user_id=rate.user_id,
        hourly_rate=rate.hourly_rate,
        currency=rate.currency,
    )


def _find_rate(db: Session, family_id: int, user_id: str) -> PayRate | None:
    return db.execute(
        select(PayRate).where(PayRate.family_id == family_id, PayRate.user_id == user_id)
    ).scalar_one_or_none()


@router.get("", response_model=PayRateListResponse)
def list_pay_rates(
    family_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.pay_rate, Action.read)),
):
    rates = db.execute(select(PayRate).where(PayRate.family_id == family_id).order_by(PayRate.user_id.asc())).scalars().all()
    return PayRateListResponse(items=[_to_rate_response(item) for item in rates])


@router.get("/{user_id}", response_model=PayRateResponse)
def get_pay_rate(
    family_id: int,
    user_id: str,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.pay_rate, Action.read)),
):
    rate = _find_rate(db, family_id, user_id)
    if rate is None:
        raise NotFoundError("pay rate not found")
    return _to_rate_response(rate)


@router.put("/{user_id}", response_model=PayRateResponse)
def upsert_pay_rate(
    family_id: int,
    user_id: str,
    payload: PayRateUpsert,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.pay_rate, Action.update)),
):
    if find_membership(db, user_id, family_id) is None:
        raise ValidationError("pay rates can only be set for family members")
    rate = _find_rate(db, family_id, user_id)
    if rate is None:
        rate = PayRate(family_id=family_id, user_id=user_id, hourly_rate=payload.hourly_rate, currency=payload.currency.upper())
        db.add(rate)
    else:
        rate.hourly_rate = payload.hourly_rate
        rate.currency = payload.currency.upper()
    db.commit()
    db.refresh(rate)
    return _to_rate_response(rate)


@router.delete("/{user_id}", status_code=204)
def delete_pay_rate(
    family_id: int,
    user_id: str,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.pay_rate, Action.delete)),
):
    rate = _find_rate(db, family_id, user_id)
    if rate is None:
        raise NotFoundError("pay rate not found")
    db.delete(rate)
    db.commit()
    return Response(status_code=204)
