from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.commissions.errors import PartnerNotFound
from app.commissions.structures import CommissionStructure, parse_structure, validate_structure
from app.core.db import get_db
from app.crud.partners import (
    create_partner,
    get_partner,
    link_payout_payee,
    list_partners,
    update_activity,
    update_commission_structure,
)
from app.models.enums import PartnerTypeEnum, PayeeStatusEnum
from app.schemas.partners import (
    CommissionStructureIn,
    PartnerActivityUpdate,
    PartnerCommissionUpdate,
    PartnerCreate,
    PartnerRead,
    PayoutLinkUpdate,
)


router = APIRouter(prefix="/admin/partners", tags=["partners"])


def _partner_read(partner) -> PartnerRead:
    structure = parse_structure(partner.commission_structure_type, partner.commission_params_json)
    return PartnerRead(
        id=partner.id,
        partner_code=partner.partner_code,
        name=partner.name,
        company_name=partner.company_name,
        email=partner.email,
        partner_type=PartnerTypeEnum(partner.partner_type).value,
        commission_structure_type=structure.type.value,
        commission_params=structure.to_params() or None,
        commission_display=structure.describe(),
        commission_notes=partner.commission_notes,
        payout_payee_id=partner.payout_payee_id,
        payout_status=PayeeStatusEnum(partner.payout_status).value,
        payout_method=partner.payout_method,
        payout_onboarded_at=partner.payout_onboarded_at,
        active=bool(partner.active),
        active_from=partner.active_from,
        active_until=partner.active_until,
        created_at=partner.created_at,
        updated_at=partner.updated_at,
    )


def _structure_from_payload(payload: CommissionStructureIn | None) -> CommissionStructure | None:
    if payload is None:
        return None
    params = payload.dict(exclude_none=True)
    structure_type = params.pop("type")
    try:
        structure = parse_structure(structure_type, params)
        validate_structure(structure)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return structure


def _parse_partner_type(value: str) -> PartnerTypeEnum:
    try:
        return PartnerTypeEnum(value)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail="Invalid partner type") from exc


def _load_partner(db: Session, partner_id: int):
    partner = get_partner(db, partner_id=partner_id)
    if not partner:
        raise PartnerNotFound(partner_id=partner_id)
    return partner


@router.get("", response_model=list[PartnerRead])
def list_commission_partners(
    partner_type: Optional[list[str]] = Query(default=None),
    db: Session = Depends(get_db),
):
    types = [_parse_partner_type(value) for value in (partner_type or [])]
    return [_partner_read(partner) for partner in list_partners(db, partner_types=types)]


@router.post("", response_model=PartnerRead, status_code=status.HTTP_201_CREATED)
def create_commission_partner(
    payload: PartnerCreate,
    db: Session = Depends(get_db),
):
    partner_type = _parse_partner_type(payload.partner_type)
    if payload.active_from and payload.active_until and payload.active_until < payload.active_from:
        raise HTTPException(status_code=422, detail="active_until must not precede active_from")
    try:
        partner = create_partner(
            db,
            name=payload.name.strip(),
            partner_type=partner_type,
            structure=_structure_from_payload(payload.commission),
            partner_code=(payload.partner_code or "").strip() or None,
            company_name=payload.company_name,
            email=payload.email,
            commission_notes=payload.commission_notes,
            active=payload.active,
            active_from=payload.active_from,
            active_until=payload.active_until,
        )
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Partner code already exists") from exc
    return _partner_read(partner)


@router.get("/{partner_id}", response_model=PartnerRead)
def get_commission_partner(
    partner_id: int,
    db: Session = Depends(get_db),
):
    return _partner_read(_load_partner(db, partner_id))


@router.patch("/{partner_id}/commission", response_model=PartnerRead)
def update_partner_commission(
    partner_id: int,
    payload: PartnerCommissionUpdate,
    db: Session = Depends(get_db),
):
    partner = _load_partner(db, partner_id)
    partner = update_commission_structure(
        db,
        partner=partner,
        structure=_structure_from_payload(payload.commission),
        commission_notes=payload.commission_notes,
    )
    return _partner_read(partner)


@router.patch("/{partner_id}/activity", response_model=PartnerRead)
def update_partner_activity(
    partner_id: int,
    payload: PartnerActivityUpdate,
    db: Session = Depends(get_db),
):
    partner = _load_partner(db, partner_id)
    if payload.active_from and payload.active_until and payload.active_until < payload.active_from:
        raise HTTPException(status_code=422, detail="active_until must not precede active_from")
    partner = update_activity(
        db,
        partner=partner,
        active=payload.active,
        active_from=payload.active_from,
        active_until=payload.active_until,
    )
    return _partner_read(partner)


@router.put("/{partner_id}/payout-link", response_model=PartnerRead)
def update_partner_payout_link(
    partner_id: int,
    payload: PayoutLinkUpdate,
    db: Session = Depends(get_db),
):
    partner = _load_partner(db, partner_id)
    try:
        payee_status = PayeeStatusEnum(payload.status)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail="Invalid payout status") from exc
    partner = link_payout_payee(
        db,
        partner=partner,
        payee_id=(payload.payee_id or "").strip() or None,
        status=payee_status,
        payout_method=payload.payout_method,
    )
    return _partner_read(partner)
