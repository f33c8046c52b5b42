from __future__ import annotations

import re
from datetime import date, datetime
from typing import Iterable

from sqlalchemy.orm import Session

from app.commissions.structures import CommissionStructure, NoStructure
from app.core.time import utcnow
from app.models.enums import PartnerTypeEnum, PayeeStatusEnum
from app.models.partners import Partner


PARTNER_CODE_PREFIXES = {
    PartnerTypeEnum.LOCATION: "LP",
    PartnerTypeEnum.REFERRAL: "RP",
    PartnerTypeEnum.CHANNEL: "CP",
    PartnerTypeEnum.RELATIONSHIP: "RL",
    PartnerTypeEnum.CONTRACTOR: "CT",
}


def generate_partner_code(db: Session, *, partner_type: PartnerTypeEnum, year: int | None = None) -> str:
    prefix = PARTNER_CODE_PREFIXES[PartnerTypeEnum(partner_type)]
    year = year or utcnow().year
    stem = f"{prefix}-{year}-"
    pattern = re.compile(rf"^{re.escape(stem)}(\d+)$")
    codes = db.query(Partner.partner_code).filter(Partner.partner_code.like(f"{stem}%")).all()
    highest = 0
    for (code,) in codes:
        match = pattern.match(code or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{stem}{highest + 1:03d}"


def create_partner(
    db: Session,
    *,
    name: str,
    partner_type: PartnerTypeEnum,
    structure: CommissionStructure | None = None,
    partner_code: str | None = None,
    company_name: str | None = None,
    email: str | None = None,
    commission_notes: str | None = None,
    payout_payee_id: str | None = None,
    payout_status: PayeeStatusEnum = PayeeStatusEnum.NOT_LINKED,
    active: bool = True,
    active_from: date | None = None,
    active_until: date | None = None,
) -> Partner:
    partner_type = PartnerTypeEnum(partner_type)
    structure = structure or NoStructure()
    partner = Partner(
        partner_code=partner_code or generate_partner_code(db, partner_type=partner_type),
        name=name,
        company_name=company_name,
        email=email,
        partner_type=partner_type,
        commission_structure_type=structure.type,
        commission_params_json=structure.to_params(),
        commission_notes=commission_notes,
        payout_payee_id=payout_payee_id,
        payout_status=PayeeStatusEnum(payout_status),
        active=active,
        active_from=active_from,
        active_until=active_until,
    )
    db.add(partner)
    db.commit()
    db.refresh(partner)
    return partner


def get_partner(db: Session, *, partner_id: int) -> Partner | None:
    return db.query(Partner).filter(Partner.id == partner_id).first()


def get_partner_by_payee_id(db: Session, *, payee_id: str) -> Partner | None:
    return db.query(Partner).filter(Partner.payout_payee_id == payee_id).first()


def list_partners(db: Session, *, partner_types: Iterable[PartnerTypeEnum] | None = None) -> list[Partner]:
    query = db.query(Partner)
    types = [PartnerTypeEnum(value) for value in (partner_types or [])]
    if types:
        query = query.filter(Partner.partner_type.in_(types))
    return query.order_by(Partner.id.asc()).all()


def update_commission_structure(
    db: Session,
    *,
    partner: Partner,
    structure: CommissionStructure,
    commission_notes: str | None = None,
) -> Partner:
    partner.commission_structure_type = structure.type
    partner.commission_params_json = structure.to_params()
    if commission_notes is not None:
        partner.commission_notes = commission_notes
    db.commit()
    db.refresh(partner)
    return partner


def update_activity(
    db: Session,
    *,
    partner: Partner,
    active: bool,
    active_from: date | None = None,
    active_until: date | None = None,
) -> Partner:
    partner.active = active
    partner.active_from = active_from
    partner.active_until = active_until
    db.commit()
    db.refresh(partner)
    return partner


def link_payout_payee(
    db: Session,
    *,
    partner: Partner,
    payee_id: str | None,
    status: PayeeStatusEnum,
    payout_method: str | None = None,
    onboarded_at: datetime | None = None,
) -> Partner:
    status = PayeeStatusEnum(status)
    if not payee_id:
        status = PayeeStatusEnum.NOT_LINKED
    partner.payout_payee_id = payee_id
    partner.payout_status = status
    if payout_method is not None:
        partner.payout_method = payout_method
    if status == PayeeStatusEnum.ACTIVE and partner.payout_onboarded_at is None:
        partner.payout_onboarded_at = onboarded_at or utcnow()
    db.commit()
    db.refresh(partner)
    return partner
