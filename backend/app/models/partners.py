from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB

from app.core.db import Base
from app.models.enums import CommissionStructureTypeEnum, PartnerTypeEnum, PayeeStatusEnum
from app.models.mixins import TimestampMixin


JSON_TYPE = JSONB().with_variant(JSON, "sqlite")


class Partner(TimestampMixin, Base):
    __tablename__ = "partners"
    __table_args__ = (
        UniqueConstraint("partner_code", name="uq_partners_partner_code"),
        Index("ix_partners_partner_type", "partner_type"),
        Index("ix_partners_payout_payee_id", "payout_payee_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    partner_code = Column(String, nullable=False)
    name = Column(String, nullable=False)
    company_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    partner_type = Column(
        Enum(
            PartnerTypeEnum,
            name="partner_type_enum",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )

    # Tagged variant: the type column picks the variant, the JSON holds
    # only that variant's parameters. See app.commissions.structures.
    commission_structure_type = Column(
        Enum(
            CommissionStructureTypeEnum,
            name="commission_structure_type_enum",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default=CommissionStructureTypeEnum.NONE,
    )
    commission_params_json = Column(JSON_TYPE, nullable=True)
    commission_notes = Column(Text, nullable=True)

    payout_payee_id = Column(String, nullable=True)
    payout_status = Column(
        Enum(
            PayeeStatusEnum,
            name="payee_status_enum",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default=PayeeStatusEnum.NOT_LINKED,
    )
    payout_method = Column(String, nullable=True)
    payout_onboarded_at = Column(DateTime, nullable=True)

    active = Column(Boolean, nullable=False, default=True)
    active_from = Column(Date, nullable=True)
    active_until = Column(Date, nullable=True)
