from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.core.time import utcnow
from app.models.enums import (
    CommissionEventEnum,
    CommissionStructureTypeEnum,
    PartnerTypeEnum,
    PaymentStatusEnum,
)
from app.models.mixins import TimestampMixin


JSON_TYPE = JSONB().with_variant(JSON, "sqlite")


class CommissionRecord(TimestampMixin, Base):
    __tablename__ = "commission_records"
    __table_args__ = (
        # One row per partner and month, ever. This is the idempotency guard.
        UniqueConstraint("partner_id", "commission_month", name="uq_commission_records_partner_month"),
        UniqueConstraint("commission_id", name="uq_commission_records_commission_id"),
        Index("ix_commission_records_month", "commission_month"),
        Index("ix_commission_records_status", "payment_status"),
        Index("ix_commission_records_processing_handle", "processing_handle"),
    )

    id = Column(Integer, primary_key=True, index=True)
    commission_id = Column(String, nullable=False)
    partner_id = Column(Integer, ForeignKey("partners.id", ondelete="RESTRICT"), nullable=False, index=True)
    commission_month = Column(Date, nullable=False)
    recipient_type = Column(
        Enum(
            PartnerTypeEnum,
            name="commission_recipient_type_enum",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )

    # Snapshot of the structure used, so old rows stay explainable.
    calculation_method = Column(
        Enum(
            CommissionStructureTypeEnum,
            name="commission_method_enum",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    calculation_params_json = Column(JSON_TYPE, nullable=True)
    revenue_basis = Column(Numeric(14, 4), nullable=True)
    conversion_count = Column(Integer, nullable=True)
    commission_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, nullable=False, default="USD")
    calculation_details = Column(Text, nullable=False)
    calculated_at = Column(DateTime, nullable=False, default=utcnow)
    calculation_count = Column(Integer, nullable=False, default=1)

    payment_status = Column(
        Enum(
            PaymentStatusEnum,
            name="commission_payment_status_enum",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default=PaymentStatusEnum.PENDING,
    )
    payment_date = Column(DateTime, nullable=True)
    processing_handle = Column(String, nullable=True)
    payment_method = Column(String, nullable=True)
    payment_reference = Column(String, nullable=True)
    failure_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    partner = relationship("Partner", lazy="selectin")
    events = relationship(
        "CommissionEvent",
        back_populates="record",
        order_by="CommissionEvent.id",
        lazy="selectin",
    )


class CommissionEvent(Base):
    __tablename__ = "commission_events"
    __table_args__ = (
        Index("ix_commission_events_record", "record_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    record_id = Column(Integer, ForeignKey("commission_records.id", ondelete="RESTRICT"), nullable=False)
    event = Column(
        Enum(
            CommissionEventEnum,
            name="commission_event_enum",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    from_status = Column(String, nullable=True)
    to_status = Column(String, nullable=True)
    amount = Column(Numeric(12, 2), nullable=True)
    detail = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    record = relationship("CommissionRecord", back_populates="events")


class PartnerMonthlyInput(TimestampMixin, Base):
    __tablename__ = "partner_monthly_inputs"
    __table_args__ = (
        UniqueConstraint("partner_id", "input_month", name="uq_partner_monthly_inputs_partner_month"),
    )

    id = Column(Integer, primary_key=True, index=True)
    partner_id = Column(Integer, ForeignKey("partners.id", ondelete="RESTRICT"), nullable=False, index=True)
    input_month = Column(Date, nullable=False)
    # NULL means "not supplied", which is not the same as zero.
    revenue_basis = Column(Numeric(14, 4), nullable=True)
    conversion_count = Column(Integer, nullable=True)
    source = Column(String, nullable=True)
