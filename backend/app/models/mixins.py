from sqlalchemy import Column, DateTime

from app.core.time import utcnow


class TimestampMixin:
    """Naive-UTC created/updated columns.

    ``onupdate`` fires for ORM flushes and for the bulk compare-and-swap
    updates in ``app.crud.commissions``, which bypass mapper events.
    """

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
