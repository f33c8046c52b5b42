from __future__ import annotations

import argparse
import json
import logging
import threading
from datetime import date

from sqlalchemy.orm import Session

from app.commissions.service import BatchResult, calculate_batch
from app.core.time import month_start, utcnow
from app.models.enums import PartnerTypeEnum


logger = logging.getLogger(__name__)


def previous_month(today: date | None = None) -> date:
    current = month_start(today or utcnow().date())
    if current.month == 1:
        return date(current.year - 1, 12, 1)
    return date(current.year, current.month - 1, 1)


def run_commission_batch(
    db: Session,
    *,
    month: date | str | None = None,
    partner_types: list[str] | None = None,
    cancel_event: threading.Event | None = None,
) -> BatchResult:
    """Calculate every partner's commission for ``month`` (default: last month)."""
    commission_month = month_start(month) if month else previous_month()
    types = [PartnerTypeEnum(value) for value in (partner_types or [])]
    return calculate_batch(db, commission_month, cancel_event, partner_types=types or None)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Calculate monthly partner commissions.")
    parser.add_argument("--month", type=str, default=None, help="Commission month as YYYY-MM. Defaults to last month.")
    parser.add_argument(
        "--partner-type",
        action="append",
        dest="partner_types",
        choices=[value.value for value in PartnerTypeEnum],
        default=None,
        help="Only sweep partners of this type. Repeatable.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    from app.core.db import SessionLocal

    args = _parse_args(argv)
    try:
        with SessionLocal() as db:
            result = run_commission_batch(db, month=args.month, partner_types=args.partner_types)
    except Exception:
        logger.exception("Commission batch failed")
        raise
    print(json.dumps(result.summary(), indent=2))
    return 1 if result.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
