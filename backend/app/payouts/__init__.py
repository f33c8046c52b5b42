from app.core.config import settings
from app.payouts.base import PayoutLink, PayoutProcessor
from app.payouts.http import HttpPayoutProcessor
from app.payouts.manual import ManualPayoutProcessor


_PROCESSOR_REGISTRY: dict[str, type[PayoutProcessor]] = {
    "manual": ManualPayoutProcessor,
    "http": HttpPayoutProcessor,
}


def get_payout_processor(name: str | None = None) -> PayoutProcessor:
    key = str(name or settings.PAYOUT_PROCESSOR or "manual").strip().lower()
    processor_cls = _PROCESSOR_REGISTRY.get(key)
    if processor_cls is None:
        raise ValueError(f"Unknown payout processor: {key}")
    return processor_cls()


__all__ = [
    "HttpPayoutProcessor",
    "ManualPayoutProcessor",
    "PayoutLink",
    "PayoutProcessor",
    "get_payout_processor",
]
