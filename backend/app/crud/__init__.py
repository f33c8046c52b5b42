from .partners import (
    create_partner,
    generate_partner_code,
    get_partner,
    get_partner_by_payee_id,
    link_payout_payee,
    list_partners,
    update_activity,
    update_commission_structure,
)
from .commissions import (
    add_event,
    compare_and_set,
    get_record,
    get_record_by_commission_id,
    get_record_by_handle,
    get_record_for_partner_month,
    list_events,
    list_records,
    next_commission_id,
)
from .revenue_inputs import get_monthly_input, upsert_monthly_input

__all__ = [
    "create_partner",
    "generate_partner_code",
    "get_partner",
    "get_partner_by_payee_id",
    "link_payout_payee",
    "list_partners",
    "update_activity",
    "update_commission_structure",
    "add_event",
    "compare_and_set",
    "get_record",
    "get_record_by_commission_id",
    "get_record_by_handle",
    "get_record_for_partner_month",
    "list_events",
    "list_records",
    "next_commission_id",
    "get_monthly_input",
    "upsert_monthly_input",
]
