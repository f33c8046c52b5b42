from __future__ import annotations

import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any

import requests

from app.commissions.errors import PayoutSubmissionError
from app.core.config import settings
from app.models.commissions import CommissionRecord
from app.models.partners import Partner
from app.payouts.base import PayoutLink, PayoutProcessor


logger = logging.getLogger(__name__)

# Payees without a payment method on file can't receive money yet.
NO_PAYMENT_METHOD = {"", "nopm", "none"}


def _encode_payload(payload: dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True)


def sign_request(secret: str, payer_name: str, timestamp: str, body: str) -> str:
    message = f"{payer_name}{timestamp}{body}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class HttpPayoutProcessor(PayoutProcessor):
    """JSON client for a hosted payout processor (payee lookup + bill creation)."""

    name = "http"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        payer_name: str | None = None,
        timeout: int | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or settings.PAYOUT_API_BASE_URL or "").rstrip("/")
        self.api_key = api_key if api_key is not None else settings.PAYOUT_API_KEY
        self.payer_name = payer_name or settings.PAYOUT_PAYER_NAME
        self.timeout = timeout or settings.PAYOUT_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _headers(self, body: str) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "X-Payer": self.payer_name}
        if self.api_key:
            timestamp = str(int(datetime.now(timezone.utc).timestamp()))
            headers["X-Timestamp"] = timestamp
            headers["X-Signature"] = sign_request(self.api_key, self.payer_name, timestamp, body)
        return headers

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self.base_url:
            raise PayoutSubmissionError("Payout processor URL not configured")
        body = _encode_payload(payload) if payload is not None else ""
        try:
            resp = self.session.request(
                method,
                f"{self.base_url}{path}",
                data=body or None,
                headers=self._headers(body),
                timeout=self.timeout,
            )
        except requests.ConnectTimeout as exc:
            # The connection was never established, so nothing was sent.
            raise PayoutSubmissionError(f"Payout processor unreachable: {exc}") from exc
        except requests.RequestException as exc:
            raise PayoutSubmissionError(
                f"Payout processor did not confirm the request: {exc}",
                outcome_unknown=True,
            ) from exc
        if resp.status_code >= 500:
            raise PayoutSubmissionError(
                f"Payout processor returned status {resp.status_code}",
                outcome_unknown=True,
            )
        if resp.status_code >= 400:
            raise PayoutSubmissionError(f"Payout processor returned status {resp.status_code}")
        try:
            data = resp.json()
        except ValueError:
            data = {}
        return data if isinstance(data, dict) else {}

    def is_payable(self, link: PayoutLink) -> bool:
        if not link.is_active:
            return False
        data = self._request("GET", f"/payees/{link.payee_id}")
        if "is_payable" in data:
            return bool(data["is_payable"])
        method = str(data.get("payment_method") or "").strip().lower()
        return method not in NO_PAYMENT_METHOD

    def submit(self, *, record: CommissionRecord, partner: Partner) -> str:
        month = record.commission_month
        payload = {
            "payee_id": partner.payout_payee_id,
            "invoice_number": record.commission_id,
            "invoice_date": datetime.now(timezone.utc).date().isoformat(),
            "amount": f"{record.commission_amount:.2f}",
            "currency": record.currency,
            "description": f"Partner commission {month:%Y-%m}",
        }
        try:
            data = self._request("POST", "/bills", payload)
        except PayoutSubmissionError as exc:
            raise PayoutSubmissionError(
                exc.message,
                commission_id=record.commission_id,
                outcome_unknown=exc.outcome_unknown,
            ) from exc
        handle = data.get("invoice_ref") or data.get("bill_id") or record.commission_id
        logger.info(
            "payout.bill_created",
            extra={"commission_id": record.commission_id, "processing_handle": handle},
        )
        return str(handle)
