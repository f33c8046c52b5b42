import json
import os
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
import requests

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("SKIP_MIGRATIONS", "1")

from app.commissions.errors import PayoutSubmissionError  # noqa: E402
from app.models.enums import PayeeStatusEnum  # noqa: E402
from app.payouts import (  # noqa: E402
    HttpPayoutProcessor,
    ManualPayoutProcessor,
    PayoutLink,
    get_payout_processor,
)
from app.payouts.http import sign_request  # noqa: E402


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class FakeSession:
    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.calls = []

    def request(self, method, url, data=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "data": data, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.responses.pop(0)


def _record():
    return SimpleNamespace(
        commission_id="COMM-2025-007",
        commission_month=date(2025, 3, 1),
        commission_amount=Decimal("383.33"),
        currency="USD",
    )


def _partner(payee_id="payee-1"):
    return SimpleNamespace(payout_payee_id=payee_id)


ACTIVE = PayoutLink(payee_id="payee-1", status=PayeeStatusEnum.ACTIVE)


def test_payout_link_activity():
    assert ACTIVE.is_active
    assert not PayoutLink(payee_id=None, status=PayeeStatusEnum.ACTIVE).is_active
    assert not PayoutLink(payee_id="payee-1", status=PayeeStatusEnum.PENDING).is_active


def test_manual_processor():
    processor = ManualPayoutProcessor()
    assert processor.is_payable(ACTIVE)
    assert not processor.is_payable(PayoutLink(payee_id="payee-1", status=PayeeStatusEnum.SUSPENDED))
    assert processor.submit(record=_record(), partner=_partner()) == "manual-COMM-2025-007"


def test_registry():
    assert isinstance(get_payout_processor("manual"), ManualPayoutProcessor)
    assert isinstance(get_payout_processor(" HTTP "), HttpPayoutProcessor)
    with pytest.raises(ValueError):
        get_payout_processor("carrier-pigeon")


def test_http_payability_uses_processor_answer():
    session = FakeSession([FakeResponse(payload={"payment_method": "ACH"})])
    processor = HttpPayoutProcessor(base_url="https://payouts.test/api/", api_key="k", session=session)
    assert processor.is_payable(ACTIVE)
    assert session.calls[0]["method"] == "GET"
    assert session.calls[0]["url"] == "https://payouts.test/api/payees/payee-1"


def test_http_payee_without_payment_method_is_not_payable():
    session = FakeSession([FakeResponse(payload={"payment_method": "NoPM"})])
    processor = HttpPayoutProcessor(base_url="https://payouts.test", session=session)
    assert not processor.is_payable(ACTIVE)

    session = FakeSession([FakeResponse(payload={"is_payable": False, "payment_method": "ACH"})])
    processor = HttpPayoutProcessor(base_url="https://payouts.test", session=session)
    assert not processor.is_payable(ACTIVE)


def test_http_local_gate_short_circuits():
    session = FakeSession()
    processor = HttpPayoutProcessor(base_url="https://payouts.test", session=session)
    assert not processor.is_payable(PayoutLink(payee_id="payee-1", status=PayeeStatusEnum.PENDING))
    assert session.calls == []


def test_http_submit_creates_signed_bill():
    session = FakeSession([FakeResponse(payload={"invoice_ref": "INV-9"})])
    processor = HttpPayoutProcessor(
        base_url="https://payouts.test",
        api_key="secret-key",
        payer_name="Partners",
        timeout=5,
        session=session,
    )
    handle = processor.submit(record=_record(), partner=_partner())
    assert handle == "INV-9"

    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "https://payouts.test/bills"
    assert call["timeout"] == 5
    body = json.loads(call["data"])
    assert body["payee_id"] == "payee-1"
    assert body["invoice_number"] == "COMM-2025-007"
    assert body["amount"] == "383.33"
    assert body["currency"] == "USD"
    assert body["description"] == "Partner commission 2025-03"

    headers = call["headers"]
    assert headers["X-Payer"] == "Partners"
    expected = sign_request("secret-key", "Partners", headers["X-Timestamp"], call["data"])
    assert headers["X-Signature"] == expected


def test_http_submit_falls_back_to_commission_id():
    session = FakeSession([FakeResponse(payload=None)])
    processor = HttpPayoutProcessor(base_url="https://payouts.test", session=session)
    assert processor.submit(record=_record(), partner=_partner()) == "COMM-2025-007"


def test_http_errors_become_submission_errors():
    processor = HttpPayoutProcessor(base_url="https://payouts.test", session=FakeSession([FakeResponse(503)]))
    with pytest.raises(PayoutSubmissionError) as exc:
        processor.submit(record=_record(), partner=_partner())
    assert exc.value.status_code == 502
    assert exc.value.to_payload()["commission_id"] == "COMM-2025-007"

    processor = HttpPayoutProcessor(
        base_url="https://payouts.test",
        session=FakeSession(error=requests.ConnectionError("refused")),
    )
    with pytest.raises(PayoutSubmissionError):
        processor.is_payable(ACTIVE)


@pytest.mark.parametrize(
    "session, outcome_unknown",
    [
        (FakeSession([FakeResponse(503)]), True),
        (FakeSession(error=requests.ReadTimeout("read timed out")), True),
        (FakeSession([FakeResponse(422)]), False),
        (FakeSession(error=requests.ConnectTimeout("connect timed out")), False),
    ],
)
def test_http_submit_flags_unconfirmed_outcomes(session, outcome_unknown):
    processor = HttpPayoutProcessor(base_url="https://payouts.test", session=session)
    with pytest.raises(PayoutSubmissionError) as exc:
        processor.submit(record=_record(), partner=_partner())
    assert exc.value.outcome_unknown is outcome_unknown
    assert exc.value.to_payload()["commission_id"] == "COMM-2025-007"


def test_http_requires_base_url(monkeypatch):
    from app.core.config import settings

    monkeypatch.setattr(settings, "PAYOUT_API_BASE_URL", None)
    processor = HttpPayoutProcessor(session=FakeSession())
    with pytest.raises(PayoutSubmissionError):
        processor.submit(record=_record(), partner=_partner())
