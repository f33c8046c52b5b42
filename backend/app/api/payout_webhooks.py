from __future__ import annotations

import json

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import get_db
from app.payouts.webhooks import SIGNATURE_HEADER, handle_payout_event, verify_signature


router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _require_webhook_secret() -> str:
    if not settings.PAYOUT_WEBHOOK_SECRET:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payout webhook secret is not configured",
        )
    return settings.PAYOUT_WEBHOOK_SECRET


@router.post("/payouts")
async def payout_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    secret = _require_webhook_secret()
    payload = await request.body()
    if not verify_signature(secret, payload, request.headers.get(SIGNATURE_HEADER)):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")
    try:
        event = json.loads(payload or b"{}")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload") from exc
    if not isinstance(event, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")
    return handle_payout_event(db, event)
