from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
import structlog

from dinecore.api.deps import get_confirmation_handler, get_gateway
from dinecore.core.errors import ValidationError
from dinecore.db.session import get_db
from dinecore.services.confirmation_service import PaymentConfirmationHandler
from dinecore.services.payment_gateway import PaymentGateway

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["payments"])

CONFIRMING_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db),
                         gateway: PaymentGateway = Depends(get_gateway),
                         handler: PaymentConfirmationHandler = Depends(get_confirmation_handler)):
    """Stripe webhook. Non-2xx answers make Stripe redeliver, so only retryable failures get one."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")
    try:
        event = gateway.verify_webhook_signature(payload, signature)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())

    if event.type not in CONFIRMING_EVENTS or not event.session_id:
        return {"received": True, "ignored": event.type}

    outcome = await run_in_threadpool(handler.confirm_payment, db, event.session_id)
    if outcome.ok:
        c = outcome.value
        return {"received": True, "outcome": "replayed" if c.replayed else "confirmed",
                "kind": c.kind, "number": c.number, "status": c.status}
    if outcome.error.retryable:
        logger.warning("webhook.retry_requested", event_id=event.id, kind=outcome.kind.value)
        raise HTTPException(status_code=500, detail=outcome.error.to_dict())
    logger.info("webhook.not_confirmed", event_id=event.id, kind=outcome.kind.value)
    return {"received": True, "outcome": outcome.kind.value}
