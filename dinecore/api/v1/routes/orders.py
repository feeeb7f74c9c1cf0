from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from dinecore.api.deps import (
    get_cancellation_coordinator,
    get_current_principal,
    get_fulfilment_service,
    unwrap_or_http,
)
from dinecore.core.security import Principal
from dinecore.db.session import get_db
from dinecore.schemas.orders import RespondIn, StatusChangeOut, StatusIn
from dinecore.services.cancellation_service import CancellationCoordinator, StatusChange
from dinecore.services.order_service import FulfilmentService

router = APIRouter(tags=["orders"])


def status_out(change: StatusChange) -> StatusChangeOut:
    return StatusChangeOut(
        kind=change.kind,
        id=change.record_id,
        status=change.status,
        paymentStatus=change.payment_status,
        refundStatus=change.refund_status,
    )


@router.post("/orders/{order_id}/cancel", response_model=StatusChangeOut)
def cancel_order(order_id: str, db: Session = Depends(get_db),
                 me: Principal = Depends(get_current_principal),
                 coordinator: CancellationCoordinator = Depends(get_cancellation_coordinator)):
    return status_out(unwrap_or_http(coordinator.cancel_order(db, order_id, me)))


@router.post("/orders/{order_id}/respond", response_model=StatusChangeOut)
def respond_to_order(order_id: str, body: RespondIn, db: Session = Depends(get_db),
                     me: Principal = Depends(get_current_principal),
                     fulfilment: FulfilmentService = Depends(get_fulfilment_service)):
    return status_out(unwrap_or_http(fulfilment.respond_to_order(db, order_id, me, body.accept)))


@router.post("/orders/{order_id}/status", response_model=StatusChangeOut)
def advance_order(order_id: str, body: StatusIn, db: Session = Depends(get_db),
                  me: Principal = Depends(get_current_principal),
                  fulfilment: FulfilmentService = Depends(get_fulfilment_service)):
    return status_out(unwrap_or_http(fulfilment.advance_order(db, order_id, me, body.status)))
