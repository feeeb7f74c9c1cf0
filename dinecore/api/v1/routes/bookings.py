from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from dinecore.api.deps import (
    get_cancellation_coordinator,
    get_checkout_config,
    get_clock,
    get_current_principal,
    get_fulfilment_service,
    get_lock_manager,
    http_error,
    unwrap_or_http,
)
from dinecore.api.v1.routes.orders import status_out
from dinecore.core.config import CheckoutConfig
from dinecore.core.errors import CheckoutError
from dinecore.core.security import Principal
from dinecore.db.session import get_db
from dinecore.schemas.orders import StatusChangeOut
from dinecore.services.availability_service import AvailabilityService
from dinecore.services.cancellation_service import CancellationCoordinator
from dinecore.services.lock_service import ReservationLockManager
from dinecore.services.order_service import FulfilmentService

router = APIRouter(tags=["bookings"])


@router.get("/restaurants/{restaurant_id}/slots")
def list_slots(restaurant_id: str, date: date = Query(...), guests: int = Query(2, ge=1),
               db: Session = Depends(get_db),
               config: CheckoutConfig = Depends(get_checkout_config),
               locks: ReservationLockManager = Depends(get_lock_manager),
               clock=Depends(get_clock)):
    try:
        tables = AvailabilityService(config, locks, clock).available_slots(db, restaurant_id, date, guests)
    except CheckoutError as e:
        raise http_error(e)
    return {
        "restaurantId": restaurant_id,
        "date": date.isoformat(),
        "tables": [
            {"tableId": t.table_id, "tableNumber": t.table_number, "capacity": t.capacity,
             "area": t.area, "slots": t.slots}
            for t in tables
        ],
    }


@router.post("/bookings/{booking_id}/cancel", response_model=StatusChangeOut)
def cancel_booking(booking_id: str, db: Session = Depends(get_db),
                   me: Principal = Depends(get_current_principal),
                   coordinator: CancellationCoordinator = Depends(get_cancellation_coordinator)):
    return status_out(unwrap_or_http(coordinator.cancel_booking(db, booking_id, me)))


@router.post("/bookings/{booking_id}/complete", response_model=StatusChangeOut)
def complete_booking(booking_id: str, db: Session = Depends(get_db),
                     me: Principal = Depends(get_current_principal),
                     fulfilment: FulfilmentService = Depends(get_fulfilment_service)):
    return status_out(unwrap_or_http(fulfilment.complete_booking(db, booking_id, me)))
