from fastapi import APIRouter
from dinecore.api.v1.routes.cart import router as cart_router
from dinecore.api.v1.routes.checkout import router as checkout_router
from dinecore.api.v1.routes.payments import router as payments_router
from dinecore.api.v1.routes.orders import router as orders_router
from dinecore.api.v1.routes.bookings import router as bookings_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(cart_router)
api_router.include_router(checkout_router)
api_router.include_router(payments_router)
api_router.include_router(orders_router)
api_router.include_router(bookings_router)
