"""API v1 routes aggregation"""

from fastapi import APIRouter

from .admin.router import router as admin_router
from .checkout.router import router as checkout_router
from .coupons.router import router as coupons_router
from .discount_rules.router import router as discount_rules_router
from .orders.router import router as orders_router
from .payments.router import router as payments_router

# Create v1 router
api_router = APIRouter()

# Include all routers
api_router.include_router(discount_rules_router, prefix="/discount-rules", tags=["Discount Rules"])
api_router.include_router(coupons_router, prefix="/coupons", tags=["Coupons"])
api_router.include_router(checkout_router, prefix="/checkout", tags=["Checkout"])
api_router.include_router(payments_router, prefix="/payments", tags=["Payments"])
api_router.include_router(orders_router, prefix="/orders", tags=["Orders"])
api_router.include_router(admin_router, prefix="/admin", tags=["Admin"])
