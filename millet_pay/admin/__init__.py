"""Admin API: modular routers under /admin, X-Admin-Secret protected."""
from fastapi import APIRouter

from millet_pay.admin.routers import dashboard, errors, orders, promo_codes

admin_router = APIRouter(prefix="/admin", tags=["admin"])

admin_router.include_router(dashboard.router)
admin_router.include_router(orders.router, prefix="/orders", tags=["admin-orders"])
admin_router.include_router(promo_codes.router, prefix="/promo-codes", tags=["admin-promo-codes"])
admin_router.include_router(errors.router, prefix="/errors", tags=["admin-errors"])
