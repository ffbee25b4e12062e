from .audit import AuditLog
from .error_log import ErrorLog
from .order import Order
from .profile import Profile
from .promo_code import PromoCode, PromoCodeUserUsage

__all__ = [
    "AuditLog",
    "ErrorLog",
    "Order",
    "Profile",
    "PromoCode",
    "PromoCodeUserUsage",
]
