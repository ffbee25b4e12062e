from datetime import datetime

from sqlmodel import Field, SQLModel

from millet_pay.core.database import UTCDateTime, utcnow


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: int | None = Field(default=None, primary_key=True)
    event: str = Field(index=True)  # payment_completed, payment_failed, order_cancelled_stale, admin_status, ...
    order_id: str | None = Field(default=None, index=True)
    actor: str | None = None  # gateway name, "admin", "reaper", user id
    detail: str | None = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
