"""Error journal: error_logs table."""
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from millet_pay.admin.deps import require_admin
from millet_pay.core.database import get_db
from millet_pay.models import ErrorLog

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("")
@router.get("/")
def errors_list(db: Session = Depends(get_db), limit: int = 100):
    logs = db.exec(select(ErrorLog).order_by(ErrorLog.id.desc()).limit(limit)).all()
    return [
        {
            "id": e.id,
            "endpoint": e.endpoint or "-",
            "method": e.method or "-",
            "error_message": (e.error_message or "-")[:200],
            "created_at": e.created_at.isoformat() if e.created_at else None,
        }
        for e in logs
    ]


@router.get("/{error_id}")
def error_detail(error_id: int, db: Session = Depends(get_db)):
    e = db.get(ErrorLog, error_id)
    if not e:
        raise HTTPException(404, "Log not found.")
    return e.model_dump()
