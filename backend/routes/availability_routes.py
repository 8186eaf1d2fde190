from datetime import date, time

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.core.errors import SchedulingError
from backend.database import get_db
from backend.routes.common import ensure_database_ready, to_http_exception
from backend.scheduling.availability import get_availability

router = APIRouter(tags=['availability'])


class SlotResponse(BaseModel):
    doctor_profile_id: str
    specialty_id: str
    date: date
    start_time: time
    end_time: time

    class Config:
        from_attributes = True


@router.get('', response_model=list[SlotResponse])
def list_available_slots(
    date: date = Query(...),
    doctor_profile_id: str | None = Query(default=None),
    specialty_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return get_availability(
            db,
            target_date=date,
            doctor_profile_id=(doctor_profile_id or '').strip() or None,
            specialty_id=(specialty_id or '').strip() or None,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
