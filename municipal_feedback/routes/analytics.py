import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_identity
from ..db import get_db
from ..services.access import Identity, require_municipality_access
from ..services.statistics import feedback_statistics, feedback_summary
from .municipalities import load_municipality, parse_date_range


router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/municipalities/{municipality_id}/statistics")
def statistics(
    municipality_id: uuid.UUID,
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    require_municipality_access(identity, path_id=municipality_id)
    load_municipality(db, municipality_id)
    start, end = parse_date_range(startDate, endDate)
    return feedback_statistics(db, municipality_id, start, end)


@router.get("/municipalities/{municipality_id}/feedback/summary")
def summary(
    municipality_id: uuid.UUID,
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    """Status histogram, busiest locations and recent response times."""
    require_municipality_access(identity, path_id=municipality_id)
    load_municipality(db, municipality_id)
    start, end = parse_date_range(startDate, endDate)
    return feedback_summary(db, municipality_id, start, end)
