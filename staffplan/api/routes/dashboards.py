"""Dashboard endpoints for organization-wide utilization and financial health."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from staffplan.db.dependencies import get_db_session
from staffplan.services.summary_service import SummaryService

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _service(db: Session) -> SummaryService:
    return SummaryService(db)


@router.get("")
def get_dashboard(
    as_of: date | None = None,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).dashboard(as_of)


@router.get("/stats")
def get_dashboard_stats(
    as_of: date | None = None,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).dashboard_stats(as_of)
