"""Utilization and project financial summary endpoints."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from staffplan.api.routes.projects import project_filters
from staffplan.db.dependencies import get_db_session
from staffplan.services.planning_service import ProjectFilters
from staffplan.services.summary_service import SummaryService

router = APIRouter(prefix="/summary", tags=["summary"])


def _service(db: Session) -> SummaryService:
    return SummaryService(db)


@router.get("/members")
def member_month_summary(
    year: int = Query(ge=1000, le=9999),
    month: int = Query(ge=1, le=12),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).member_month_summary(year, month)


@router.get("/fiscal-year")
def fiscal_year_summary(
    fiscal_year: int | None = Query(default=None, ge=1000, le=9998),
    include_prospective: bool = False,
    as_of: date | None = None,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).fiscal_year_summary(
        fiscal_year,
        include_prospective=include_prospective,
        as_of=as_of,
    )


@router.get("/projects")
def project_summaries(
    filters: ProjectFilters = Depends(project_filters),
    as_of: date | None = None,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).project_summaries(filters, as_of=as_of)


@router.get("/projects/{project_id}")
def project_detail(
    project_id: UUID,
    as_of: date | None = None,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).project_detail(project_id, as_of=as_of)
