"""Export endpoints for summary datasets."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from staffplan.api.routes.projects import project_filters
from staffplan.db.dependencies import get_db_session
from staffplan.services.planning_service import ProjectFilters
from staffplan.services.summary_service import ExportFilePayload, SummaryService

router = APIRouter(prefix="/exports", tags=["exports"])


def _service(db: Session) -> SummaryService:
    return SummaryService(db)


def _attachment(exported: ExportFilePayload) -> Response:
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )


@router.get("/fiscal-year")
def export_fiscal_year(
    format: str = Query(default="xlsx"),
    fiscal_year: int | None = Query(default=None, ge=1000, le=9998),
    include_prospective: bool = False,
    as_of: date | None = None,
    db: Session = Depends(get_db_session),
) -> Response:
    exported = _service(db).export_fiscal_year(
        format_name=format,
        fiscal_year=fiscal_year,
        include_prospective=include_prospective,
        as_of=as_of,
    )
    return _attachment(exported)


@router.get("/project-summaries")
def export_project_summaries(
    format: str = Query(default="xlsx"),
    filters: ProjectFilters = Depends(project_filters),
    as_of: date | None = None,
    db: Session = Depends(get_db_session),
) -> Response:
    exported = _service(db).export_project_summaries(format_name=format, filters=filters, as_of=as_of)
    return _attachment(exported)
