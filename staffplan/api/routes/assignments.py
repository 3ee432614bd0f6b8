"""Assignment endpoints: single upsert, date-range upsert and the bulk schedule grid."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from staffplan.db.dependencies import get_db_session
from staffplan.engine.records import YearMonth
from staffplan.services.planning_service import (
    AssignmentData,
    AssignmentFilters,
    AssignmentRangeData,
    AssignmentUpdateData,
    PlanningService,
    ScheduleRow,
    ScheduleValue,
)

router = APIRouter(prefix="/assignments", tags=["assignments"])


class AssignmentCreatePayload(BaseModel):
    member_id: UUID
    project_id: UUID
    man_month: Decimal = Field(ge=0, le=99)
    mode: Literal["single", "bulk"] = "single"
    year: int | None = Field(default=None, ge=1000, le=9999)
    month: int | None = Field(default=None, ge=1, le=12)
    start_date: date | None = None
    end_date: date | None = None


class AssignmentUpdatePayload(BaseModel):
    man_month: Decimal | None = Field(default=None, ge=0, le=99)
    year: int | None = Field(default=None, ge=1000, le=9999)
    month: int | None = Field(default=None, ge=1, le=12)


class ScheduleValuePayload(BaseModel):
    year: int = Field(ge=1000, le=9999)
    month: int = Field(ge=1, le=12)
    man_month: Decimal = Field(ge=0, le=99)


class ScheduleRowPayload(BaseModel):
    member_id: UUID
    values: list[ScheduleValuePayload]


class BulkSchedulePayload(BaseModel):
    project_id: UUID
    rows: list[ScheduleRowPayload]


def _service(db: Session) -> PlanningService:
    return PlanningService(db)


def _year_month(year: int | None, month: int | None, label: str) -> YearMonth | None:
    if year is None and month is None:
        return None
    if year is None or month is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{label}_year and {label}_month must be given together.",
        )
    return YearMonth(year, month)


@router.get("")
def list_assignments(
    member_ids: list[UUID] | None = Query(default=None),
    member_id: UUID | None = None,
    project_id: UUID | None = None,
    start_year: int | None = None,
    start_month: int | None = None,
    end_year: int | None = None,
    end_month: int | None = None,
    year: int | None = None,
    month: int | None = None,
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _service(db)
    selected = set(member_ids or [])
    if member_id is not None:
        selected.add(member_id)

    rows = service.list_assignments(
        AssignmentFilters(
            member_ids=selected,
            project_id=project_id,
            start=_year_month(start_year, start_month, "start"),
            end=_year_month(end_year, end_month, "end"),
            year=year,
            month=month,
        )
    )
    return {"items": [service.serialize_assignment(row) for row in rows]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_assignment(payload: AssignmentCreatePayload, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    if payload.mode == "bulk":
        if payload.start_date is None or payload.end_date is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="start_date and end_date are required in bulk mode.",
            )
        rows = service.upsert_assignment_range(
            AssignmentRangeData(
                member_id=payload.member_id,
                project_id=payload.project_id,
                start_date=payload.start_date,
                end_date=payload.end_date,
                man_month=payload.man_month,
            )
        )
        return {"items": [service.serialize_assignment(row) for row in rows]}

    if payload.year is None or payload.month is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="year and month are required.",
        )
    row = service.upsert_assignment(
        AssignmentData(
            member_id=payload.member_id,
            project_id=payload.project_id,
            year=payload.year,
            month=payload.month,
            man_month=payload.man_month,
        )
    )
    return service.serialize_assignment(row)


@router.post("/bulk-schedule", status_code=status.HTTP_201_CREATED)
def bulk_schedule(payload: BulkSchedulePayload, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    saved = service.bulk_schedule(
        payload.project_id,
        [
            ScheduleRow(
                member_id=row.member_id,
                values=[
                    ScheduleValue(year=value.year, month=value.month, man_month=value.man_month)
                    for value in row.values
                ],
            )
            for row in payload.rows
        ],
    )
    return {"success": True, "saved_cells": saved}


@router.put("/{assignment_id}")
def update_assignment(
    assignment_id: UUID,
    payload: AssignmentUpdatePayload,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    row = service.update_assignment(
        assignment_id,
        AssignmentUpdateData(man_month=payload.man_month, year=payload.year, month=payload.month),
    )
    return service.serialize_assignment(row)


@router.delete("/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(assignment_id: UUID, db: Session = Depends(get_db_session)) -> Response:
    service = _service(db)
    service.delete_assignment(assignment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
