"""Project lifecycle and monthly budget endpoints."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from staffplan.db.dependencies import get_db_session
from staffplan.models.entities import ProjectStatus, ProjectType
from staffplan.services.planning_service import (
    MonthlyBudgetData,
    PlanningService,
    ProjectCreateData,
    ProjectFilters,
    ProjectUpdateData,
)

router = APIRouter(prefix="/projects", tags=["projects"])


class MonthlyBudgetPayload(BaseModel):
    year: int = Field(ge=1000, le=9999)
    month: int = Field(ge=1, le=12)
    amount: int = Field(ge=0)


class ProjectCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: ProjectType = ProjectType.DEVELOPMENT
    status: ProjectStatus = ProjectStatus.CONFIRMED
    description: str | None = Field(default=None, max_length=2000)
    budget: int | None = Field(default=None, ge=0)
    start_date: date | None = None
    end_date: date | None = None
    monthly_budgets: list[MonthlyBudgetPayload] = Field(default_factory=list)


class ProjectUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    type: ProjectType | None = None
    status: ProjectStatus | None = None
    description: str | None = Field(default=None, max_length=2000)
    budget: int | None = Field(default=None, ge=0)
    start_date: date | None = None
    end_date: date | None = None


class ProjectOrderPayload(BaseModel):
    project_ids: list[UUID]


def project_filters(
    search: str | None = Query(default=None, max_length=255),
    type: ProjectType | None = None,
    status: ProjectStatus | None = None,
    min_budget: int | None = Query(default=None, ge=0),
    max_budget: int | None = Query(default=None, ge=0),
    start_date: date | None = None,
    end_date: date | None = None,
    include_ended: bool = False,
) -> ProjectFilters:
    return ProjectFilters(
        search=search,
        type=type,
        status=status,
        min_budget=min_budget,
        max_budget=max_budget,
        start_date=start_date,
        end_date=end_date,
        include_ended=include_ended,
    )


def _service(db: Session) -> PlanningService:
    return PlanningService(db)


@router.get("")
def list_projects(
    filters: ProjectFilters = Depends(project_filters),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _service(db)
    projects = service.list_projects(filters)
    counts = service.assignment_counts(projects)
    return {"items": [service.serialize_project(project, counts.get(project.id, 0)) for project in projects]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(payload: ProjectCreatePayload, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    project = service.create_project(
        ProjectCreateData(
            name=payload.name,
            type=payload.type,
            status=payload.status,
            description=payload.description,
            budget=payload.budget,
            start_date=payload.start_date,
            end_date=payload.end_date,
            monthly_budgets=[
                MonthlyBudgetData(year=row.year, month=row.month, amount=row.amount)
                for row in payload.monthly_budgets
            ],
        )
    )
    return service.serialize_project(project)


@router.patch("/order")
def reorder_projects(payload: ProjectOrderPayload, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    service.reorder_projects(payload.project_ids)
    return {"success": True}


@router.get("/{project_id}")
def get_project(project_id: UUID, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    project = service.get_project(project_id)
    counts = service.assignment_counts([project])
    return service.serialize_project(project, counts.get(project.id, 0))


@router.put("/{project_id}")
def update_project(
    project_id: UUID,
    payload: ProjectUpdatePayload,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    project = service.update_project(project_id, ProjectUpdateData(**payload.model_dump(exclude_unset=True)))
    return service.serialize_project(project)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(project_id: UUID, db: Session = Depends(get_db_session)) -> Response:
    service = _service(db)
    service.delete_project(project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{project_id}/monthly-budgets")
def list_monthly_budgets(project_id: UUID, db: Session = Depends(get_db_session)) -> dict[str, list[object]]:
    service = _service(db)
    rows = service.list_monthly_budgets(project_id)
    return {"items": [service.serialize_monthly_budget(row) for row in rows]}


@router.post("/{project_id}/monthly-budgets")
def upsert_monthly_budget(
    project_id: UUID,
    payload: MonthlyBudgetPayload,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    row = service.upsert_monthly_budget(
        project_id,
        MonthlyBudgetData(year=payload.year, month=payload.month, amount=payload.amount),
    )
    return service.serialize_monthly_budget(row)


@router.delete("/{project_id}/monthly-budgets/{year}/{month}", status_code=status.HTTP_204_NO_CONTENT)
def delete_monthly_budget(
    project_id: UUID,
    year: int,
    month: int,
    db: Session = Depends(get_db_session),
) -> Response:
    service = _service(db)
    service.delete_monthly_budget(project_id, year, month)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
