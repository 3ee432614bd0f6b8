"""Member roster endpoints."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from staffplan.db.dependencies import get_db_session
from staffplan.services.planning_service import MemberCreateData, MemberUpdateData, PlanningService

router = APIRouter(prefix="/members", tags=["members"])


class MemberCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    role: str = Field(min_length=1, max_length=128)
    hourly_rate: int = Field(ge=0)
    work_capacity: Decimal = Field(default=Decimal("1.00"), ge=0, le=999)
    memo: str | None = Field(default=None, max_length=2000)


class MemberUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    role: str | None = Field(default=None, min_length=1, max_length=128)
    hourly_rate: int | None = Field(default=None, ge=0)
    work_capacity: Decimal | None = Field(default=None, ge=0, le=999)
    memo: str | None = Field(default=None, max_length=2000)


class MemberOrderPayload(BaseModel):
    member_ids: list[UUID]


def _service(db: Session) -> PlanningService:
    return PlanningService(db)


@router.get("")
def list_members(db: Session = Depends(get_db_session)) -> dict[str, list[object]]:
    service = _service(db)
    return {"items": [service.serialize_member(member) for member in service.list_members()]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_member(payload: MemberCreatePayload, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    member = service.create_member(
        MemberCreateData(
            name=payload.name,
            role=payload.role,
            hourly_rate=payload.hourly_rate,
            work_capacity=payload.work_capacity,
            memo=payload.memo,
        )
    )
    return service.serialize_member(member)


@router.patch("/order")
def reorder_members(payload: MemberOrderPayload, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    service.reorder_members(payload.member_ids)
    return {"success": True}


@router.get("/{member_id}")
def get_member(member_id: UUID, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    return service.serialize_member(service.get_member(member_id))


@router.put("/{member_id}")
def update_member(
    member_id: UUID,
    payload: MemberUpdatePayload,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    member = service.update_member(member_id, MemberUpdateData(**payload.model_dump(exclude_unset=True)))
    return service.serialize_member(member)


@router.delete("/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_member(member_id: UUID, db: Session = Depends(get_db_session)) -> Response:
    service = _service(db)
    service.delete_member(member_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
