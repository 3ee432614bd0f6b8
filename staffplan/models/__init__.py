"""ORM model package."""

from staffplan.models.entities import (
    Assignment,
    Member,
    MonthlyBudget,
    Project,
    ProjectStatus,
    ProjectType,
)

__all__ = [
    "Assignment",
    "Member",
    "MonthlyBudget",
    "Project",
    "ProjectStatus",
    "ProjectType",
]
