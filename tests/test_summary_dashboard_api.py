from __future__ import annotations

import csv
import io
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO

from fastapi.testclient import TestClient
from openpyxl import load_workbook
from sqlalchemy.orm import Session

from staffplan.models.entities import Member, Project, ProjectStatus, ProjectType
from staffplan.services.summary_service import to_member_record

AS_OF = "2026-04-15"


def _post(client: TestClient, url: str, payload: dict[str, object]) -> dict[str, object]:
    response = client.post(url, json=payload)
    assert response.status_code in (200, 201), response.text
    return response.json()


def _assign(client: TestClient, member_id: str, project_id: str, year: int, month: int, man_month: float) -> None:
    _post(
        client,
        "/api/v1/assignments",
        {"member_id": member_id, "project_id": project_id, "year": year, "month": month, "man_month": man_month},
    )


def _seed_portfolio(client: TestClient) -> dict[str, str]:
    """Two members across a development and a Q1 maintenance project."""

    aiko = _post(client, "/api/v1/members", {"name": "Aiko", "role": "Engineer", "hourly_rate": 5000})
    ben = _post(
        client,
        "/api/v1/members",
        {"name": "Ben", "role": "Designer", "hourly_rate": 5000, "work_capacity": 0.5},
    )
    build = _post(
        client,
        "/api/v1/projects",
        {"name": "Build", "type": "development", "budget": 10000000, "end_date": "2099-12-31"},
    )
    care = _post(
        client,
        "/api/v1/projects",
        {
            "name": "Care",
            "type": "maintenance",
            "budget": 500000,
            "start_date": "2026-01-01",
            "end_date": "2026-03-31",
            "monthly_budgets": [{"year": 2026, "month": 2, "amount": 800000}],
        },
    )
    _assign(client, aiko["id"], build["id"], 2026, 4, 0.6)
    _assign(client, aiko["id"], care["id"], 2026, 4, 0.5)
    _assign(client, ben["id"], build["id"], 2026, 4, 0.25)
    _assign(client, ben["id"], care["id"], 2026, 1, 0.5)
    return {"aiko": aiko["id"], "ben": ben["id"], "build": build["id"], "care": care["id"]}


def test_dashboard_summary_alerts_and_project_lists(client: TestClient) -> None:
    ids = _seed_portfolio(client)
    _post(client, "/api/v1/projects", {"name": "Maybe", "status": "prospective", "budget": 3000000})
    wrap = _post(client, "/api/v1/projects", {"name": "Wrap", "end_date": "2026-05-01"})

    response = client.get(f"/api/v1/dashboard?as_of={AS_OF}")

    assert response.status_code == 200
    body = response.json()
    assert body["as_of"] == AS_OF
    assert body["summary"] == {
        "active_projects": 2,
        "prospective_projects": 1,
        "overall_utilization": 80,
        "over_allocated_count": 1,
        "total_budget": 15300000,
        "total_cost": 1480000,
        "total_profit": 13820000,
        "profit_rate_percent": 90,
    }

    alert = body["alerts"]["over_allocated"][0]
    assert alert["member_id"] == ids["aiko"]
    assert alert["key"] == "2026-4"
    assert alert["utilization"] == 110
    assert alert["total_man_month"] == 1.1
    assert alert["work_capacity"] == 1.0

    assert [project["name"] for project in body["projects"]["prospective"]] == ["Maybe"]
    assert [project["id"] for project in body["projects"]["upcoming_end"]] == [wrap["id"]]
    assert body["warnings"] == []


def test_dashboard_stats(client: TestClient) -> None:
    _seed_portfolio(client)

    response = client.get(f"/api/v1/dashboard/stats?as_of={AS_OF}")

    assert response.status_code == 200
    assert response.json() == {
        "as_of": AS_OF,
        "member_count": 2,
        "project_count": 2,
        "active_assignments": 3,
        "warning_count": 1,
        "warnings": [],
    }


def test_empty_dashboard(client: TestClient) -> None:
    body = client.get(f"/api/v1/dashboard?as_of={AS_OF}").json()

    assert body["summary"]["overall_utilization"] == 0
    assert body["summary"]["total_budget"] == 0
    assert body["summary"]["profit_rate_percent"] == 0
    assert body["alerts"]["over_allocated"] == []


def test_member_month_summary_lists_but_does_not_count_prospective(client: TestClient) -> None:
    aiko = _post(client, "/api/v1/members", {"name": "Aiko", "role": "Engineer", "hourly_rate": 5000})
    _post(client, "/api/v1/members", {"name": "Ben", "role": "Engineer", "hourly_rate": 5000})
    build = _post(client, "/api/v1/projects", {"name": "Build"})
    maybe = _post(client, "/api/v1/projects", {"name": "Maybe", "status": "prospective"})
    _assign(client, aiko["id"], build["id"], 2026, 4, 0.6)
    _assign(client, aiko["id"], maybe["id"], 2026, 4, 0.7)

    response = client.get("/api/v1/summary/members?year=2026&month=4")

    assert response.status_code == 200
    members = response.json()["members"]
    assert [row["member_name"] for row in members] == ["Aiko", "Ben"]

    aiko_row = members[0]
    assert aiko_row["utilization_percent"] == 60
    assert aiko_row["is_over_allocated"] is False
    assert aiko_row["has_prospective"] is True
    rows = sorted(aiko_row["assignments"], key=lambda row: row["project_name"])
    assert [(row["project_name"], row["counted"]) for row in rows] == [("Build", True), ("Maybe", False)]

    assert members[1]["utilization_percent"] == 0
    assert members[1]["assignments"] == []

    assert client.get("/api/v1/summary/members?year=2026&month=13").status_code == 422


def test_fiscal_year_grid(client: TestClient) -> None:
    ids = _seed_portfolio(client)
    maybe = _post(client, "/api/v1/projects", {"name": "Maybe", "status": "prospective"})
    _assign(client, ids["ben"], maybe["id"], 2026, 4, 0.5)

    default = client.get("/api/v1/summary/fiscal-year?fiscal_year=2025").json()
    with_prospective = client.get("/api/v1/summary/fiscal-year?fiscal_year=2025&include_prospective=true").json()

    assert default["fiscal_year"] == 2025
    assert len(default["months"]) == 12
    assert default["months"][0]["key"] == "2025-10"
    assert default["months"][-1]["key"] == "2026-9"

    aiko_april = default["members"][0]["cells"][6]
    assert aiko_april["key"] == "2026-4"
    assert aiko_april["utilization_percent"] == 110
    assert aiko_april["status"] == "over"

    ben_april = default["members"][1]["cells"][6]
    assert ben_april["utilization_percent"] == 50
    assert ben_april["has_prospective"] is True
    assert with_prospective["members"][1]["cells"][6]["utilization_percent"] == 150

    as_of_year = client.get(f"/api/v1/summary/fiscal-year?as_of={AS_OF}").json()
    assert as_of_year["fiscal_year"] == 2025


def test_project_summaries_with_maintenance_budget(client: TestClient) -> None:
    ids = _seed_portfolio(client)

    current = client.get(f"/api/v1/summary/projects?as_of={AS_OF}").json()
    everything = client.get(f"/api/v1/summary/projects?as_of={AS_OF}&include_ended=true").json()

    assert [project["name"] for project in current["projects"]] == ["Build"]

    by_id = {project["id"]: project for project in everything["projects"]}
    care = by_id[ids["care"]]
    assert care["budget"] == 2300000
    assert care["cost"] == 800000
    assert care["profit"] == 1500000
    assert care["member_names"] == ["Aiko", "Ben"]
    assert care["assignment_count"] == 2

    build = by_id[ids["build"]]
    assert build["cost"] == 680000
    assert build["consumption_percent"] == 7
    assert build["is_over_budget"] is False

    assert everything["totals"] == {
        "total_budget": 12300000,
        "total_cost": 1480000,
        "total_profit": 10820000,
        "profit_rate_percent": 88,
    }


def test_project_detail_months_and_members(client: TestClient) -> None:
    ids = _seed_portfolio(client)

    response = client.get(f"/api/v1/summary/projects/{ids['care']}?as_of={AS_OF}")

    assert response.status_code == 200
    body = response.json()
    assert [month["key"] for month in body["months"]] == ["2026-1", "2026-2", "2026-3", "2026-4"]
    assert [month["budget"] for month in body["months"]] == [500000, 800000, 500000, 500000]
    assert [month["has_override"] for month in body["months"]] == [False, True, False, False]
    assert [month["cost"] for month in body["months"]] == [400000, 0, 0, 400000]

    assert [member["member_name"] for member in body["members"]] == ["Aiko", "Ben"]
    assert [member["total_cost"] for member in body["members"]] == [400000, 400000]
    assert body["financials"]["budget"] == 2300000
    assert body["financials"]["profit"] == 1500000


def test_project_detail_open_ended_extends_past_as_of(client: TestClient) -> None:
    care = _post(
        client,
        "/api/v1/projects",
        {"name": "Care", "type": "maintenance", "budget": 100000, "start_date": "2026-03-01"},
    )

    body = client.get(f"/api/v1/summary/projects/{care['id']}?as_of={AS_OF}").json()

    assert [month["key"] for month in body["months"]] == ["2026-3", "2026-4", "2026-5", "2026-6", "2026-7"]
    assert body["financials"]["budget"] == 500000
    assert body["members"] == []


def test_project_detail_unknown_project(client: TestClient) -> None:
    response = client.get("/api/v1/summary/projects/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404


def test_fiscal_year_csv_export(client: TestClient) -> None:
    _seed_portfolio(client)

    response = client.get("/api/v1/exports/fiscal-year?format=csv&fiscal_year=2025")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="fiscal-year-2025.csv"' in response.headers["content-disposition"]

    rows = list(csv.DictReader(io.StringIO(response.text)))
    assert [row["member_name"] for row in rows] == ["Aiko", "Ben"]
    assert rows[0]["2026-4"] == "110"
    assert rows[1]["2026-1"] == "100"


def test_project_summaries_xlsx_export(client: TestClient) -> None:
    _seed_portfolio(client)

    response = client.get(f"/api/v1/exports/project-summaries?as_of={AS_OF}&include_ended=true")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    workbook = load_workbook(BytesIO(response.content))
    sheet = workbook["projects"]
    header = [cell.value for cell in sheet[1]]
    assert header[:3] == ["name", "type", "status"]
    assert [sheet.cell(row=row, column=1).value for row in range(2, sheet.max_row + 1)] == ["Build", "Care"]


def test_export_rejects_unknown_format(client: TestClient) -> None:
    response = client.get("/api/v1/exports/fiscal-year?format=pdf")
    assert response.status_code == 422


def test_stored_project_with_malformed_year_is_reported_not_fatal(client: TestClient, db_session: Session) -> None:
    ids = _seed_portfolio(client)
    now = datetime.utcnow()
    legacy = Project(
        name="Legacy",
        type=ProjectType.MAINTENANCE,
        status=ProjectStatus.CONFIRMED,
        budget=100000,
        start_date=date(202, 1, 1),
        end_date=date(2026, 3, 31),
        sort_order=9,
        created_at=now,
        updated_at=now,
    )
    db_session.add(legacy)
    db_session.commit()

    dashboard = client.get(f"/api/v1/dashboard?as_of={AS_OF}")
    summaries = client.get(f"/api/v1/summary/projects?as_of={AS_OF}&include_ended=true")
    detail = client.get(f"/api/v1/summary/projects/{legacy.id}?as_of={AS_OF}")
    export = client.get(f"/api/v1/exports/project-summaries?format=csv&as_of={AS_OF}&include_ended=true")

    assert dashboard.status_code == 200
    assert summaries.status_code == 200
    assert detail.status_code == 200
    assert export.status_code == 200

    warning_kinds = [warning["kind"] for warning in dashboard.json()["warnings"]]
    assert warning_kinds == ["invalid_date"]
    assert dashboard.json()["warnings"][0]["entity_id"] == str(legacy.id)
    # The rest of the portfolio is unaffected.
    by_id = {project["id"]: project for project in summaries.json()["projects"]}
    assert by_id[ids["care"]]["budget"] == 2300000
    assert by_id[str(legacy.id)]["budget"] == 0


def test_member_record_carries_stored_rate_and_capacity() -> None:
    member = Member(name="Aiko", role="Engineer", hourly_rate=5000, work_capacity=Decimal("0.50"), sort_order=3)

    record = to_member_record(member)

    assert record.hourly_rate == Decimal("5000")
    assert record.work_capacity == Decimal("0.5")
    assert (record.role, record.sort_order) == ("Engineer", 3)
