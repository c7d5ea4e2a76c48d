import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from pymongo.errors import ServerSelectionTimeoutError

from app.api.deps import get_actor_directory, get_attendance_repository, get_schedule_graph
from app.config import settings
from app.main import app, lifespan
from app.services.attendance_store import AttendanceStore

pytestmark = pytest.mark.anyio

BASE = "/api/attendance"


def auth(actor_id: str) -> dict:
    token = jwt.encode({"sub": actor_id}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}


def mark(intern_id: str, day: str = "2025-01-06", status=True, marked_by: str = "M1") -> dict:
    return {"intern": intern_id, "date": day, "status": status, "markedBy": marked_by}


@pytest.fixture
async def client(graph, repo, directory):
    app.dependency_overrides[get_schedule_graph] = lambda: graph
    app.dependency_overrides[get_attendance_repository] = lambda: repo
    app.dependency_overrides[get_actor_directory] = lambda: directory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def store(repo):
    return AttendanceStore(repo)


async def test_requests_without_token_are_rejected(client):
    response = await client.get(BASE)
    assert response.status_code == 401


async def test_unknown_actor_is_unauthorized(client):
    response = await client.get(BASE, headers=auth("ghost"))
    assert response.status_code == 401
    assert response.json()["message"] == "User not found: ghost"


async def test_unrecognized_role_is_forbidden(client):
    response = await client.get(BASE, headers=auth("ACC"))
    assert response.status_code == 403


async def test_mentor_without_schedule_gets_empty_page(client, repo):
    response = await client.get(BASE, headers=auth("M3"))
    assert response.status_code == 200
    body = response.json()
    assert body["data"] == []
    assert body["pagination"]["totalPages"] == 0
    assert body["pagination"]["totalCount"] == 0
    assert repo.find_calls == 0


async def test_mentor_sees_only_entitled_records(client, store):
    for intern_id in ("A", "C", "D"):
        await store.upsert_daily(intern_id, "2025-01-06", True, "ADM")

    mentor = (await client.get(BASE, headers=auth("M1"))).json()
    admin = (await client.get(BASE, headers=auth("ROOT"))).json()

    assert sorted(r["intern"] for r in mentor["data"]) == ["A", "C"]
    assert admin["pagination"]["totalCount"] == 3


async def test_course_filter_excluding_the_intern_yields_empty_not_forbidden(client, store):
    await store.upsert_daily("A", "2025-01-06", True, "ADM")
    response = await client.get(
        BASE, params={"intern": "A", "courseId": "course-x"}, headers=auth("M1")
    )
    assert response.status_code == 200
    assert response.json()["data"] == []


async def test_create_attendance(client, repo):
    response = await client.post(BASE, json=mark("A"), headers=auth("M1"))
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["intern"] == "A"
    assert data["date"] == "2025-01-06"
    assert data["statusText"] == "Present"
    assert data["markedBy"] == "M1"
    assert len(repo.records) == 1


async def test_create_twice_is_rejected(client, repo):
    assert (await client.post(BASE, json=mark("A"), headers=auth("M1"))).status_code == 201
    response = await client.post(
        BASE, json=mark("A", day="2025-01-06T09:30:00Z", status=False), headers=auth("M1")
    )
    assert response.status_code == 400
    assert "already marked" in response.json()["message"]
    assert len(repo.records) == 1


async def test_create_for_intern_outside_schedule_is_forbidden(client, repo):
    response = await client.post(BASE, json=mark("D"), headers=auth("M1"))
    assert response.status_code == 403
    assert repo.records == []


async def test_create_for_unknown_intern(client):
    response = await client.post(BASE, json=mark("nobody"), headers=auth("ADM"))
    assert response.status_code == 404
    assert response.json()["message"] == "Intern not found"


async def test_create_with_unknown_marker(client):
    response = await client.post(BASE, json=mark("A", marked_by="ghost"), headers=auth("ADM"))
    assert response.status_code == 404


@pytest.mark.parametrize("status", ["yes", "true", 1, None])
async def test_create_requires_boolean_status(client, repo, status):
    response = await client.post(BASE, json=mark("A", status=status), headers=auth("M1"))
    assert response.status_code == 400
    assert repo.records == []


async def test_create_rejects_bad_date(client):
    response = await client.post(BASE, json=mark("A", day="06/01/2025"), headers=auth("M1"))
    assert response.status_code == 400


async def test_update_single_is_idempotent(client, repo):
    body = {"internId": "B", "date": "2025-01-07", "status": True}
    first = await client.put(f"{BASE}/update-single", json=body, headers=auth("M1"))
    second = await client.put(f"{BASE}/update-single", json={**body, "status": False}, headers=auth("M1"))

    assert first.status_code == 200
    assert second.status_code == 200
    assert len(repo.records) == 1
    assert repo.records[0].status is False
    assert repo.records[0].marked_by == "M1"
    assert first.json()["data"]["id"] == second.json()["data"]["id"]


async def test_update_single_outside_schedule_is_forbidden(client, repo):
    body = {"internId": "D", "date": "2025-01-07", "status": True}
    response = await client.put(f"{BASE}/update-single", json=body, headers=auth("M1"))
    assert response.status_code == 403
    assert repo.records == []


async def test_create_daily_as_admin_covers_every_ongoing_intern(client, repo):
    response = await client.post(f"{BASE}/create-daily", headers=auth("ADM"))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["created"] == 4
    assert data["errors"] == []

    again = (await client.post(f"{BASE}/create-daily", headers=auth("ROOT"))).json()["data"]
    assert again["created"] == 0
    assert len(repo.records) == 4


async def test_create_daily_as_mentor_covers_own_interns(client, repo):
    response = await client.post(f"{BASE}/create-daily", headers=auth("M2"))
    assert response.json()["data"]["created"] == 1
    assert [r.intern_id for r in repo.records] == ["D"]
    assert repo.records[0].marked_by == "ADM"


async def test_get_and_update_record(client, store):
    record = await store.upsert_daily("A", "2025-01-06", False, "ADM")

    fetched = await client.get(f"{BASE}/{record.id}", headers=auth("M1"))
    assert fetched.json()["data"]["statusText"] == "Absent"

    updated = await client.put(
        f"{BASE}/{record.id}", json={"status": True, "remarks": "late"}, headers=auth("M1")
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["status"] is True
    assert updated.json()["data"]["remarks"] == "late"

    forbidden = await client.get(f"{BASE}/{record.id}", headers=auth("M2"))
    assert forbidden.status_code == 403


async def test_missing_record_is_not_found(client):
    response = await client.get(f"{BASE}/rec-404", headers=auth("ADM"))
    assert response.status_code == 404


async def test_delete_is_admin_only_and_soft(client, store, repo):
    record = await store.upsert_daily("A", "2025-01-06", True, "ADM")

    assert (await client.delete(f"{BASE}/{record.id}", headers=auth("M1"))).status_code == 403
    assert (await client.delete(f"{BASE}/{record.id}", headers=auth("ADM"))).status_code == 200

    assert repo.records[0].is_active is False
    listing = (await client.get(BASE, headers=auth("ADM"))).json()
    assert listing["data"] == []
    again = await client.post(BASE, json=mark("A"), headers=auth("M1"))
    assert again.status_code == 201


async def test_interns_by_date(client, store):
    await store.upsert_daily("A", "2025-01-06", True, "ADM")
    await store.upsert_daily("D", "2025-01-06", False, "ADM")
    await store.upsert_daily("A", "2025-01-07", False, "ADM")

    response = await client.get(f"{BASE}/interns-by-date", params={"date": "2025-01-06"}, headers=auth("M1"))
    body = response.json()
    assert body["totalCount"] == 1
    assert body["data"][0]["id"] == "A"
    assert body["data"][0]["fullName"] == "Intern A"
    assert body["data"][0]["attendanceStatus"] is True


async def test_month_view_for_mentor(client, store):
    await store.upsert_daily("D", "2025-02-03", True, "ADM")
    await store.upsert_daily("D", "2025-02-04", False, "ADM")
    await store.upsert_daily("A", "2025-02-03", True, "ADM")

    response = await client.get(f"{BASE}/month", params={"year": 2025, "month": 2}, headers=auth("M2"))
    body = response.json()
    assert body["daysInMonth"] == 28
    assert [row["intern"] for row in body["data"]] == ["D"]
    row = body["data"][0]
    assert row["days"][2] is True
    assert row["days"][3] is False
    assert row["days"][0] is None
    assert (row["present"], row["absent"]) == (1, 1)


async def test_summary_overview(client, store):
    await store.upsert_daily("A", "2025-01-06", True, "ADM")
    await store.upsert_daily("B", "2025-01-06", False, "ADM")
    await store.upsert_daily("D", "2025-01-06", True, "ADM")

    mentor = await client.get(f"{BASE}/summary/overview", headers=auth("M1"))
    assert mentor.json()["data"] == {"present": 1, "absent": 1, "totalRecords": 2}

    empty = await client.get(f"{BASE}/summary/overview", headers=auth("M3"))
    assert empty.json()["data"] == {"present": 0, "absent": 0, "totalRecords": 0}


async def test_summary_report_requires_range(client):
    response = await client.get(f"{BASE}/summary-report", headers=auth("ADM"))
    assert response.status_code == 400


async def test_summary_report_rejects_inverted_range(client):
    response = await client.get(
        f"{BASE}/summary-report",
        params={"startDate": "2025-01-10", "endDate": "2025-01-01"},
        headers=auth("ADM"),
    )
    assert response.status_code == 400


async def test_summary_report(client, store):
    await store.upsert_daily("A", "2025-01-06", True, "ADM")
    await store.upsert_daily("B", "2025-01-07", False, "ADM")

    response = await client.get(
        f"{BASE}/summary-report",
        params={"startDate": "2025-01-01", "endDate": "2025-01-31"},
        headers=auth("ADM"),
    )
    data = response.json()["data"]
    assert [d["date"] for d in data["days"]] == ["2025-01-06", "2025-01-07"]
    assert data["totals"] == {"present": 1, "absent": 1, "totalRecords": 2}


async def test_csv_report(client, store):
    await store.upsert_daily("A", "2025-01-06", True, "ADM")
    response = await client.get(
        f"{BASE}/report",
        params={"startDate": "2025-01-01", "endDate": "2025-01-31"},
        headers=auth("ADM"),
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("Date,Intern ID,Intern Name")
    assert "Intern A" in lines[1]
    assert "Present" in lines[1]


async def test_report_with_no_records(client):
    response = await client.get(
        f"{BASE}/report",
        params={"startDate": "2025-01-01", "endDate": "2025-01-31"},
        headers=auth("M3"),
    )
    assert response.status_code == 404


async def test_create_daily_reports_rejected_interns(client, repo):
    repo.rejected_interns.add("C")
    response = await client.post(f"{BASE}/create-daily", headers=auth("ADM"))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["created"] == 3
    assert data["errors"] == [{"intern": "C", "error": "Document failed validation"}]


async def test_intern_outside_entitlement_never_reaches_the_store(client, store, repo):
    await store.upsert_daily("D", "2025-01-06", True, "ADM")

    listing = await client.get(BASE, params={"intern": "D"}, headers=auth("M1"))
    assert listing.status_code == 200
    assert listing.json()["data"] == []
    assert listing.json()["pagination"]["totalCount"] == 0

    in_range = await client.get(
        f"{BASE}/date-range/range",
        params={"startDate": "2025-01-01", "endDate": "2025-01-31", "intern": "D"},
        headers=auth("M1"),
    )
    assert in_range.json()["data"] == []

    summary = await client.get(f"{BASE}/summary/overview", params={"intern": "D"}, headers=auth("M1"))
    assert summary.json()["data"] == {"present": 0, "absent": 0, "totalRecords": 0}

    assert repo.find_calls == 0
    assert repo.status_count_calls == 0


async def test_admin_intern_filter_still_queries(client, store, repo):
    await store.upsert_daily("D", "2025-01-06", True, "ADM")
    listing = await client.get(BASE, params={"intern": "D"}, headers=auth("ADM"))
    assert [r["intern"] for r in listing.json()["data"]] == ["D"]


async def test_collection_path_answers_without_redirect(client):
    response = await client.get(BASE, headers=auth("ADM"))
    assert response.status_code == 200
    created = await client.post(BASE, json=mark("A"), headers=auth("ADM"))
    assert created.status_code == 201


async def test_startup_fails_clearly_without_mongodb(monkeypatch, caplog):
    async def unreachable():
        raise ServerSelectionTimeoutError("localhost:27017: connection refused")

    monkeypatch.setattr("app.main.db_startup", unreachable)
    with pytest.raises(RuntimeError, match="MONGODB_URL"):
        async with lifespan(app):
            pass
    assert "not reachable" in caplog.text
    assert "docker" not in caplog.text
