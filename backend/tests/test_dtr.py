"""
DTR API tests.

Tests:
  - file import (CSV/JSON/XLSX): status, row errors, duplicates, history
  - single-entry creation: import-entry, admin create
  - clock in/out and accomplishment editing
  - supervisor view of a member's accomplishments
"""

import json
from datetime import datetime, timedelta

from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import XLSX_MEDIA_TYPE, build_xlsx
from tms.core.clock import local_today, now_utc
from tms.db.models import DtrEntry, ImportHistory


async def _upload(client: AsyncClient, headers: dict, name: str, content: bytes, media: str = "text/csv"):
    return await client.post(
        "/api/dtr/import",
        files={"file": (name, content, media)},
        headers=headers,
    )


class TestImportFile:
    async def test_csv_import_success(
        self,
        client: AsyncClient,
        intern_user: dict,
        sample_csv: bytes,
        db: AsyncSession,
    ) -> None:
        resp = await _upload(client, intern_user["headers"], "dtr.csv", sample_csv)
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["status"] == "success"
        assert data["total"] == 2
        assert data["accepted_count"] == 2
        assert data["error_count"] == 0

        result = await db.execute(
            select(DtrEntry)
            .where(DtrEntry.user_id == intern_user["id"])
            .order_by(DtrEntry.work_date)
        )
        entries = result.scalars().all()
        assert [e.hours_worked for e in entries] == [8.5, 0.0]
        assert [e.work_date.isoformat() for e in entries] == ["2024-01-15", "2024-01-16"]
        assert entries[1].time_out is None

    async def test_reimport_reports_duplicates(
        self,
        client: AsyncClient,
        intern_user: dict,
        sample_csv: bytes,
    ) -> None:
        first = await _upload(client, intern_user["headers"], "dtr.csv", sample_csv)
        assert first.json()["accepted_count"] == 2

        second = await _upload(client, intern_user["headers"], "dtr.csv", sample_csv)
        data = second.json()
        assert data["status"] == "failed"
        assert data["accepted_count"] == 0
        assert data["errors"] == [
            "Row 1: Entry already exists for 2024-01-15 at 09:00",
            "Row 2: Entry already exists for 2024-01-16 at 08:30",
        ]

    async def test_partial_import(
        self,
        client: AsyncClient,
        intern_user: dict,
    ) -> None:
        csv = b"date,timeIn,timeOut\n2024-01-15,09:00 AM,05:00 PM\n2024-02-31,09:00 AM,\n"
        resp = await _upload(client, intern_user["headers"], "dtr.csv", csv)
        data = resp.json()
        assert data["status"] == "partial"
        assert data["total"] == 2
        assert data["accepted_count"] == 1
        assert data["errors"] == [
            "Row 2: Invalid date format: 2024-02-31. Use YYYY-MM-DD format."
        ]

    async def test_json_import_invalid_month(
        self,
        client: AsyncClient,
        intern_user: dict,
    ) -> None:
        payload = json.dumps([{"date": "2024-13-01", "timeIn": "09:00 AM"}]).encode()
        resp = await _upload(client, intern_user["headers"], "dtr.json", payload, "application/json")
        data = resp.json()
        assert data["status"] == "failed"
        assert data["total"] == 1
        assert data["error_count"] == 1
        assert "Row 1" in data["errors"][0]

    async def test_xlsx_import(
        self,
        client: AsyncClient,
        intern_user: dict,
    ) -> None:
        content = build_xlsx(
            [
                ["Date", "Time In", "Time Out", "Notes"],
                ["2024-03-04", "08:00 AM", "05:00 PM", "Inventory"],
                ["2024-03-05", "08:00 AM", "04:00 PM", "Audit"],
            ]
        )
        resp = await _upload(client, intern_user["headers"], "march.xlsx", content, XLSX_MEDIA_TYPE)
        assert resp.status_code == 200, resp.text
        assert resp.json()["accepted_count"] == 2

    async def test_clamped_row_warning_is_returned(
        self,
        client: AsyncClient,
        intern_user: dict,
    ) -> None:
        csv = b"date,timeIn,timeOut\n2024-01-15,05:00 PM,09:00 AM\n"
        data = (await _upload(client, intern_user["headers"], "dtr.csv", csv)).json()
        assert data["status"] == "success"
        assert data["warnings"] == ["Row 1: timeOut is earlier than timeIn; hours worked set to 0"]

    async def test_unsupported_extension(self, client: AsyncClient, intern_user: dict) -> None:
        resp = await _upload(client, intern_user["headers"], "dtr.xls", b"whatever")
        assert resp.status_code == 400, resp.text

    async def test_missing_columns_is_400(self, client: AsyncClient, intern_user: dict) -> None:
        resp = await _upload(client, intern_user["headers"], "dtr.csv", b"date,notes\n2024-01-15,x\n")
        assert resp.status_code == 400
        assert "timein" in resp.json()["detail"]

    async def test_import_requires_auth(self, client: AsyncClient, sample_csv: bytes) -> None:
        resp = await _upload(client, {}, "dtr.csv", sample_csv)
        assert resp.status_code == 401


class TestImportHistory:
    async def test_history_is_recorded(
        self,
        client: AsyncClient,
        intern_user: dict,
        admin_user: dict,
        sample_csv: bytes,
        db: AsyncSession,
    ) -> None:
        await _upload(client, intern_user["headers"], "mine.csv", sample_csv)

        resp = await client.get("/api/dtr/imports", headers=intern_user["headers"])
        assert resp.status_code == 200, resp.text
        history = resp.json()
        assert history["total"] == 1
        latest = history["items"][0]
        assert latest["filename"] == "mine.csv"
        assert latest["status"] == "success"
        assert latest["uploaded_by_name"] == intern_user["name"]
        assert latest["logs"]["accepted"] == 2
        assert latest["logs"]["total"] == 2

        stored = (await db.execute(select(ImportHistory))).scalars().all()
        assert len(stored) == 1

    async def test_users_see_only_their_imports(
        self,
        client: AsyncClient,
        intern_user: dict,
        admin_user: dict,
        user_factory,
        sample_csv: bytes,
    ) -> None:
        other = await user_factory(role="staff")
        await _upload(client, intern_user["headers"], "a.csv", sample_csv)
        await _upload(client, other["headers"], "b.csv", sample_csv)

        mine = (await client.get("/api/dtr/imports", headers=intern_user["headers"])).json()
        assert [i["filename"] for i in mine["items"]] == ["a.csv"]

        everything = (await client.get("/api/dtr/imports", headers=admin_user["headers"])).json()
        assert everything["total"] == 2


class TestSingleEntry:
    async def test_import_entry_created_then_conflict(
        self,
        client: AsyncClient,
        intern_user: dict,
    ) -> None:
        body = {
            "date": "2024-01-14T16:00:00.000Z",
            "time_in": "2024-01-15T01:00:00Z",
            "time_out": "2024-01-15T09:00:00Z",
            "hours_worked": 8,
            "accomplishment": "Imported",
        }
        resp = await client.post("/api/dtr/import-entry", json=body, headers=intern_user["headers"])
        assert resp.status_code == 201, resp.text
        data = resp.json()
        # the instant is local midnight of Jan 15
        assert data["date"] == "2024-01-15"
        assert data["hours_worked"] == 8

        again = await client.post("/api/dtr/import-entry", json=body, headers=intern_user["headers"])
        assert again.status_code == 409
        assert again.json()["detail"] == "Entry already exists for 2024-01-15 at 09:00"

    async def test_negative_hours_rejected(self, client: AsyncClient, intern_user: dict) -> None:
        body = {"date": "2024-01-15", "time_in": "2024-01-15T01:00:00Z", "hours_worked": -1}
        resp = await client.post("/api/dtr/import-entry", json=body, headers=intern_user["headers"])
        assert resp.status_code == 422

    async def test_admin_create_for_user(
        self,
        client: AsyncClient,
        admin_user: dict,
        intern_user: dict,
    ) -> None:
        body = {
            "user_id": str(intern_user["id"]),
            "date": "2024-01-15",
            "time_in": "2024-01-15T01:00:00Z",
        }
        resp = await client.post("/api/dtr/create", json=body, headers=admin_user["headers"])
        assert resp.status_code == 201, resp.text
        assert resp.json()["user_id"] == str(intern_user["id"])

    async def test_admin_create_defaults_to_self(self, client: AsyncClient, admin_user: dict) -> None:
        body = {"date": "2024-01-15", "time_in": "2024-01-15T01:00:00Z"}
        resp = await client.post("/api/dtr/create", json=body, headers=admin_user["headers"])
        assert resp.status_code == 201, resp.text
        assert resp.json()["user_id"] == str(admin_user["id"])

    async def test_create_is_admin_only(self, client: AsyncClient, manager_user: dict) -> None:
        body = {"date": "2024-01-15", "time_in": "2024-01-15T01:00:00Z"}
        resp = await client.post("/api/dtr/create", json=body, headers=manager_user["headers"])
        assert resp.status_code == 403

    async def test_my_entries_newest_first(
        self,
        client: AsyncClient,
        intern_user: dict,
        sample_csv: bytes,
    ) -> None:
        await _upload(client, intern_user["headers"], "dtr.csv", sample_csv)
        resp = await client.get("/api/dtr/me", headers=intern_user["headers"])
        assert [e["date"] for e in resp.json()] == ["2024-01-16", "2024-01-15"]


class TestClock:
    async def test_time_in_then_out(
        self,
        client: AsyncClient,
        intern_user: dict,
    ) -> None:
        resp = await client.post("/api/dtr/timein", headers=intern_user["headers"])
        assert resp.status_code == 201, resp.text
        assert resp.json()["date"] == local_today().isoformat()
        assert resp.json()["time_out"] is None

        again = await client.post("/api/dtr/timein", headers=intern_user["headers"])
        assert again.status_code == 400
        assert again.json()["detail"] == "Already timed in today."

        out = await client.patch("/api/dtr/timeout", json={}, headers=intern_user["headers"])
        assert out.status_code == 200, out.text
        data = out.json()
        assert data["time_out"] is not None
        assert data["accomplishment"] == "No notes provided"
        assert data["hours_worked"] >= 0

    async def test_time_out_without_time_in(self, client: AsyncClient, intern_user: dict) -> None:
        resp = await client.patch(
            "/api/dtr/timeout", json={"accomplishment": "x"}, headers=intern_user["headers"]
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No active DTR entry for today."

    async def test_time_out_computes_hours(
        self,
        client: AsyncClient,
        intern_user: dict,
        db: AsyncSession,
    ) -> None:
        started = now_utc() - timedelta(hours=3)
        db.add(
            DtrEntry(
                user_id=intern_user["id"],
                work_date=local_today(),
                time_in=started,
                hours_worked=0,
                accomplishment="",
            )
        )
        await db.commit()

        resp = await client.patch(
            "/api/dtr/timeout",
            json={"accomplishment": "Wrote docs"},
            headers=intern_user["headers"],
        )
        data = resp.json()
        assert 2.99 <= data["hours_worked"] <= 3.01
        assert data["accomplishment"] == "Wrote docs"


class TestAccomplishments:
    async def _entry(self, client: AsyncClient, headers: dict) -> dict:
        body = {"date": "2024-01-15", "time_in": "2024-01-15T01:00:00Z", "accomplishment": "old"}
        resp = await client.post("/api/dtr/import-entry", json=body, headers=headers)
        return resp.json()

    async def test_edit_own_entry(self, client: AsyncClient, intern_user: dict) -> None:
        entry = await self._entry(client, intern_user["headers"])
        resp = await client.patch(
            f"/api/dtr/{entry['id']}",
            json={"accomplishment": "new"},
            headers=intern_user["headers"],
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["accomplishment"] == "new"

    async def test_cannot_edit_others_entry(
        self,
        client: AsyncClient,
        intern_user: dict,
        user_factory,
    ) -> None:
        entry = await self._entry(client, intern_user["headers"])
        other = await user_factory(role="staff")
        resp = await client.patch(
            f"/api/dtr/{entry['id']}",
            json={"accomplishment": "hijack"},
            headers=other["headers"],
        )
        assert resp.status_code == 404

    async def test_supervisor_reads_team_member(
        self,
        client: AsyncClient,
        manager_user: dict,
        supervised_intern: dict,
        intern_user: dict,
    ) -> None:
        await self._entry(client, supervised_intern["headers"])

        resp = await client.get(
            f"/api/dtr/accomplishments/{supervised_intern['id']}",
            params={"date": "2024-01-15"},
            headers=manager_user["headers"],
        )
        assert resp.status_code == 200, resp.text
        assert [e["accomplishment"] for e in resp.json()] == ["old"]

        outsider = await client.get(
            f"/api/dtr/accomplishments/{intern_user['id']}",
            params={"date": "2024-01-15"},
            headers=manager_user["headers"],
        )
        assert outsider.status_code == 403

    async def test_admin_reads_anyone(
        self,
        client: AsyncClient,
        admin_user: dict,
        intern_user: dict,
    ) -> None:
        await self._entry(client, intern_user["headers"])
        resp = await client.get(
            f"/api/dtr/accomplishments/{intern_user['id']}",
            params={"date": "2024-01-15"},
            headers=admin_user["headers"],
        )
        assert resp.status_code == 200
        assert len(resp.json()) == 1

    async def test_intern_cannot_read_accomplishments(
        self,
        client: AsyncClient,
        intern_user: dict,
    ) -> None:
        resp = await client.get(
            f"/api/dtr/accomplishments/{intern_user['id']}",
            headers=intern_user["headers"],
        )
        assert resp.status_code == 403
