from __future__ import annotations

import io
import math
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from fastapi import UploadFile
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from geopoint.db import get_db
from geopoint.errors import ApiError
from geopoint.main import app
from geopoint.models import Attachment, Department, EmployeeRequest, JobTitle, RequestStatus, User
from geopoint.routers.requests import read_upload
from geopoint.settings import Settings
from tests.api_support import ApiTestCase
from tests.db_support import OFFICE_LAT, OFFICE_LON, PDF_BYTES, SqliteTestCase


def _utc_today():  # type: ignore[no-untyped-def]
    return datetime.now(timezone.utc).date()


class TimeEntryEndpointTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.employee = self.add_user(email="otavio.pires@example.com")
        self.add_location(name="Paulista HQ")
        self.act_as(self.employee.id)

    def test_punch_returns_created_entry(self) -> None:
        response = self.client.post(
            "/api/time-entries",
            json={"type": "ENTRY", "origin": "MOBILE", "latitude": OFFICE_LAT, "longitude": OFFICE_LON},
        )
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["user_id"], self.employee.id)
        self.assertEqual(body["matched_location_name"], "Paulista HQ")
        self.assertFalse(body["is_manual_adjustment"])
        self.assertIn("X-Request-Id", response.headers)

    def test_outside_geofence_error_envelope(self) -> None:
        far_lat = OFFICE_LAT + math.degrees(1_000 / 6_371_000)
        response = self.client.post(
            "/api/time-entries",
            json={"type": "ENTRY", "latitude": far_lat, "longitude": OFFICE_LON},
            headers={"X-Request-Id": "req-geo-1"},
        )
        self.assertEqual(response.status_code, 403)
        error = response.json()["error"]
        self.assertEqual(error["code"], "OUTSIDE_GEOFENCE")
        self.assertEqual(error["request_id"], "req-geo-1")
        self.assertEqual(error["details"]["latitude"], far_lat)
        self.assertEqual(error["details"]["longitude"], OFFICE_LON)

    def test_non_finite_coordinates_are_validation_errors(self) -> None:
        for body in (
            '{"type": "ENTRY", "latitude": NaN, "longitude": -46.6333}',
            '{"type": "ENTRY", "latitude": -23.5505, "longitude": Infinity}',
            '{"type": "ENTRY", "latitude": 336.45, "longitude": -46.6333}',
        ):
            with self.subTest(body=body):
                response = self.client.post(
                    "/api/time-entries",
                    content=body,
                    headers={"Content-Type": "application/json"},
                )
                self.assertEqual(response.status_code, 422)
                self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_second_punch_within_a_minute_is_too_soon(self) -> None:
        payload = {"type": "ENTRY", "latitude": OFFICE_LAT, "longitude": OFFICE_LON}
        self.assertEqual(self.client.post("/api/time-entries", json=payload).status_code, 201)
        response = self.client.post("/api/time-entries", json={**payload, "type": "EXIT"})
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["error"]["code"], "TOO_SOON")

    def test_employee_cannot_list_someone_elses_entries(self) -> None:
        other = self.add_user(email="paula.faria@example.com")
        response = self.client.get(f"/api/time-entries/user/{other.id}")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "FORBIDDEN")

    def test_database_outage_is_dependency_unavailable(self) -> None:
        outage = OperationalError("SELECT 1", {}, Exception("connection refused"))
        with patch("geopoint.routers.time_entries.list_time_entries", side_effect=outage):
            response = self.client.get(f"/api/time-entries/user/{self.employee.id}")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"]["code"], "DEPENDENCY_UNAVAILABLE")


class RequestEndpointTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.employee = self.add_user(email="rafael.souto@example.com", department=Department.IT)
        for index in range(3):
            self.add_user(email=f"it.colleague{index}@example.com", department=Department.IT)
        self.hr_analyst = self.add_user(
            email="sofia.braga@example.com",
            department=Department.HR,
            job_title=JobTitle.HR_ANALYST,
        )
        self.sales_manager = self.add_user(
            email="tiago.moura@example.com",
            department=Department.SALES,
            job_title=JobTitle.MANAGER,
        )
        self.act_as(self.employee.id)

    def _submit(self, *, request_type: str, target_date, files=None):  # type: ignore[no-untyped-def]
        return self.client.post(
            "/api/requests",
            data={"type": request_type, "target_date": target_date.isoformat(), "justification": "Family trip"},
            files=files,
        )

    def test_vacation_request_is_created_pending(self) -> None:
        response = self._submit(request_type="VACATION", target_date=_utc_today() + timedelta(days=31))
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["request"]["status"], "PENDING")
        self.assertEqual(body["request"]["requester_id"], self.employee.id)
        self.assertEqual(body["failed_attachments"], [])

    def test_short_notice_vacation_is_rejected(self) -> None:
        response = self._submit(request_type="VACATION", target_date=_utc_today() + timedelta(days=10))
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "INSUFFICIENT_LEAD_TIME")

    def test_certificate_without_and_with_proof(self) -> None:
        target = _utc_today() - timedelta(days=1)
        missing = self._submit(request_type="CERTIFICATE", target_date=target)
        self.assertEqual(missing.status_code, 422)
        self.assertEqual(missing.json()["error"]["code"], "PROOF_REQUIRED")

        response = self._submit(
            request_type="CERTIFICATE",
            target_date=target,
            files=[("attachments", ("atestado.pdf", PDF_BYTES, "application/pdf"))],
        )
        self.assertEqual(response.status_code, 201)
        attachments = response.json()["request"]["attachments"]
        self.assertEqual([item["file_name"] for item in attachments], ["atestado.pdf"])
        self.assertEqual(attachments[0]["size_bytes"], len(PDF_BYTES))

    def test_rejected_attachment_type(self) -> None:
        response = self._submit(
            request_type="CERTIFICATE",
            target_date=_utc_today(),
            files=[("attachments", ("notes.txt", b"hello", "text/plain"))],
        )
        self.assertEqual(response.status_code, 415)
        self.assertEqual(response.json()["error"]["code"], "ATTACHMENT_TYPE_REJECTED")

    def test_partial_blob_failure_then_retry(self) -> None:
        self.blob_store.fail_on = {"page2.jpg"}
        response = self._submit(
            request_type="CERTIFICATE",
            target_date=_utc_today(),
            files=[
                ("attachments", ("page1.jpg", b"\xff\xd8jpeg1", "image/jpeg")),
                ("attachments", ("page2.jpg", b"\xff\xd8jpeg2", "image/jpeg")),
            ],
        )
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual([item["file_name"] for item in body["failed_attachments"]], ["page2.jpg"])
        self.assertEqual(body["failed_attachments"][0]["code"], "DEPENDENCY_UNAVAILABLE")

        self.blob_store.fail_on = set()
        request_id = body["request"]["id"]
        retry = self.client.post(
            f"/api/requests/{request_id}/attachments",
            files={"file": ("page2.jpg", b"\xff\xd8jpeg2", "image/jpeg")},
        )
        self.assertEqual(retry.status_code, 201)
        detail = self.client.get(f"/api/requests/{request_id}").json()
        self.assertEqual(sorted(item["file_name"] for item in detail["attachments"]), ["page1.jpg", "page2.jpg"])

    def test_review_flow_hr_accepts_and_second_review_conflicts(self) -> None:
        created = self._submit(request_type="VACATION", target_date=_utc_today() + timedelta(days=35)).json()
        request_id = created["request"]["id"]

        self.act_as(self.sales_manager.id)
        forbidden = self.client.put(f"/api/requests/{request_id}/review", json={"new_status": "ACCEPTED"})
        self.assertEqual(forbidden.status_code, 403)
        self.assertEqual(forbidden.json()["error"]["code"], "FORBIDDEN")

        self.act_as(self.hr_analyst.id)
        accepted = self.client.put(
            f"/api/requests/{request_id}/review",
            json={"new_status": "ACCEPTED", "comment": "Approved"},
        )
        self.assertEqual(accepted.status_code, 200)
        self.assertEqual(accepted.json()["status"], "ACCEPTED")
        self.assertEqual(accepted.json()["reviewer_id"], self.hr_analyst.id)

        again = self.client.put(
            f"/api/requests/{request_id}/review",
            json={"new_status": "REJECTED", "comment": "Oops"},
        )
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["error"]["code"], "ALREADY_FINALIZED")

    def test_review_rejects_pending_as_outcome(self) -> None:
        created = self._submit(request_type="FORGOT_PUNCH", target_date=_utc_today()).json()
        self.act_as(self.hr_analyst.id)
        response = self.client.put(
            f"/api/requests/{created['request']['id']}/review",
            json={"new_status": "PENDING"},
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_delete_pending_then_not_found(self) -> None:
        created = self._submit(
            request_type="CERTIFICATE",
            target_date=_utc_today(),
            files=[("attachments", ("atestado.pdf", PDF_BYTES, "application/pdf"))],
        ).json()
        request_id = created["request"]["id"]

        response = self.client.delete(f"/api/requests/{request_id}")
        self.assertEqual(response.status_code, 204)

        self.db.expire_all()
        stored = self.db.scalar(select(EmployeeRequest).where(EmployeeRequest.id == request_id))
        self.assertTrue(stored.is_deleted)
        attachments = self.db.scalars(select(Attachment).where(Attachment.request_id == request_id)).all()
        self.assertTrue(attachments and all(item.is_deleted for item in attachments))

        missing = self.client.get(f"/api/requests/{request_id}")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["error"]["code"], "NOT_FOUND")

    def test_update_pending_request(self) -> None:
        created = self._submit(request_type="FORGOT_PUNCH", target_date=_utc_today()).json()
        new_date = _utc_today() + timedelta(days=2)
        response = self.client.put(
            f"/api/requests/{created['request']['id']}",
            json={"target_date": new_date.isoformat(), "justification": "Shift swap"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["target_date"], new_date.isoformat())

    def test_pending_list_requires_reviewer(self) -> None:
        self._submit(request_type="FORGOT_PUNCH", target_date=_utc_today())
        denied = self.client.get("/api/requests/pending")
        self.assertEqual(denied.status_code, 403)

        self.act_as(self.hr_analyst.id)
        allowed = self.client.get("/api/requests/pending")
        self.assertEqual(allowed.status_code, 200)
        self.assertEqual(len(allowed.json()), 1)

        self.act_as(self.sales_manager.id)
        scoped = self.client.get("/api/requests/pending")
        self.assertEqual(scoped.json(), [])

    def test_user_request_list_visible_to_owner(self) -> None:
        self._submit(request_type="FORGOT_PUNCH", target_date=_utc_today())
        response = self.client.get(f"/api/requests/user/{self.employee.id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 1)
        self.assertEqual(response.json()[0]["status"], RequestStatus.PENDING.value)

    def test_oversized_upload_is_rejected_without_reading_it_all(self) -> None:
        with patch("geopoint.routers.requests.get_settings", return_value=Settings(max_attachment_bytes=64)):
            response = self._submit(
                request_type="CERTIFICATE",
                target_date=_utc_today(),
                files=[("attachments", ("scan.pdf", b"%PDF" + b"x" * 4096, "application/pdf"))],
            )
        self.assertEqual(response.status_code, 413)
        error = response.json()["error"]
        self.assertEqual(error["code"], "ATTACHMENT_TOO_LARGE")
        self.assertEqual(error["details"], {"file_name": "scan.pdf", "max_bytes": 64})
        self.assertIsNone(self.db.scalar(select(EmployeeRequest.id)))

    def _certificate_with_attachment(self) -> int:
        created = self._submit(
            request_type="CERTIFICATE",
            target_date=_utc_today(),
            files=[("attachments", ("atestado médico.pdf", PDF_BYTES, "application/pdf"))],
        ).json()
        return created["request"]["attachments"][0]["id"]

    def test_owner_and_hr_download_attachment(self) -> None:
        attachment_id = self._certificate_with_attachment()

        response = self.client.get(f"/api/attachments/{attachment_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, PDF_BYTES)
        self.assertEqual(response.headers["content-type"], "application/pdf")
        self.assertIn("filename*=UTF-8''atestado%20m%C3%A9dico.pdf", response.headers["content-disposition"])

        self.act_as(self.hr_analyst.id)
        self.assertEqual(self.client.get(f"/api/attachments/{attachment_id}").content, PDF_BYTES)

    def test_peer_cannot_download_attachment(self) -> None:
        attachment_id = self._certificate_with_attachment()
        peer = self.db.scalar(select(User).where(User.email == "it.colleague0@example.com"))
        self.act_as(peer.id)
        response = self.client.get(f"/api/attachments/{attachment_id}")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "FORBIDDEN")

    def test_attachment_of_deleted_request_is_not_found(self) -> None:
        attachment_id = self._certificate_with_attachment()
        request_id = self.db.scalar(select(Attachment.request_id).where(Attachment.id == attachment_id))
        self.assertEqual(self.client.delete(f"/api/requests/{request_id}").status_code, 204)

        response = self.client.get(f"/api/attachments/{attachment_id}")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "NOT_FOUND")
        self.assertEqual(self.client.get("/api/attachments/9999").status_code, 404)

    def test_unreadable_blob_is_dependency_unavailable(self) -> None:
        attachment_id = self._certificate_with_attachment()
        self.blob_store.stored.clear()
        response = self.client.get(f"/api/attachments/{attachment_id}")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"]["code"], "DEPENDENCY_UNAVAILABLE")


class ReadUploadTests(unittest.TestCase):
    def test_reads_at_most_one_byte_past_the_cap(self) -> None:
        stream = io.BytesIO(b"x" * 100)
        upload = UploadFile(file=stream, filename="big.pdf")
        with patch("geopoint.routers.requests.get_settings", return_value=Settings(max_attachment_bytes=10)):
            with self.assertRaises(ApiError) as ctx:
                read_upload(upload)
        self.assertEqual(ctx.exception.status_code, 413)
        self.assertEqual(ctx.exception.code, "ATTACHMENT_TOO_LARGE")
        self.assertEqual(stream.tell(), 11)

    def test_upload_at_the_cap_is_kept_whole(self) -> None:
        upload = UploadFile(file=io.BytesIO(b"y" * 10), filename=None)
        with patch("geopoint.routers.requests.get_settings", return_value=Settings(max_attachment_bytes=10)):
            result = read_upload(upload)
        self.assertEqual(result.file_name, "upload")
        self.assertEqual(result.content, b"y" * 10)


class MissingTokenTests(SqliteTestCase):
    def setUp(self) -> None:
        super().setUp()
        app.dependency_overrides[get_db] = self.override_get_db()
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        super().tearDown()

    def test_requests_without_bearer_token_are_unauthorized(self) -> None:
        response = self.client.get("/api/requests/pending")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "INVALID_TOKEN")


if __name__ == "__main__":
    unittest.main()
