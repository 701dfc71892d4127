from __future__ import annotations

from fastapi.testclient import TestClient

from geopoint.db import get_db
from geopoint.main import app
from geopoint.security import get_caller_id
from geopoint.services.blob_store import get_blob_store
from tests.db_support import MemoryBlobStore, SqliteTestCase


class ApiTestCase(SqliteTestCase):
    """TestClient against the real app with the database, caller and blob store swapped out."""

    def setUp(self) -> None:
        super().setUp()
        self.blob_store = MemoryBlobStore()
        self.caller_id: int | None = None
        app.dependency_overrides[get_db] = self.override_get_db()
        app.dependency_overrides[get_caller_id] = lambda: self.caller_id
        app.dependency_overrides[get_blob_store] = lambda: self.blob_store
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        super().tearDown()

    def act_as(self, user_id: int) -> None:
        self.caller_id = user_id
