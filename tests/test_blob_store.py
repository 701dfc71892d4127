from __future__ import annotations

import hashlib
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from geopoint.services.blob_store import BlobStoreUnavailable, LocalBlobStore, UploadedFile


class LocalBlobStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.store = LocalBlobStore(self.root)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_store_is_content_addressed(self) -> None:
        content = b"%PDF-1.4\nsample\n"
        digest = hashlib.sha256(content).hexdigest()

        reference = self.store.store(UploadedFile(file_name="Atestado.PDF", content=content))

        self.assertEqual(reference, f"{digest[:2]}/{digest}.pdf")
        self.assertEqual((self.root / reference).read_bytes(), content)
        self.assertEqual(list(self.root.rglob("*.part")), [])

    def test_same_content_yields_same_reference(self) -> None:
        first = self.store.store(UploadedFile(file_name="a.png", content=b"\x89PNG-1"))
        second = self.store.store(UploadedFile(file_name="copy.png", content=b"\x89PNG-1"))
        self.assertEqual(first, second)

    def test_write_failure_is_reported_as_unavailable(self) -> None:
        upload = UploadedFile(file_name="scan.jpg", content=b"\xff\xd8jpeg")
        with patch.object(Path, "write_bytes", side_effect=OSError("disk full")):
            with self.assertRaises(BlobStoreUnavailable):
                self.store.store(upload)

    def test_uploaded_file_helpers(self) -> None:
        upload = UploadedFile(file_name="photo.JPEG", content=b"1234")
        self.assertEqual(upload.extension, "jpeg")
        self.assertEqual(upload.size_bytes, 4)
        self.assertEqual(UploadedFile(file_name="noext", content=b"").extension, "")

    def test_open_returns_stored_content(self) -> None:
        reference = self.store.store(UploadedFile(file_name="scan.png", content=b"\x89PNG-2"))
        self.assertEqual(self.store.open(reference), b"\x89PNG-2")

    def test_open_outside_root_or_missing_is_unavailable(self) -> None:
        with self.assertRaises(BlobStoreUnavailable):
            self.store.open("../outside.pdf")
        with self.assertRaises(BlobStoreUnavailable):
            self.store.open("ab/missing.pdf")


if __name__ == "__main__":
    unittest.main()
