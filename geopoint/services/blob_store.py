from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from geopoint.settings import get_attachment_storage_path

logger = logging.getLogger("geopoint.blob_store")


@dataclass(frozen=True, slots=True)
class UploadedFile:
    file_name: str
    content: bytes
    content_type: str | None = None

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return Path(self.file_name).suffix.lower().lstrip(".")


class BlobStoreUnavailable(Exception):
    pass


class BlobStore(Protocol):
    def store(self, upload: UploadedFile) -> str:
        """Persist the content and return an opaque reference to it."""
        ...

    def open(self, reference: str) -> bytes:
        """Return the content previously stored under ``reference``."""
        ...


class LocalBlobStore:
    """Content-addressable store on the local filesystem.

    Files land under ``<root>/<sha256[:2]>/<sha256><ext>``; storing the same
    bytes twice yields the same reference.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def store(self, upload: UploadedFile) -> str:
        digest = hashlib.sha256(upload.content).hexdigest()
        suffix = f".{upload.extension}" if upload.extension else ""
        reference = f"{digest[:2]}/{digest}{suffix}"
        target = self.root / reference
        try:
            if not target.exists():
                target.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = target.with_name(f"{target.name}.part")
                tmp_path.write_bytes(upload.content)
                tmp_path.replace(target)
        except OSError as exc:
            logger.exception(
                "blob_store_write_failed",
                extra={"file_name": upload.file_name, "reference": reference},
            )
            raise BlobStoreUnavailable(str(exc)) from exc
        return reference

    def open(self, reference: str) -> bytes:
        target = (self.root / reference).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise BlobStoreUnavailable(f"reference outside store: {reference}")
        try:
            return target.read_bytes()
        except OSError as exc:
            logger.exception("blob_store_read_failed", extra={"reference": reference})
            raise BlobStoreUnavailable(str(exc)) from exc


def get_blob_store() -> BlobStore:
    return LocalBlobStore(get_attachment_storage_path())
