"""File storage service: validation, uploads, URLs, metadata and deletes."""

from __future__ import annotations

import logging
import secrets
import string
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from backend.storage.supabase_storage import ProgressCallback, StorageClient, StorageRequestError
from shared import config
from shared.models import (
    BatchDeleteTally,
    FileMetadata,
    FileUrlResult,
    FileValidation,
    ServiceError,
    ServiceErrorCode,
    UploadResult,
)


logger = logging.getLogger(__name__)


ALLOWED_CONTENT_TYPES = (
    "application/pdf",
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
)

FILE_TYPE_PREFIXES = {
    "statement": "statements",
    "export": "exports",
    "profile": "profiles",
}

_BASE36_ALPHABET = string.digits + string.ascii_lowercase
_MAX_DELETE_WORKERS = 8


def _epoch_millis() -> int:
    return int(time.time() * 1000)


def _safe_file_name(file_name: str) -> str:
    return file_name.replace("\\", "_").replace("/", "_").strip()


def validate_file(
    file_name: str | None,
    content_type: str | None,
    size: int | None,
    *,
    max_bytes: int | None = None,
) -> FileValidation:
    """Check one candidate upload against the size and type policy."""

    limit = max_bytes if max_bytes is not None else config.max_upload_bytes()
    if not file_name or size is None or size <= 0:
        return FileValidation(is_valid=False, error="No file selected")

    if size > limit:
        limit_mb = max(1, limit // (1024 * 1024))
        return FileValidation(is_valid=False, error=f"File size must be less than {limit_mb}MB")

    if (content_type or "").lower() not in ALLOWED_CONTENT_TYPES:
        return FileValidation(
            is_valid=False,
            error="File type not supported. Please upload PDF, JPEG, PNG, or WebP files.",
        )

    return FileValidation(is_valid=True)


def generate_file_path(user_id: str, file_type: str, original_name: str) -> str:
    """Build a collision-resistant object path under the folder for `file_type`."""

    extension = original_name.rsplit(".", maxsplit=1)[-1]
    suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(6))
    file_name = f"{_epoch_millis()}_{suffix}.{extension}"
    prefix = FILE_TYPE_PREFIXES.get(file_type, "misc")
    return f"{prefix}/{user_id}/{file_name}"


@dataclass(slots=True)
class StorageService:
    storage: StorageClient
    signed_url_ttl: int = field(default_factory=config.signed_url_ttl_seconds)
    max_upload_bytes: int = field(default_factory=config.max_upload_bytes)

    def validate_file(self, file_name: str | None, content_type: str | None, size: int | None) -> FileValidation:
        return validate_file(file_name, content_type, size, max_bytes=self.max_upload_bytes)

    def _storage_error(self, operation: str, path: str, exc: Exception) -> ServiceError:
        if isinstance(exc, FileNotFoundError):
            return ServiceError(code=ServiceErrorCode.NOT_FOUND, message="File not found", details={"path": path})
        if isinstance(exc, StorageRequestError) and exc.status_code == 409:
            return ServiceError(code=ServiceErrorCode.CONFLICT, message="File already exists", details={"path": path})
        logger.exception("storage_%s_failed path=%s", operation, path)
        return ServiceError(code=ServiceErrorCode.BACKEND_ERROR, message=str(exc))

    def upload_file(
        self,
        content: bytes | None,
        path: str,
        *,
        file_name: str,
        content_type: str,
        on_progress: ProgressCallback | None = None,
        skip_validation: bool = False,
    ) -> UploadResult | ServiceError:
        if not skip_validation:
            validation = self.validate_file(
                file_name,
                content_type,
                len(content) if content is not None else None,
            )
            if not validation.is_valid:
                return ServiceError(code=ServiceErrorCode.VALIDATION_ERROR, message=validation.error or "Invalid file")

        try:
            self.storage.upload(path, content or b"", content_type, on_progress=on_progress)
            metadata = self.storage.get_metadata(path)
            url = self.storage.create_signed_url(path, self.signed_url_ttl)
        except Exception as exc:
            return self._storage_error("upload", path, exc)

        logger.info("file_uploaded path=%s size=%s", path, metadata.size)
        return UploadResult(url=url, metadata=metadata)

    def upload_statement(
        self,
        content: bytes | None,
        *,
        file_name: str,
        content_type: str,
        user_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult | ServiceError:
        path = f"statements/{user_id}/{_epoch_millis()}_{_safe_file_name(file_name)}"
        return self.upload_file(
            content,
            path,
            file_name=file_name,
            content_type=content_type,
            on_progress=on_progress,
        )

    def delete_file(self, path: str) -> bool | ServiceError:
        try:
            self.storage.delete(path)
        except Exception as exc:
            return self._storage_error("delete", path, exc)
        logger.info("file_deleted path=%s", path)
        return True

    def get_file_url(self, path: str) -> FileUrlResult | ServiceError:
        try:
            return FileUrlResult(url=self.storage.create_signed_url(path, self.signed_url_ttl))
        except Exception as exc:
            return self._storage_error("signed_url", path, exc)

    def get_file_metadata(self, path: str) -> FileMetadata | ServiceError:
        try:
            return self.storage.get_metadata(path)
        except Exception as exc:
            return self._storage_error("metadata", path, exc)

    def download_file(self, path: str) -> bytes | ServiceError:
        try:
            return self.storage.download(path)
        except Exception as exc:
            return self._storage_error("download", path, exc)

    def delete_files(self, paths: list[str]) -> BatchDeleteTally:
        """Fire one delete per path, wait for all of them and tally outcomes."""

        if not paths:
            return BatchDeleteTally(successful=0, failed=0, total=0)

        workers = min(_MAX_DELETE_WORKERS, len(paths))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(self.delete_file, paths))

        successful = sum(1 for result in results if result is True)
        tally = BatchDeleteTally(successful=successful, failed=len(paths) - successful, total=len(paths))
        logger.info(
            "files_batch_deleted total=%s successful=%s failed=%s",
            tally.total,
            tally.successful,
            tally.failed,
        )
        return tally
