"""Object storage clients: Supabase Storage over HTTPS and an in-memory double."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Protocol
from urllib.error import HTTPError
from urllib.parse import quote
from urllib.request import Request, urlopen

from shared.models import FileMetadata


ProgressCallback = Callable[[float], None]

_UPLOAD_CHUNK_SIZE = 64 * 1024


class StorageRequestError(RuntimeError):
    """Raised when the storage API answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Storage request failed with status {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class StorageClient(Protocol):
    """Defines the operations the services need from object storage."""

    def upload(
        self,
        path: str,
        content: bytes,
        content_type: str,
        *,
        on_progress: ProgressCallback | None = None,
        upsert: bool = False,
    ) -> None:
        ...

    def create_signed_url(self, path: str, expires_in: int = 3600) -> str:
        ...

    def get_metadata(self, path: str) -> FileMetadata:
        ...

    def download(self, path: str) -> bytes:
        ...

    def delete(self, path: str) -> None:
        ...


class _ProgressReader:
    """File-like body that reports the uploaded percentage as it is read."""

    def __init__(self, content: bytes, on_progress: ProgressCallback) -> None:
        self._content = content
        self._on_progress = on_progress
        self._offset = 0
        self._total = len(content)
        self.last_reported: float | None = None

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = self._total - self._offset
        size = min(size, _UPLOAD_CHUNK_SIZE)
        chunk = self._content[self._offset : self._offset + size]
        self._offset += len(chunk)
        if chunk:
            self._report()
        return chunk

    def _report(self) -> None:
        progress = 100.0 if self._total == 0 else (self._offset / self._total) * 100
        self.last_reported = progress
        self._on_progress(progress)

    def finish(self) -> None:
        if self.last_reported != 100.0:
            self.last_reported = 100.0
            self._on_progress(100.0)


def _report_in_chunks(content: bytes, on_progress: ProgressCallback) -> None:
    reader = _ProgressReader(content, on_progress)
    while reader.read(_UPLOAD_CHUNK_SIZE):
        pass
    reader.finish()


def _file_name(path: str) -> str:
    return path.rstrip("/").rsplit("/", maxsplit=1)[-1]


def _is_not_found(status_code: int, body: str) -> bool:
    if status_code == 404:
        return True
    try:
        payload = json.loads(body) if body else {}
    except json.JSONDecodeError:
        return False
    if not isinstance(payload, dict):
        return False
    return str(payload.get("statusCode")) == "404" or payload.get("error") == "not_found"


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    bucket: str = "statements"
    base_url: str = "https://storage.test"
    stored_objects: dict[str, tuple[bytes, str, str]] = field(default_factory=dict)
    failing_paths: set[str] = field(default_factory=set)

    def upload(
        self,
        path: str,
        content: bytes,
        content_type: str,
        *,
        on_progress: ProgressCallback | None = None,
        upsert: bool = False,
    ) -> None:
        if path in self.stored_objects and not upsert:
            raise StorageRequestError(409, "The resource already exists")
        if on_progress is not None:
            _report_in_chunks(content, on_progress)
        created = datetime.now(timezone.utc).isoformat()
        self.stored_objects[path] = (bytes(content), content_type, created)

    def _get(self, path: str) -> tuple[bytes, str, str]:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored

    def create_signed_url(self, path: str, expires_in: int = 3600) -> str:
        self._get(path)
        return f"{self.base_url}/{self.bucket}/{path}?expires={expires_in}"

    def get_metadata(self, path: str) -> FileMetadata:
        content, content_type, created = self._get(path)
        return FileMetadata(
            name=_file_name(path),
            size=len(content),
            content_type=content_type,
            time_created=created,
            full_path=path,
        )

    def download(self, path: str) -> bytes:
        return self._get(path)[0]

    def delete(self, path: str) -> None:
        if path in self.failing_paths:
            raise StorageRequestError(500, "simulated failure")
        self._get(path)
        del self.stored_objects[path]


class SupabaseStorageClient:
    """Supabase Storage REST client authenticated with the service role key."""

    def __init__(self, *, url: str, service_role_key: str, bucket: str) -> None:
        self._base_url = f"{url.rstrip('/')}/storage/v1"
        self._service_role_key = service_role_key
        self.bucket = bucket

    def _object_url(self, path: str, prefix: str = "object") -> str:
        return f"{self._base_url}/{prefix}/{quote(self.bucket)}/{quote(path.lstrip('/'), safe='/')}"

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {self._service_role_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _open(self, request: Request, path: str):
        try:
            return urlopen(request)  # noqa: S310 - URL comes from trusted env config
        except HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")[:500]
            if _is_not_found(exc.code, body):
                raise FileNotFoundError(path) from exc
            raise StorageRequestError(exc.code, body) from exc

    def upload(
        self,
        path: str,
        content: bytes,
        content_type: str,
        *,
        on_progress: ProgressCallback | None = None,
        upsert: bool = False,
    ) -> None:
        reader = _ProgressReader(content, on_progress) if on_progress is not None else None
        request = Request(
            url=self._object_url(path),
            data=reader if reader is not None else content,
            headers=self._headers(
                {
                    "Content-Type": content_type,
                    "Content-Length": str(len(content)),
                    "x-upsert": "true" if upsert else "false",
                }
            ),
            method="POST",
        )
        with self._open(request, path) as response:
            response.read()
        if reader is not None:
            reader.finish()

    def create_signed_url(self, path: str, expires_in: int = 3600) -> str:
        request = Request(
            url=self._object_url(path, prefix="object/sign"),
            data=json.dumps({"expiresIn": expires_in}).encode("utf-8"),
            headers=self._headers({"Content-Type": "application/json", "Accept": "application/json"}),
            method="POST",
        )
        with self._open(request, path) as response:
            payload = json.loads(response.read().decode("utf-8"))
        signed_path = payload.get("signedURL") or payload.get("signedUrl")
        if not signed_path:
            raise StorageRequestError(502, "Signed URL missing from storage response")
        if signed_path.startswith("http"):
            return signed_path
        return f"{self._base_url}/{signed_path.lstrip('/')}"

    def get_metadata(self, path: str) -> FileMetadata:
        request = Request(url=self._object_url(path), headers=self._headers(), method="HEAD")
        with self._open(request, path) as response:
            headers = response.headers
            content_length = headers.get("content-length")
            return FileMetadata(
                name=_file_name(path),
                size=int(content_length) if content_length and content_length.isdigit() else None,
                content_type=headers.get("content-type"),
                time_created=headers.get("last-modified"),
                full_path=path,
            )

    def download(self, path: str) -> bytes:
        request = Request(url=self._object_url(path), headers=self._headers(), method="GET")
        with self._open(request, path) as response:
            return response.read()

    def delete(self, path: str) -> None:
        request = Request(url=self._object_url(path), headers=self._headers(), method="DELETE")
        with self._open(request, path) as response:
            response.read()
