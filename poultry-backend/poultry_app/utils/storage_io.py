# poultry_app/utils/storage_io.py
"""
Blob storage untuk gambar upload.

Dua backend dengan interface yang sama:
- LocalBlobStore : folder di disk (default, development / single host)
- GCSBlobStore   : Google Cloud Storage bucket

Path objek selalu pakai slash '/' ("user_uploads/ND/42_1700000000000_ab12cd34.jpg"),
meskipun backend jalan di Windows.
"""
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import PurePosixPath

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage as gcs

from poultry_app.core.errors import StorageError

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=31536000"
META_SUFFIX = ".meta.json"


@dataclass
class StoredBlob:
    path: str
    public_url: str
    size: int | None = None
    content_type: str | None = None


def join_blob_path(folder: str, file_name: str) -> str:
    folder = (folder or "").replace("\\", "/").strip("/")
    file_name = (file_name or "").replace("\\", "/").strip("/")
    if not file_name:
        raise StorageError("file name wajib")
    return str(PurePosixPath(folder) / file_name) if folder else file_name


class BlobStore:
    """Interface: upload / download / delete / exists / signed_url / list / public_url."""

    def upload(self, file_name: str, data: bytes, content_type: str, folder: str = "") -> StoredBlob:
        raise NotImplementedError

    def download(self, path: str) -> bytes:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def signed_url(self, path: str, expires_in: int = 3600, action: str = "read", content_type: str | None = None) -> str:
        raise NotImplementedError

    def list(self, prefix: str = "") -> list:
        raise NotImplementedError

    def public_url(self, path: str) -> str:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """
    Simpan blob di <root>/<path>. Metadata (content type, cache control)
    ditulis ke file sidecar "<path>.meta.json".
    """

    SIGNING_SALT = "blob-signed-url"

    def __init__(self, root: str, public_base_url: str, secret_key: str = "dev-secret-key", signed_base_url: str | None = None):
        self.root = os.path.abspath(root)
        self.public_base_url = public_base_url.rstrip("/")
        # route yang melayani token, mis. ".../api/storage/signed"
        self.signed_base_url = signed_base_url.rstrip("/") if signed_base_url else None
        self._serializer = URLSafeTimedSerializer(secret_key, salt=self.SIGNING_SALT)

    def abs_path(self, path: str) -> str:
        rel = (path or "").replace("\\", "/").lstrip("/")
        abs_p = os.path.normpath(os.path.join(self.root, rel))
        # guard anti path traversal
        if not abs_p.startswith(self.root + os.sep):
            raise StorageError(f"Path tidak valid: {path!r}")
        return abs_p

    def upload(self, file_name, data, content_type, folder=""):
        path = join_blob_path(folder, file_name)
        dst = self.abs_path(path)
        tmp = dst + ".part"
        try:
            os.makedirs(os.path.dirname(dst), exist_ok=True)
            with open(tmp, "wb") as f:
                f.write(data)
            os.replace(tmp, dst)
            with open(dst + META_SUFFIX, "w", encoding="utf-8") as f:
                json.dump({"content_type": content_type, "cache_control": CACHE_CONTROL}, f)
        except OSError as e:
            logger.error("Local blob upload failed for %s: %s", path, e)
            raise StorageError("Failed to upload image to storage", detail=str(e)) from e

        logger.info("File uploaded successfully: %s (%d bytes)", path, len(data))
        return StoredBlob(path=path, public_url=self.public_url(path), size=len(data), content_type=content_type)

    def download(self, path):
        try:
            with open(self.abs_path(path), "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise StorageError(f"Blob tidak ditemukan: {path}") from e
        except OSError as e:
            raise StorageError("Failed to read blob", detail=str(e)) from e

    def delete(self, path):
        p = self.abs_path(path)
        try:
            os.remove(p)
        except FileNotFoundError as e:
            raise StorageError(f"Blob tidak ditemukan: {path}") from e
        except OSError as e:
            raise StorageError("Failed to delete blob", detail=str(e)) from e
        try:
            os.remove(p + META_SUFFIX)
        except FileNotFoundError:
            pass

    def exists(self, path):
        return os.path.isfile(self.abs_path(path))

    def read_metadata(self, path) -> dict:
        try:
            with open(self.abs_path(path) + META_SUFFIX, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError):
            return {"content_type": None, "cache_control": CACHE_CONTROL}

    def signed_url(self, path, expires_in=3600, action="read", content_type=None):
        if action != "read":
            raise StorageError("LocalBlobStore hanya mendukung signed URL untuk read")
        if not self.signed_base_url:
            raise StorageError("SIGNED_BASE_URL belum diset")
        self.abs_path(path)
        token = self._serializer.dumps({"path": path, "ttl": int(expires_in)})
        return f"{self.signed_base_url}/{token}"

    def resolve_signed_token(self, token: str) -> str:
        """Token -> absolute path file. Raise StorageError kalau token invalid/kadaluarsa."""
        try:
            payload = self._serializer.loads(token)
            ttl = int(payload.get("ttl", 0))
            self._serializer.loads(token, max_age=ttl)
        except SignatureExpired as e:
            raise StorageError("Signed URL kadaluarsa") from e
        except (BadSignature, AttributeError, TypeError, ValueError) as e:
            raise StorageError("Signed URL tidak valid") from e
        return self.abs_path(payload["path"])

    def list(self, prefix=""):
        prefix = (prefix or "").replace("\\", "/").lstrip("/")
        out = []
        if not os.path.isdir(self.root):
            return out
        for dirpath, _, filenames in os.walk(self.root):
            for fn in filenames:
                if fn.endswith(META_SUFFIX) or fn.endswith(".part"):
                    continue
                full = os.path.join(dirpath, fn)
                rel = os.path.relpath(full, self.root).replace(os.sep, "/")
                if not rel.startswith(prefix):
                    continue
                st = os.stat(full)
                out.append({
                    "name": rel,
                    "size": st.st_size,
                    "updated": datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat(),
                    "content_type": self.read_metadata(rel).get("content_type"),
                })
        return sorted(out, key=lambda x: x["name"])

    def public_url(self, path):
        return f"{self.public_base_url}/{path}"


class GCSBlobStore(BlobStore):
    """Google Cloud Storage; kredensial lewat GOOGLE_APPLICATION_CREDENTIALS."""

    def __init__(self, bucket_name: str, project_id: str | None = None, client=None):
        if not bucket_name:
            raise StorageError("GOOGLE_CLOUD_BUCKET belum diset")
        self.bucket_name = bucket_name
        self._client = client or gcs.Client(project=project_id)
        self._bucket = self._client.bucket(bucket_name)

    def upload(self, file_name, data, content_type, folder=""):
        path = join_blob_path(folder, file_name)
        blob = self._bucket.blob(path)
        blob.cache_control = CACHE_CONTROL
        try:
            # non-resumable: satu request multipart (file kecil, <= budget kompresi)
            blob.upload_from_string(data, content_type=content_type)
        except gcs_exceptions.GoogleAPIError as e:
            logger.error("GCS upload failed for %s: %s", path, e)
            raise StorageError("Failed to upload image to storage", detail=str(e)) from e

        logger.info("File uploaded successfully (private access): %s", path)
        return StoredBlob(path=path, public_url=self.public_url(path), size=len(data), content_type=content_type)

    def download(self, path):
        try:
            return self._bucket.blob(path).download_as_bytes()
        except gcs_exceptions.NotFound as e:
            raise StorageError(f"Blob tidak ditemukan: {path}") from e
        except gcs_exceptions.GoogleAPIError as e:
            raise StorageError("Failed to read blob", detail=str(e)) from e

    def delete(self, path):
        try:
            self._bucket.blob(path).delete()
        except gcs_exceptions.GoogleAPIError as e:
            raise StorageError("Failed to delete blob", detail=str(e)) from e

    def exists(self, path):
        try:
            return bool(self._bucket.blob(path).exists())
        except gcs_exceptions.GoogleAPIError as e:
            raise StorageError("Failed to check blob", detail=str(e)) from e

    def signed_url(self, path, expires_in=3600, action="read", content_type=None):
        method = {"read": "GET", "write": "PUT"}.get(action)
        if method is None:
            raise StorageError(f"Action signed URL tidak dikenal: {action}")
        try:
            return self._bucket.blob(path).generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=int(expires_in)),
                method=method,
                content_type=content_type,
            )
        except (gcs_exceptions.GoogleAPIError, AttributeError, ValueError) as e:
            raise StorageError("Failed to sign URL", detail=str(e)) from e

    def list(self, prefix=""):
        try:
            blobs = self._client.list_blobs(self.bucket_name, prefix=prefix or None)
            return [
                {
                    "name": b.name,
                    "size": b.size,
                    "updated": b.updated.isoformat() if b.updated else None,
                    "content_type": b.content_type,
                }
                for b in blobs
            ]
        except gcs_exceptions.GoogleAPIError as e:
            raise StorageError("Failed to list blobs", detail=str(e)) from e

    def public_url(self, path):
        return f"https://storage.googleapis.com/{self.bucket_name}/{path}"


def build_blob_store(config) -> BlobStore:
    backend = (getattr(config, "STORAGE_BACKEND", "local") or "local").lower()
    if backend == "gcs":
        return GCSBlobStore(config.GOOGLE_CLOUD_BUCKET, project_id=config.GOOGLE_CLOUD_PROJECT_ID)
    if backend == "local":
        return LocalBlobStore(
            config.STORAGE_DIR,
            config.PUBLIC_BASE_URL,
            secret_key=config.SECRET_KEY,
            signed_base_url=getattr(config, "SIGNED_BASE_URL", None),
        )
    raise ValueError(f"STORAGE_BACKEND tidak dikenal: {backend}")
