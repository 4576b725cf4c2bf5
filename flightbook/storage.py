"""
Object storage for generated tickets.

Two bucket flavours share one small interface (upload, download, list,
exists, public_url, signed_url, remove):

- LocalBucket keeps objects on disk under STORAGE_ROOT/<bucket>/ and serves
  them through the storage blueprint below.
- S3Bucket maps the same calls onto a boto3 S3 client.

Object paths are always "/"-separated keys such as
"<user_id>/<booking_id>/ticket.json".
"""
import logging
import mimetypes
import os
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from flask import Blueprint, abort, current_app, send_file, request, url_for
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

logger = logging.getLogger(__name__)

storage_bp = Blueprint("storage", __name__, url_prefix="/storage")

EXTENSION_KEY = "flightbook.buckets"


class StorageError(Exception):
    pass


class ObjectNotFound(StorageError):
    pass


def _clean_key(path: str) -> str:
    parts = [p for p in (path or "").replace("\\", "/").split("/") if p]
    if not parts or any(p in (".", "..") for p in parts):
        raise StorageError(f"Invalid object path: {path!r}")
    return "/".join(parts)


def _content_type_for(path: str) -> str:
    guessed, _ = mimetypes.guess_type(path)
    return guessed or "application/octet-stream"


class LocalBucket:
    def __init__(self, name: str, root: str, public: bool = False, secret_key: str = ""):
        self.name = name
        self.root = Path(root) / name
        self.public = public
        self._signer = URLSafeTimedSerializer(secret_key or "storage", salt="flightbook-storage")

    def _file(self, path: str) -> Path:
        return self.root.joinpath(*_clean_key(path).split("/"))

    def upload(self, path: str, data, content_type: str | None = None, upsert: bool = True) -> dict:
        target = self._file(path)
        if target.exists() and not upsert:
            raise StorageError("The resource already exists")
        if isinstance(data, str):
            data = data.encode("utf-8")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(str(e)) from e
        return {"path": _clean_key(path), "content_type": content_type or _content_type_for(path)}

    def download(self, path: str) -> bytes:
        target = self._file(path)
        if not target.is_file():
            raise ObjectNotFound(f"Object not found: {path}")
        return target.read_bytes()

    def list(self, prefix: str = "", limit: int = 10) -> list[dict]:
        folder = self.root.joinpath(*_clean_key(prefix).split("/")) if prefix else self.root
        if not folder.is_dir():
            return []
        entries = []
        for child in sorted(folder.iterdir(), key=lambda p: p.name)[:limit]:
            stat = child.stat()
            entries.append({
                "name": child.name,
                "size": stat.st_size if child.is_file() else None,
                "updated_at": stat.st_mtime,
            })
        return entries

    def exists(self, path: str) -> bool:
        return self._file(path).is_file()

    def remove(self, path: str) -> None:
        target = self._file(path)
        if target.is_file():
            target.unlink()

    def public_url(self, path: str) -> str | None:
        if not self.public:
            return None
        return url_for("storage.serve", bucket=self.name, key=_clean_key(path))

    def signed_url(self, path: str, expires_in: int) -> str:
        key = _clean_key(path)
        token = self._signer.dumps({"b": self.name, "k": key, "ttl": int(expires_in)})
        return url_for("storage.serve", bucket=self.name, key=key, token=token)

    # each url carries its own lifetime; the signing timestamp is checked against it
    def verify_token(self, token: str, key: str) -> bool:
        try:
            data = self._signer.loads(token)
            if data.get("b") != self.name or data.get("k") != key:
                return False
            self._signer.loads(token, max_age=int(data.get("ttl", 0)))
        except (SignatureExpired, BadSignature):
            return False
        return True


class S3Bucket:
    def __init__(self, name: str, bucket: str, region: str = "", public: bool = False, client=None):
        self.name = name
        self.bucket = bucket
        self.region = region
        self.public = public
        self.client = client or boto3.client("s3", region_name=region or None)

    def upload(self, path: str, data, content_type: str | None = None, upsert: bool = True) -> dict:
        key = _clean_key(path)
        if not upsert and self.exists(key):
            raise StorageError("The resource already exists")
        if isinstance(data, str):
            data = data.encode("utf-8")
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or _content_type_for(key),
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(str(e)) from e
        return {"path": key, "content_type": content_type or _content_type_for(key)}

    def download(self, path: str) -> bytes:
        key = _clean_key(path)
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                raise ObjectNotFound(f"Object not found: {path}") from e
            raise StorageError(str(e)) from e
        except BotoCoreError as e:
            raise StorageError(str(e)) from e
        return obj["Body"].read()

    def list(self, prefix: str = "", limit: int = 10) -> list[dict]:
        folder = _clean_key(prefix) + "/" if prefix else ""
        try:
            resp = self.client.list_objects_v2(Bucket=self.bucket, Prefix=folder, MaxKeys=limit)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(str(e)) from e
        entries = []
        for item in resp.get("Contents", []):
            name = item["Key"][len(folder):]
            if not name or "/" in name:
                continue
            entries.append({"name": name, "size": item.get("Size"), "updated_at": item.get("LastModified")})
        return entries

    def exists(self, path: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=_clean_key(path))
        except (ClientError, BotoCoreError):
            return False
        return True

    def remove(self, path: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=_clean_key(path))
        except (ClientError, BotoCoreError) as e:
            raise StorageError(str(e)) from e

    def public_url(self, path: str) -> str | None:
        if not self.public:
            return None
        host = f"{self.bucket}.s3.{self.region}.amazonaws.com" if self.region else f"{self.bucket}.s3.amazonaws.com"
        return f"https://{host}/{_clean_key(path)}"

    def signed_url(self, path: str, expires_in: int) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": _clean_key(path)},
                ExpiresIn=int(expires_in),
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(str(e)) from e


def _make_bucket(app, name: str, public: bool):
    backend = (app.config.get("STORAGE_BACKEND") or "local").lower()
    if backend == "s3":
        return S3Bucket(
            name,
            bucket=app.config.get("STORAGE_S3_BUCKET") or name,
            region=app.config.get("STORAGE_S3_REGION") or "",
            public=public,
        )
    if backend != "local":
        raise StorageError(f"Unknown storage backend: {backend}")
    root = app.config.get("STORAGE_ROOT") or "storage"
    if not os.path.isabs(root):
        root = os.path.join(app.instance_path, root)
    return LocalBucket(name, root, public=public, secret_key=app.config.get("SECRET_KEY") or "")


def init_storage(app):
    app.extensions[EXTENSION_KEY] = {}
    tickets = app.config.get("TICKETS_BUCKET", "tickets")
    app.extensions[EXTENSION_KEY][tickets] = _make_bucket(app, tickets, app.config.get("TICKETS_BUCKET_PUBLIC", False))
    logger.info("Storage backend %s ready (bucket %s)", app.config.get("STORAGE_BACKEND", "local"), tickets)


def get_bucket(name: str | None = None):
    name = name or current_app.config.get("TICKETS_BUCKET", "tickets")
    buckets = current_app.extensions.setdefault(EXTENSION_KEY, {})
    if name not in buckets:
        buckets[name] = _make_bucket(current_app, name, False)
    return buckets[name]


# serves local-bucket objects: public buckets directly, private ones with a valid token
@storage_bp.get("/<bucket>/<path:key>")
def serve(bucket, key):
    buckets = current_app.extensions.get(EXTENSION_KEY, {})
    b = buckets.get(bucket)
    if not isinstance(b, LocalBucket):
        abort(404)
    try:
        key = _clean_key(key)
    except StorageError:
        abort(404)
    if not b.public:
        token = request.args.get("token") or ""
        if not token or not b.verify_token(token, key):
            abort(403)
    if not b.exists(key):
        abort(404)
    return send_file(b._file(key), mimetype=_content_type_for(key))
