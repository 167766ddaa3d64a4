import boto3
from botocore.exceptions import BotoCoreError, ClientError
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
import logging
import re

from apphost.config import Settings, settings as default_settings
from apphost.core.exceptions import ConfigurationError
from apphost.modules.assets.schemas import AssetRecord, AssetUploadResult
from apphost.modules.builds.classifier import file_extension
from apphost.modules.builds.schemas import FileContent

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    # Images
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "ico": "image/x-icon",
    # Fonts
    "woff": "font/woff",
    "woff2": "font/woff2",
    "ttf": "font/ttf",
    "otf": "font/otf",
    "eot": "application/vnd.ms-fontobject",
    # Documents
    "pdf": "application/pdf",
    "zip": "application/zip",
    # Media
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    # Web files
    "html": "text/html",
    "css": "text/css",
    "js": "application/javascript",
    "mjs": "application/javascript",
    "json": "application/json",
    "xml": "application/xml",
    "txt": "text/plain",
}

LONG_CACHE_EXTENSIONS = frozenset({
    "jpg", "jpeg", "png", "gif", "webp", "svg", "ico",
    "woff", "woff2", "ttf", "otf", "eot",
    "mp4", "webm", "mp3", "wav", "pdf", "zip",
})

_HASHED_NAME = re.compile(r"-[a-f0-9]{8}\.")


def content_type_for(path: str) -> str:
    return CONTENT_TYPES.get(file_extension(path), "application/octet-stream")


def cache_control_for(path: str) -> str:
    if "assets/" in path and _HASHED_NAME.search(path):
        return "public, max-age=31536000, immutable"
    if file_extension(path) in LONG_CACHE_EXTENSIONS:
        return "public, max-age=2592000"
    return "public, max-age=3600"


def create_r2_client(settings: Settings):
    """S3 client pointed at the R2 endpoint."""
    if not settings.r2_configured:
        raise ConfigurationError("R2 credentials and endpoint must be configured")
    return boto3.client(
        "s3",
        aws_access_key_id=settings.r2_access_key_id,
        aws_secret_access_key=settings.r2_secret_access_key,
        endpoint_url=settings.r2_endpoint,
        region_name="auto",
    )


def _to_bytes(content: FileContent) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else content


class R2AssetUploader:
    """Uploads built assets for one app/environment to R2 and maps paths to public URLs."""

    def __init__(self, app_id: int, environment: str, settings: Optional[Settings] = None, s3_client=None):
        self.settings = settings or default_settings
        self.app_id = app_id
        self.environment = environment
        self.bucket_name = self.settings.r2_bucket
        self.s3_client = s3_client or create_r2_client(self.settings)

    def object_key(self, path: str) -> str:
        clean_path = path[1:] if path.startswith("/") else path
        return f"app-{self.app_id}/{self.environment}/{clean_path}"

    def public_url_for(self, path: str) -> str:
        key = self.object_key(path)
        if self.settings.r2_public_url:
            return f"{self.settings.r2_public_url.rstrip('/')}/{key}"
        return f"{self.settings.r2_endpoint}/{self.bucket_name}/{key}"

    def upload_file(self, path: str, content: FileContent) -> AssetRecord:
        """Upload a single asset and return its record"""
        body = _to_bytes(content)
        content_type = content_type_for(path)
        self.s3_client.put_object(
            Bucket=self.bucket_name,
            Key=self.object_key(path),
            Body=body,
            ContentType=content_type,
            CacheControl=cache_control_for(path),
            Metadata={
                "app-id": str(self.app_id),
                "uploaded-at": datetime.now(timezone.utc).isoformat(),
            },
        )
        return AssetRecord(path=path, content_type=content_type, url=self.public_url_for(path))

    def _try_upload(self, item: Tuple[str, FileContent]) -> Tuple[str, Optional[AssetRecord], int]:
        path, content = item
        try:
            record = self.upload_file(path, content)
            logger.info(f"[R2Asset] Uploaded: {path} -> {record.url}")
            return path, record, len(_to_bytes(content))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[R2Asset] Failed to upload {path} for app {self.app_id}: {e}")
            return path, None, 0

    def upload(self, asset_files: Dict[str, FileContent]) -> AssetUploadResult:
        """Upload every asset; individual failures are skipped, not raised."""
        logger.info(f"[R2Asset] Processing {len(asset_files)} assets for app {self.app_id}")
        items = sorted(asset_files.items())
        workers = max(1, min(self.settings.asset_upload_concurrency, len(items) or 1))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(self._try_upload, items))

        records: List[AssetRecord] = [record for _, record, _ in outcomes if record is not None]
        failed = [path for path, record, _ in outcomes if record is None]
        uploaded_bytes = sum(size for _, _, size in outcomes)

        logger.info(
            f"[R2Asset] Uploaded {len(records)} assets "
            f"({uploaded_bytes / 1024 / 1024:.2f} MB) for app {self.app_id}, {len(failed)} failed"
        )
        return AssetUploadResult.from_records(records, uploaded_bytes, len(asset_files), failed)

    def verify_connection(self) -> bool:
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[R2Asset] Cannot access R2 bucket {self.bucket_name}: {e}")
            return False

    def delete_app_assets(self) -> int:
        """Delete every object under this app's prefix"""
        prefix = f"app-{self.app_id}/"
        deleted = 0
        paginator = self.s3_client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
            objects = [{"Key": obj["Key"]} for obj in page.get("Contents", [])]
            if not objects:
                continue
            self.s3_client.delete_objects(Bucket=self.bucket_name, Delete={"Objects": objects})
            deleted += len(objects)
        logger.info(f"[R2Asset] Deleted {deleted} assets for app {self.app_id}")
        return deleted
