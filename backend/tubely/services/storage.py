import asyncio
import logging
from pathlib import Path

import boto3
from boto3.exceptions import Boto3Error
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from tubely.core.config import get_settings
from tubely.services.errors import StorageFaultError

logger = logging.getLogger(__name__)

_BACKEND_ERRORS = (BotoCoreError, ClientError, Boto3Error)


class StorageService:
    """S3-compatible object storage for uploaded media."""

    def __init__(self) -> None:
        self.settings = get_settings()
        session = boto3.session.Session()
        self.client = session.client(
            "s3",
            endpoint_url=str(self.settings.s3_endpoint) if self.settings.s3_endpoint else None,
            aws_access_key_id=self.settings.s3_access_key,
            aws_secret_access_key=self.settings.s3_secret_key,
            region_name=self.settings.s3_region,
            config=Config(signature_version="s3v4"),
        )
        self.bucket = self.settings.s3_bucket

    async def upload_file(self, path: Path, key: str, content_type: str) -> None:
        """Stream ``path`` to ``key`` from offset 0; never buffers the whole file."""

        def _upload() -> None:
            with path.open("rb") as body:
                body.seek(0)
                self.client.upload_fileobj(
                    body,
                    self.bucket,
                    key,
                    ExtraArgs={"ContentType": content_type},
                )

        try:
            await asyncio.to_thread(_upload)
        except (*_BACKEND_ERRORS, OSError) as exc:
            raise StorageFaultError(f"Upload of {key} failed") from exc

    def create_presigned_get(
        self,
        key: str,
        expires_in: int = 900,
        bucket: str | None = None,
    ) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket or self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except _BACKEND_ERRORS as exc:
            raise StorageFaultError(f"Could not presign {key}") from exc

    async def delete_object(self, key: str, bucket: str | None = None) -> None:
        def _delete() -> None:
            self.client.delete_object(Bucket=bucket or self.bucket, Key=key)

        try:
            await asyncio.to_thread(_delete)
        except _BACKEND_ERRORS as exc:
            raise StorageFaultError(f"Could not delete {key}") from exc


_storage_service: StorageService | None = None


def get_storage_service() -> StorageService:
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service


def reset_storage_service() -> None:
    global _storage_service
    _storage_service = None
