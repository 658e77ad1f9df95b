"""
Document Storage — S3 keys and short-lived presigned URLs for verification
documents. Raw storage keys stay server-side; callers get single-object URLs.
"""
import uuid

import boto3

from app.config import Settings
from app.utils.validators import sanitize_file_name

KEY_PREFIX = "verification"


class DocumentStorage:
    def __init__(self, settings: Settings, client=None):
        self.settings = settings
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                aws_access_key_id=self.settings.AWS_ACCESS_KEY_ID or None,
                aws_secret_access_key=self.settings.AWS_SECRET_ACCESS_KEY or None,
                region_name=self.settings.AWS_REGION,
            )
        return self._client

    @staticmethod
    def owner_prefix(kind: str, user_id: str) -> str:
        return f"{KEY_PREFIX}/{kind}/{user_id}/"

    def build_key(self, kind: str, user_id: str, file_name: str) -> str:
        safe_name = sanitize_file_name(file_name) or "document"
        return f"{self.owner_prefix(kind, user_id)}{uuid.uuid4().hex}-{safe_name}"

    def presigned_get_url(self, key: str, ttl: int | None = None) -> str:
        """Read URL for one object, valid for DOCUMENT_URL_TTL_SECONDS by default."""
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.settings.S3_BUCKET, "Key": key},
            ExpiresIn=ttl or self.settings.DOCUMENT_URL_TTL_SECONDS,
        )

    def presigned_put_url(self, key: str, content_type: str, ttl: int | None = None) -> str:
        """Upload URL for one object with a fixed content type."""
        return self.client.generate_presigned_url(
            "put_object",
            Params={"Bucket": self.settings.S3_BUCKET, "Key": key, "ContentType": content_type},
            ExpiresIn=ttl or self.settings.UPLOAD_URL_TTL_SECONDS,
        )
