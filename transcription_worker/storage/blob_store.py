"""S3-compatible blob store client.

Provides get() for raw audio bytes using boto3 against any S3-compatible
endpoint (MinIO, R2, AWS). Calls are blocking; use BlobFetcher to run them
off the event loop.
"""

from __future__ import annotations

import logging
import os

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from transcription_worker.utils.errors import AudioNotFoundError, ConfigError, FetchError

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}
MAX_CLIENT_ATTEMPTS = 3


class S3BlobStore:
    """S3-compatible client for the audio bucket.

    Reads configuration from environment variables:
        BLOB_ENDPOINT, BLOB_BUCKET, BLOB_ACCESS_KEY_ID, BLOB_SECRET_ACCESS_KEY
    """

    def __init__(
        self,
        endpoint_url: str | None = None,
        bucket: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
    ) -> None:
        self.endpoint_url = endpoint_url or os.environ.get("BLOB_ENDPOINT", "")
        self.bucket = bucket or os.environ.get("BLOB_BUCKET", "")
        self.access_key_id = access_key_id or os.environ.get(
            "BLOB_ACCESS_KEY_ID", ""
        )
        self.secret_access_key = secret_access_key or os.environ.get(
            "BLOB_SECRET_ACCESS_KEY", ""
        )

        if not self.endpoint_url:
            raise ConfigError("BLOB_ENDPOINT is required", setting="BLOB_ENDPOINT")
        if not self.bucket:
            raise ConfigError("BLOB_BUCKET is required", setting="BLOB_BUCKET")

        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            region_name="auto",
            config=Config(
                retries={"max_attempts": MAX_CLIENT_ATTEMPTS, "mode": "standard"}
            ),
        )

    def get(self, audio_id: str) -> bytes:
        """Retrieve the audio object stored under audio_id.

        Raises:
            AudioNotFoundError: If no object exists for audio_id.
            FetchError: On any other storage failure.
        """
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=audio_id)
            return response["Body"].read()
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code", "Unknown")
            if error_code in NOT_FOUND_CODES:
                raise AudioNotFoundError(
                    f"Audio '{audio_id}' not found in bucket '{self.bucket}'",
                    audio_id=audio_id,
                ) from exc
            raise FetchError(
                f"Failed to fetch audio '{audio_id}': {error_code}",
                audio_id=audio_id,
            ) from exc
        except BotoCoreError as exc:
            raise FetchError(
                f"Failed to fetch audio '{audio_id}': {exc}",
                audio_id=audio_id,
            ) from exc
