"""Tests for transcription_worker.storage.blob_store module."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from transcription_worker.storage.blob_store import S3BlobStore
from transcription_worker.utils.errors import AudioNotFoundError, ConfigError, FetchError


class TestS3BlobStoreInit:
    """Tests for S3BlobStore initialization."""

    def test_init_with_explicit_params(self):
        """S3BlobStore builds an S3 client against the given endpoint."""
        with patch("transcription_worker.storage.blob_store.boto3") as mock_boto:
            store = S3BlobStore(
                endpoint_url="http://minio:9000",
                bucket="audio",
                access_key_id="key-id",
                secret_access_key="secret-key",
            )
        assert store.endpoint_url == "http://minio:9000"
        assert store.bucket == "audio"
        kwargs = mock_boto.client.call_args.kwargs
        assert mock_boto.client.call_args.args == ("s3",)
        assert kwargs["endpoint_url"] == "http://minio:9000"
        assert kwargs["aws_access_key_id"] == "key-id"

    def test_init_reads_environment(self):
        env = {"BLOB_ENDPOINT": "http://env-minio", "BLOB_BUCKET": "env-bucket"}
        with (
            patch.dict("os.environ", env),
            patch("transcription_worker.storage.blob_store.boto3"),
        ):
            store = S3BlobStore()
        assert store.endpoint_url == "http://env-minio"
        assert store.bucket == "env-bucket"

    def test_init_missing_endpoint_raises_config_error(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ConfigError, match="BLOB_ENDPOINT is required"):
                S3BlobStore(endpoint_url="", bucket="audio")

    def test_init_missing_bucket_raises_config_error(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ConfigError, match="BLOB_BUCKET is required"):
                S3BlobStore(endpoint_url="http://minio:9000", bucket="")


class TestS3BlobStoreGet:
    """Tests for S3BlobStore.get()."""

    def _make_store(self):
        """Create a store with a mocked boto3 s3 client."""
        with patch("transcription_worker.storage.blob_store.boto3") as mock_boto:
            mock_s3 = MagicMock()
            mock_boto.client.return_value = mock_s3
            store = S3BlobStore(
                endpoint_url="http://minio:9000",
                bucket="audio",
                access_key_id="key-id",
                secret_access_key="secret-key",
            )
        return store, mock_s3

    def test_get_returns_bytes(self):
        store, mock_s3 = self._make_store()
        mock_body = MagicMock()
        mock_body.read.return_value = b"ogg-bytes"
        mock_s3.get_object.return_value = {"Body": mock_body}

        assert store.get("audio-1") == b"ogg-bytes"
        mock_s3.get_object.assert_called_once_with(Bucket="audio", Key="audio-1")

    @pytest.mark.parametrize("code", ["NoSuchKey", "NotFound", "404"])
    def test_missing_object_raises_audio_not_found(self, code):
        store, mock_s3 = self._make_store()
        mock_s3.get_object.side_effect = ClientError(
            {"Error": {"Code": code, "Message": "missing"}}, "GetObject"
        )

        with pytest.raises(AudioNotFoundError) as exc_info:
            store.get("audio-1")
        assert exc_info.value.audio_id == "audio-1"

    def test_other_client_error_raises_fetch_error(self):
        store, mock_s3 = self._make_store()
        mock_s3.get_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "GetObject"
        )

        with pytest.raises(FetchError, match="AccessDenied") as exc_info:
            store.get("audio-1")
        assert not isinstance(exc_info.value, AudioNotFoundError)

    def test_connection_error_raises_fetch_error(self):
        store, mock_s3 = self._make_store()
        mock_s3.get_object.side_effect = EndpointConnectionError(
            endpoint_url="http://minio:9000"
        )

        with pytest.raises(FetchError, match="audio-1"):
            store.get("audio-1")
