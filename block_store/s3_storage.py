from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from block_store.metadata import FileMetadata
from block_store.storage import BackendError, StorageBackend

_NOT_FOUND_CODES = ("NoSuchKey", "404", "NotFound")


class S3Storage(StorageBackend):
    """
    S3-backed storage (AWS or MinIO).

    Aggregated records are stored under:
        stores/<namespace>/blocks/<aggregation_key>

    File metadata is stored as JSON under:
        stores/<namespace>/metadata/<path>

    Missing objects mean "not found"; any other S3 error is reported as a
    BackendError.
    """

    def __init__(
            self,
            bucket: str,
            namespace: str = "default",
            endpoint_url: Optional[str] = None,
            region: str = "us-east-1",
            aws_access_key_id: Optional[str] = None,
            aws_secret_access_key: Optional[str] = None,
            client=None,
            **kwargs,
    ) -> None:
        """
        Args:
            bucket: S3 bucket name.
            namespace: logical store name inside the bucket.
            endpoint_url: Optional MinIO URL (e.g., http://localhost:9000)
            region: AWS region (ignored for MinIO).
            aws_access_key_id / aws_secret_access_key: credentials.
            client: Pre-built boto3 S3 client; the other connection
                    arguments are ignored when given.
        """
        super().__init__(**kwargs)
        self.bucket = bucket
        self.namespace = namespace

        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                region_name=region,
                aws_access_key_id=aws_access_key_id,
                aws_secret_access_key=aws_secret_access_key,
            )
        self.s3 = client

    # ------------------------
    # Internal helpers
    # ------------------------

    def _record_key(self, agg_key: int) -> str:
        """
        S3 key for this aggregated record.
        """
        return f"stores/{self.namespace}/blocks/{agg_key}"

    def _metadata_prefix(self) -> str:
        return f"stores/{self.namespace}/metadata/"

    def _metadata_key(self, path: str) -> str:
        # Paths are kept exactly as given; "/a" and "a" are different files.
        return self._metadata_prefix() + path

    def _get(self, key: str) -> Optional[bytes]:
        try:
            resp = self.s3.get_object(Bucket=self.bucket, Key=key)
            return resp["Body"].read()
        except ClientError as e:
            if e.response["Error"]["Code"] in _NOT_FOUND_CODES:
                return None
            logger.warning(f"S3Storage: get {key} failed: {e}")
            raise BackendError(f"cannot read s3://{self.bucket}/{key}") from e
        except BotoCoreError as e:
            logger.warning(f"S3Storage: get {key} failed: {e}")
            raise BackendError(f"cannot read s3://{self.bucket}/{key}") from e

    def _put(self, key: str, body: bytes) -> None:
        try:
            self.s3.put_object(Bucket=self.bucket, Key=key, Body=body)
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"S3Storage: put {key} failed: {e}")
            raise BackendError(f"cannot write s3://{self.bucket}/{key}") from e

    # ------------------------
    # Aggregated records
    # ------------------------

    def retrieve_aggregated_blocks(self, agg_key: int) -> Optional[bytes]:
        return self._get(self._record_key(agg_key))

    def store_aggregated_blocks(self, agg_key: int, blob: bytes) -> None:
        self._put(self._record_key(agg_key), blob)

    def is_aggregated_block_available(self, agg_key: int) -> bool:
        key = self._record_key(agg_key)

        try:
            self.s3.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response["Error"]["Code"] in _NOT_FOUND_CODES:
                return False
            raise BackendError(f"cannot stat s3://{self.bucket}/{key}") from e
        except BotoCoreError as e:
            raise BackendError(f"cannot stat s3://{self.bucket}/{key}") from e

        return True

    # ------------------------
    # File metadata
    # ------------------------

    def get_file_metadata(self, path: str) -> Optional[FileMetadata]:
        raw = self._get(self._metadata_key(path))
        if raw is None:
            return None
        return FileMetadata.from_json(raw.decode("utf-8"))

    def set_file_metadata(self, path: str, metadata: FileMetadata) -> None:
        self._put(self._metadata_key(path), metadata.to_json().encode("utf-8"))

    def get_all_file_paths(self) -> List[str]:
        prefix = self._metadata_prefix()
        paths = []

        try:
            paginator = self.s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    paths.append(obj["Key"][len(prefix):])
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"cannot list s3://{self.bucket}/{prefix}") from e

        return sorted(paths)

    def disconnect(self) -> None:
        self.clear_caches()
        self.s3.close()
