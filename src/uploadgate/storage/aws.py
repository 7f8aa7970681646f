"""AWS S3 multipart store for uploadgate.

Drives the native S3 multipart API of one upstream bucket via aiobotocore.
Upload ids and part ETags are S3's own and are passed through verbatim.

Key mapping:
    Objects:  {prefix}{key}

Without an explicit key pair, botocore resolves credentials itself
(environment, shared config files, instance or task role).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING

from aiobotocore.session import AioSession
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from uploadgate.storage.backend import StoreError

if TYPE_CHECKING:
    from uploadgate.config import StorageConfig
    from uploadgate.uploads.models import PartInfo

logger = logging.getLogger(__name__)


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "")
    return type(exc).__name__


class AWSMultipartStore:
    """Multipart store driving one S3 bucket through aiobotocore.

    Attributes:
        bucket_name: Upstream bucket that receives every object.
        region: AWS region of the bucket.
        prefix: Prepended to every object key in the bucket.
    """

    def __init__(
        self,
        bucket_name: str,
        region: str = "us-east-1",
        prefix: str = "",
        endpoint_url: str = "",
        use_path_style: bool = False,
        access_key_id: str = "",
        secret_access_key: str = "",
    ) -> None:
        self.bucket_name = bucket_name
        self.region = region
        self.prefix = prefix
        self.endpoint_url = endpoint_url
        self.use_path_style = use_path_style
        self._session = AioSession()
        if access_key_id and secret_access_key:
            self._session.set_credentials(access_key_id, secret_access_key)
        self._client = None
        self._stack: AsyncExitStack | None = None

    @classmethod
    def from_config(cls, storage: StorageConfig) -> AWSMultipartStore:
        """Build a store from the flattened ``storage.aws`` settings.

        Raises:
            ValueError: If no bucket is configured.
        """
        if not storage.aws_bucket:
            raise ValueError(
                "storage.aws.bucket (or AWS_BUCKET_NAME) is required for the aws backend"
            )
        return cls(
            bucket_name=storage.aws_bucket,
            region=storage.aws_region,
            prefix=storage.aws_prefix,
            endpoint_url=storage.aws_endpoint_url,
            use_path_style=storage.aws_use_path_style,
            access_key_id=storage.aws_access_key_id,
            secret_access_key=storage.aws_secret_access_key,
        )

    def _s3_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _client_kwargs(self) -> dict:
        kwargs: dict = {"region_name": self.region}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if self.use_path_style:
            kwargs["config"] = BotoConfig(s3={"addressing_style": "path"})
        return kwargs

    async def init(self) -> None:
        """Open the S3 client and check that the bucket is reachable.

        Raises:
            ValueError: If ``head_bucket`` fails (missing bucket, no access).
        """
        stack = AsyncExitStack()
        client = await stack.enter_async_context(
            self._session.create_client("s3", **self._client_kwargs())
        )
        try:
            await client.head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            await stack.aclose()
            raise ValueError(
                f"Cannot access upstream S3 bucket '{self.bucket_name}': {_error_code(e)}"
            ) from e

        self._stack, self._client = stack, client
        logger.info(
            "AWS multipart store ready: bucket=%s region=%s prefix=%r",
            self.bucket_name,
            self.region,
            self.prefix,
        )

    async def close(self) -> None:
        if self._stack is not None:
            stack, self._stack, self._client = self._stack, None, None
            await stack.aclose()

    async def initiate(self, key: str) -> str:
        """Create an S3 multipart upload and return its UploadId."""
        try:
            resp = await self._client.create_multipart_upload(
                Bucket=self.bucket_name, Key=self._s3_key(key)
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"CreateMultipartUpload failed: {_error_code(e)}") from e
        return resp["UploadId"]

    async def upload_part(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        stream: AsyncIterator[bytes],
        content_length: int,
    ) -> str:
        """Upload one part and return S3's ETag unchanged (quotes included).

        The body is collected before sending so botocore can sign it with a
        known length.
        """
        chunks = []
        async for chunk in stream:
            chunks.append(chunk)
        data = b"".join(chunks)
        if len(data) != content_length:
            logger.warning(
                "Part %d body is %d bytes, Content-Length said %d",
                part_number,
                len(data),
                content_length,
            )

        try:
            resp = await self._client.upload_part(
                Bucket=self.bucket_name,
                Key=self._s3_key(key),
                UploadId=upload_id,
                PartNumber=part_number,
                Body=data,
                ContentLength=len(data),
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"UploadPart failed: {_error_code(e)}") from e
        return resp["ETag"]

    async def complete(self, key: str, upload_id: str, parts: list[PartInfo]) -> None:
        """Complete the S3 multipart upload with the given ordered parts."""
        manifest = [{"ETag": p.etag, "PartNumber": p.part_number} for p in parts]
        try:
            await self._client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=self._s3_key(key),
                UploadId=upload_id,
                MultipartUpload={"Parts": manifest},
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"CompleteMultipartUpload failed: {_error_code(e)}") from e

    async def abort(self, key: str, upload_id: str) -> None:
        """Abort the S3 multipart upload, discarding stored parts."""
        try:
            await self._client.abort_multipart_upload(
                Bucket=self.bucket_name,
                Key=self._s3_key(key),
                UploadId=upload_id,
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"AbortMultipartUpload failed: {_error_code(e)}") from e
