"""
Full-replace sync of the local output directory to an S3 prefix.
"""

import logging
import mimetypes
from pathlib import Path
from typing import List

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from survey_dwca.exceptions import PublishError

logger = logging.getLogger(__name__)

DELETE_BATCH_SIZE = 1000


class S3Publisher:
    """
    Replace everything under s3://bucket/prefix with the local output.

    Usage:
        publisher = S3Publisher(bucket="my-bucket", prefix="dwca")
        publisher.sync(Path("dwc_archive_output"))
    """

    def __init__(self, bucket: str, prefix: str, client=None):
        self.bucket = bucket
        self.prefix = prefix.strip('/')
        self.client = client or boto3.client("s3")

    def _key(self, relative: str) -> str:
        return f"{self.prefix}/{relative}" if self.prefix else relative

    def delete_prefix(self) -> int:
        """Delete every object under the prefix."""
        keys: List[str] = []
        paginator = self.client.get_paginator("list_objects_v2")
        list_prefix = f"{self.prefix}/" if self.prefix else ""
        for page in paginator.paginate(Bucket=self.bucket, Prefix=list_prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))

        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            self.client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
            )

        logger.info("Deleted %d objects under s3://%s/%s", len(keys), self.bucket, list_prefix)
        return len(keys)

    def upload_tree(self, local_dir: Path) -> int:
        """Upload every file under local_dir, keeping relative paths."""
        local_dir = Path(local_dir)
        count = 0
        for path in sorted(p for p in local_dir.rglob("*") if p.is_file()):
            key = self._key(path.relative_to(local_dir).as_posix())
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            self.client.upload_file(
                str(path), self.bucket, key, ExtraArgs={"ContentType": content_type}
            )
            count += 1
        logger.info("Uploaded %d files to s3://%s/%s", count, self.bucket, self.prefix)
        return count

    def sync(self, local_dir: Path) -> int:
        """Delete the remote prefix, then upload the local tree."""
        try:
            self.delete_prefix()
            return self.upload_tree(local_dir)
        except (BotoCoreError, ClientError) as e:
            raise PublishError(
                "S3 sync failed",
                context={"bucket": self.bucket, "prefix": self.prefix},
                original_exception=e,
            )
