"""
S3 bucket teardown.

Buckets created by a stack must be emptied, including every object version
and delete marker, before the stack can delete them. Buckets too large to
empty synchronously can be left to a one-day lifecycle expiration instead.
"""

import logging
from typing import Any, Dict, List

from botocore.exceptions import ClientError

from clients import ClientSet
from errors import ServerError

logger = logging.getLogger(__name__)

MISSING_BUCKET_CODES = ("NoSuchBucket", "ResourceNotFoundException")
DELETE_BATCH_SIZE = 1000

EXPIRE_IN_ONE_DAY_RULE = {
    "ID": "expires-in-1-day",
    "Status": "Enabled",
    "Prefix": "",
    "Expiration": {"Days": 1},
    "NoncurrentVersionExpiration": {"NoncurrentDays": 1},
}


def _is_missing_bucket(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in MISSING_BUCKET_CODES


class BucketDestroyer:
    """Empty, delete, or schedule deletion of S3 buckets."""

    def __init__(self, clients: ClientSet):
        self.clients = clients

    @property
    def s3(self) -> Any:
        return self.clients.s3

    def _delete_batch(self, bucket_name: str, keys: List[Dict[str, str]]) -> None:
        response = self.s3.delete_objects(
            Bucket=bucket_name, Delete={"Objects": keys, "Quiet": True}
        )
        errors = response.get("Errors") or []
        if errors:
            first = errors[0]
            raise ServerError(
                f"Failed to delete {len(errors)} objects from {bucket_name}: "
                f"{first.get('Key')}: {first.get('Message')}",
                bucket=bucket_name,
            )

    def empty(self, bucket_name: str) -> int:
        """
        Delete every object version and delete marker in a bucket.

        Returns:
            Number of versions and markers deleted
        """
        deleted = 0
        paginator = self.s3.get_paginator("list_object_versions")

        for page in paginator.paginate(Bucket=bucket_name):
            keys = [
                {"Key": v["Key"], "VersionId": v["VersionId"]}
                for v in page.get("Versions", []) + page.get("DeleteMarkers", [])
            ]
            for start in range(0, len(keys), DELETE_BATCH_SIZE):
                self._delete_batch(bucket_name, keys[start:start + DELETE_BATCH_SIZE])
            deleted += len(keys)

        logger.info(f"Emptied bucket {bucket_name} ({deleted} versions)")
        return deleted

    def destroy(self, bucket_name: str) -> None:
        """Empty and delete a bucket. A bucket that's already gone is fine."""
        try:
            self.empty(bucket_name)
            self.s3.delete_bucket(Bucket=bucket_name)
        except ClientError as e:
            if not _is_missing_bucket(e):
                raise
            logger.info(f"Bucket {bucket_name} does not exist, nothing to delete")
            return

        logger.info(f"Deleted bucket {bucket_name}")

    def schedule_deletion(self, bucket_name: str) -> None:
        """Expire all current and noncurrent versions in a bucket after a day."""
        self.s3.put_bucket_lifecycle_configuration(
            Bucket=bucket_name,
            LifecycleConfiguration={"Rules": [dict(EXPIRE_IN_ONE_DAY_RULE)]},
        )
        logger.info(f"Bucket {bucket_name} marked for deletion in 1 day")
