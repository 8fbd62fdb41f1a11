"""
Batched upload and deletion of vault files in S3.
"""

from typing import Iterator, List, Sequence, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from ..models.core import VaultFile
from .logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

# S3 DeleteObjects accepts at most 1000 keys per request
MAX_DELETE_BATCH = 1000


class BatchTransferError(Exception):
    """Raised after all batches were attempted and some items failed."""

    def __init__(self, failed: int, total: int):
        self.failed = failed
        self.total = total
        super().__init__(f'{failed} of {total} S3 transfers failed')


def batches(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError('batch size must be >= 1')
    for start in range(0, len(items), size):
        yield items[start:start + size]


def delete_keys(s3, bucket: str, keys: Sequence[str], batch_size: int) -> int:
    """
    Delete keys from a bucket, one DeleteObjects request per batch.

    Args:
        s3: S3 client
        bucket: Bucket name
        keys: Object keys to delete
        batch_size: Keys per request

    Returns:
        Number of keys that could not be deleted
    """
    failed = 0
    for batch in batches(list(keys), min(batch_size, MAX_DELETE_BATCH)):
        try:
            response = s3.delete_objects(Bucket=bucket, Delete={'Objects': [{'Key': key} for key in batch], 'Quiet': True})
            errors = response.get('Errors', [])
            for error in errors:
                logger.error(f"Error deleting {error.get('Key')} from S3: {error.get('Message')}")
            failed += len(errors)
        except (ClientError, BotoCoreError) as e:
            logger.error(f'Error deleting batch of {len(batch)} files from S3: {e}')
            failed += len(batch)

    logger.info(f'Deleted {len(keys) - failed} of {len(keys)} files from S3')
    return failed


def upload_files(s3, bucket: str, files: Sequence[VaultFile], batch_size: int) -> int:
    """
    Upload vault files to a bucket, keyed by their vault path.

    Files that cannot be read are skipped with a warning and not counted as failures.

    Args:
        s3: S3 client
        bucket: Bucket name
        files: Files to upload
        batch_size: Files per batch

    Returns:
        Number of files whose upload failed
    """
    failed = 0
    uploaded = 0
    for batch in batches(list(files), batch_size):
        for file in batch:
            try:
                body = file.read()
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f'Skipping upload of {file.path}: {e}')
                continue

            try:
                s3.put_object(Bucket=bucket, Key=file.path, Body=body.encode('utf-8'))
                uploaded += 1
            except (ClientError, BotoCoreError) as e:
                logger.error(f'Error uploading {file.path} to S3: {e}')
                failed += 1

    logger.info(f'Uploaded {uploaded} of {len(files)} files to S3')
    return failed


def transfer_changes(s3, bucket: str, changed_files: Sequence[VaultFile], deleted_paths: Sequence[str],
                     batch_size: int) -> None:
    """
    Apply deletions then uploads; every batch is attempted before failures are reported.

    Raises:
        BatchTransferError: If any deletion or upload failed
    """
    failed = delete_keys(s3, bucket, deleted_paths, batch_size)
    failed += upload_files(s3, bucket, changed_files, batch_size)

    if failed:
        raise BatchTransferError(failed, len(deleted_paths) + len(changed_files))


def list_keys(s3, bucket: str) -> List[str]:
    paginator = s3.get_paginator('list_objects_v2')
    return [item['Key'] for page in paginator.paginate(Bucket=bucket) for item in page.get('Contents', [])]
