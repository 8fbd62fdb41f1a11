"""
Tests for batched S3 uploads and deletions.
"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from vault_kb.models.core import VaultFile
from vault_kb.utils.s3_transfer import (MAX_DELETE_BATCH, BatchTransferError, batches, delete_keys, transfer_changes,
                                        upload_files)


@pytest.fixture
def s3():
    client = MagicMock()
    client.delete_objects.return_value = {}
    return client


def test_batches():
    assert [list(batch) for batch in batches([1, 2, 3, 4, 5], 2)] == [[1, 2], [3, 4], [5]]
    assert list(batches([], 3)) == []
    with pytest.raises(ValueError):
        list(batches([1], 0))


class TestDeleteKeys:

    def test_reports_per_key_errors(self, s3):
        s3.delete_objects.return_value = {"Errors": [{"Key": "b.md", "Message": "Access Denied"}]}

        assert delete_keys(s3, "bucket", ["a.md", "b.md"], 10) == 1

    def test_failed_batch_does_not_stop_later_batches(self, s3):
        s3.delete_objects.side_effect = [EndpointConnectionError(endpoint_url="https://s3"), {}]

        failed = delete_keys(s3, "bucket", ["a.md", "b.md", "c.md"], 2)

        assert failed == 2
        assert s3.delete_objects.call_count == 2

    def test_batch_capped_at_service_limit(self, s3):
        delete_keys(s3, "bucket", [f"{i}.md" for i in range(MAX_DELETE_BATCH + 1)], 5000)

        sizes = [len(call.kwargs["Delete"]["Objects"]) for call in s3.delete_objects.call_args_list]
        assert sizes == [MAX_DELETE_BATCH, 1]


class TestUploadFiles:

    def test_uploads_content_keyed_by_path(self, s3, vault):
        failed = upload_files(s3, "bucket", [VaultFile("notes/c.md", vault)], 10)

        assert failed == 0
        s3.put_object.assert_called_once_with(Bucket="bucket", Key="notes/c.md", Body=b"Gamma note about cherries.")

    def test_unreadable_file_skipped_not_failed(self, s3, vault):
        failed = upload_files(s3, "bucket", [VaultFile("gone.md", vault), VaultFile("a.md", vault)], 10)

        assert failed == 0
        assert s3.put_object.call_count == 1


class TestTransferChanges:

    def test_deletions_before_uploads(self, s3, vault):
        transfer_changes(s3, "bucket", [VaultFile("a.md", vault)], ["old.md"], 10)

        names = [name for name, _, _ in s3.mock_calls]
        assert names.index("delete_objects") < names.index("put_object")

    def test_aggregates_failures(self, s3, vault):
        s3.put_object.side_effect = ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject")
        s3.delete_objects.return_value = {"Errors": [{"Key": "old.md", "Message": "nope"}]}

        with pytest.raises(BatchTransferError) as excinfo:
            transfer_changes(s3, "bucket", [VaultFile("a.md", vault), VaultFile("b.md", vault)], ["old.md"], 1)

        assert (excinfo.value.failed, excinfo.value.total) == (3, 3)
        assert "3 of 3" in str(excinfo.value)
