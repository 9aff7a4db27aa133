"""
Tests for the S3 file store using botocore's Stubber (no network access).
"""

import boto3
import pytest
from botocore.stub import ANY, Stubber

from printdesk_backend.errors import StorageError
from printdesk_backend.s3_service import S3FileStore

BUCKET = "printdesk-test-bucket"


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def store(s3_client):
    return S3FileStore(BUCKET, client=s3_client)


class TestStore:
    def test_upload(self, store, s3_client):
        with Stubber(s3_client) as stubber:
            stubber.add_response(
                "put_object",
                {},
                {"Bucket": BUCKET, "Key": "shops/s1/job_1_a.pdf", "Body": ANY, "ContentType": "application/pdf"},
            )
            assert store.store("shops/s1/job_1_a.pdf", b"%PDF", "application/pdf") == "shops/s1/job_1_a.pdf"
            stubber.assert_no_pending_responses()

    def test_upload_failure_raises_storage_error(self, store, s3_client):
        with Stubber(s3_client) as stubber:
            stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
            with pytest.raises(StorageError) as exc_info:
                store.store("shops/s1/job_1_a.pdf", b"%PDF", "application/pdf")
        assert exc_info.value.operation == "upload"
        assert exc_info.value.path == "shops/s1/job_1_a.pdf"


class TestTemporaryUrl:
    def test_presigned_url_points_at_object(self, store):
        url = store.issue_temporary_url("shops/s1/job_1_a.pdf", 300)
        assert url.startswith("https://")
        assert BUCKET in url
        assert "shops/s1/job_1_a.pdf" in url


class TestDelete:
    def test_delete(self, store, s3_client):
        with Stubber(s3_client) as stubber:
            stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": "shops/s1/job_1_a.pdf"})
            store.delete("shops/s1/job_1_a.pdf")
            stubber.assert_no_pending_responses()

    def test_delete_failure_propagates(self, store, s3_client):
        with Stubber(s3_client) as stubber:
            stubber.add_client_error("delete_object", service_error_code="AccessDenied", http_status_code=403)
            with pytest.raises(StorageError):
                store.delete("shops/s1/job_1_a.pdf")


class TestUnconfigured:
    def test_missing_bucket_raises(self):
        with pytest.raises(StorageError):
            S3FileStore("").issue_temporary_url("a.pdf", 60)
