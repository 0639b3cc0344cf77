import io

import boto3
import pytest

from botocore.response import StreamingBody
from botocore.stub import Stubber

from block_store.blocks_container import BlocksContainer, to_bytes
from block_store.metadata import FileMetadata
from block_store.s3_storage import S3Storage
from block_store.storage import BackendError


BUCKET = "blockbucket"
NAMESPACE = "dev1"


def body(data: bytes) -> StreamingBody:
    return StreamingBody(io.BytesIO(data), len(data))


@pytest.fixture
def s3_client():
    """Offline boto3 client; every call is answered by a Stubber."""
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def storage(s3_client):
    storage = S3Storage(bucket=BUCKET, namespace=NAMESPACE, client=s3_client, read_size=8)
    storage.initialize(4)   # buffer_size = 2
    return storage


@pytest.fixture
def stubber(storage):
    with Stubber(storage.s3) as stub:
        yield stub
        stub.assert_no_pending_responses()


def test_read_missing_record_returns_none(storage, stubber):
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

    assert storage.retrieve_aggregated_blocks(999) is None


def test_read_failure_is_a_backend_error(storage, stubber):
    stubber.add_client_error("get_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(BackendError):
        storage.retrieve_block(0)
    # A failure must not be remembered as an absence.
    assert 0 not in storage._negative_cache


def test_exists_uses_head_object(storage, stubber):
    key = f"stores/{NAMESPACE}/blocks/3"
    stubber.add_response("head_object", {}, {"Bucket": BUCKET, "Key": key})
    stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)

    assert storage.is_aggregated_block_available(3) is True
    assert storage.is_aggregated_block_available(4) is False


def test_flush_and_read_back_blocks(storage, stubber):
    expected = BlocksContainer(2)
    expected.put(5)
    expected.put(6)
    blob = to_bytes(expected)
    key = f"stores/{NAMESPACE}/blocks/0"

    stubber.add_response("put_object", {}, {"Bucket": BUCKET, "Key": key, "Body": blob})
    stubber.add_response("get_object", {"Body": body(blob)}, {"Bucket": BUCKET, "Key": key})

    k0 = storage.store_block(5, 0)
    k1 = storage.store_block(6, 0)
    storage.clear_caches()

    assert storage.retrieve_block(k1) == 6
    assert storage.retrieve_block(k0) == 5  # served from the read cache


def test_write_failure_is_a_backend_error(storage, stubber):
    stubber.add_client_error("put_object", service_error_code="SlowDown", http_status_code=503)

    storage.store_block(1, 2)
    with pytest.raises(BackendError):
        storage.flush_all()


def test_metadata_roundtrip_and_listing(storage, stubber):
    metadata = FileMetadata(file_size=4, block_keys=[0, 1], stripe_size=1, parity_size=1)
    raw = metadata.to_json().encode("utf-8")
    prefix = f"stores/{NAMESPACE}/metadata/"

    stubber.add_response(
        "put_object", {}, {"Bucket": BUCKET, "Key": prefix + "/dir/a.txt", "Body": raw}
    )
    stubber.add_response(
        "get_object", {"Body": body(raw)}, {"Bucket": BUCKET, "Key": prefix + "/dir/a.txt"}
    )
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
    stubber.add_response(
        "list_objects_v2",
        {"Contents": [{"Key": prefix + "/z"}, {"Key": prefix + "rel"}, {"Key": prefix + "/dir/a.txt"}],
         "IsTruncated": False},
        {"Bucket": BUCKET, "Prefix": prefix},
    )

    storage.set_file_metadata("/dir/a.txt", metadata)
    assert storage.get_file_metadata("/dir/a.txt") == metadata
    assert storage.get_file_metadata("/missing") is None
    assert storage.get_all_file_paths() == ["/dir/a.txt", "/z", "rel"]


def test_relative_and_absolute_paths_are_distinct(storage, stubber):
    raw = FileMetadata().to_json().encode("utf-8")
    prefix = f"stores/{NAMESPACE}/metadata/"

    stubber.add_response("put_object", {}, {"Bucket": BUCKET, "Key": prefix + "a", "Body": raw})
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

    storage.set_file_metadata("a", FileMetadata())
    assert storage.get_file_metadata("/a") is None
