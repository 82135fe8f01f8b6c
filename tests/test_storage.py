import io

import pytest
from botocore.exceptions import ClientError

from sdv_pipeline.core.config import StorageSettings
from sdv_pipeline.core.exceptions import FileStorageError
from sdv_pipeline.infrastructure.storage import LocalFileStorage, MemoryStorage, create_storage
from sdv_pipeline.infrastructure.storage.s3_storage import S3Storage


class FakeS3Client:
    def __init__(self):
        self.objects = {}

    def _missing(self, operation):
        return ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, operation)

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self.objects[(Bucket, Key)] = Body

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise self._missing("GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}

    def head_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise self._missing("HeadObject")
        return {}

    def delete_object(self, Bucket, Key):
        self.objects.pop((Bucket, Key), None)


@pytest.fixture(params=["memory", "local", "s3"])
def backend(request, tmp_path):
    if request.param == "memory":
        return MemoryStorage()
    if request.param == "local":
        return LocalFileStorage(str(tmp_path))
    return S3Storage(StorageSettings(aws_s3_bucket="chunks"), client=FakeS3Client())


def test_put_get_delete(backend):
    info = backend.put("tenant-a/file_chunk_001.csv", b"a,b\n")

    assert info.size == 4
    assert backend.exists("tenant-a/file_chunk_001.csv")
    assert backend.get("tenant-a/file_chunk_001.csv") == b"a,b\n"
    assert backend.delete("tenant-a/file_chunk_001.csv") is True
    assert not backend.exists("tenant-a/file_chunk_001.csv")
    assert backend.delete("tenant-a/file_chunk_001.csv") is False


def test_missing_blob_raises(backend):
    with pytest.raises(FileStorageError):
        backend.get("tenant-a/nothing.csv")


def test_local_storage_refuses_paths_outside_root(tmp_path):
    storage = LocalFileStorage(str(tmp_path / "root"))

    with pytest.raises(FileStorageError):
        storage.put("../escape.csv", b"x")


def test_factory_picks_backend(tmp_path):
    assert isinstance(create_storage(StorageSettings(default_storage="memory")), MemoryStorage)
    local = create_storage(StorageSettings(default_storage="local", local_storage_path=str(tmp_path)))
    assert isinstance(local, LocalFileStorage)
    with pytest.raises(FileStorageError):
        create_storage(StorageSettings(default_storage="ftp"))


def test_s3_requires_bucket():
    with pytest.raises(FileStorageError):
        S3Storage(StorageSettings(aws_s3_bucket=None), client=FakeS3Client())
