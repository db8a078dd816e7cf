"""
Shared fixtures: an in-memory S3 client and archive builders.
"""
import hashlib
import io
import threading
import zipfile
from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError

from sitepublish.services.aws.operations import S3Operations
from sitepublish.utils.config_loader import ConfigLoader


def client_error(code, message="error", operation="TestOp", status=None):
    response = {"Error": {"Code": code, "Message": message}}
    if status is not None:
        response["ResponseMetadata"] = {"HTTPStatusCode": status}
    return ClientError(response, operation)


def md5_hex(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


class FakeS3Client:
    """
    In-memory stand-in for a boto3 S3 client.

    Implements the calls the engine makes, with S3's listing order,
    pagination, single-part ETags and conditional writes. Failures are
    injected per ``(operation, key)``; key ``"*"`` matches any key.
    """

    def __init__(self, page_size=1000):
        self.page_size = page_size
        self.objects = {}
        self.calls = []
        self._queued = {}
        self._permanent = {}
        self._lock = threading.Lock()

    # failure injection

    def fail_once(self, operation, key, *codes):
        self._queued.setdefault((operation, key), []).extend(codes)

    def fail_always(self, operation, key, code):
        self._permanent[(operation, key)] = code

    def _check(self, operation, key):
        with self._lock:
            self.calls.append((operation, key))
            for candidate in ((operation, key), (operation, "*")):
                if candidate in self._permanent:
                    raise client_error(self._permanent[candidate], operation=operation)
                queue = self._queued.get(candidate)
                if queue:
                    raise client_error(queue.pop(0), operation=operation)

    def calls_of(self, operation):
        return [key for op, key in self.calls if op == operation]

    # helpers

    def seed(self, key, data: bytes, etag=None, content_type="application/octet-stream"):
        self.objects[key] = {
            "Body": data,
            "ETag": f'"{etag or md5_hex(data)}"',
            "ContentType": content_type,
            "CacheControl": None,
            "LastModified": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }

    def data(self, key):
        return self.objects[key]["Body"]

    def hashes(self):
        return {key: obj["ETag"].strip('"') for key, obj in self.objects.items()}

    # boto3 surface

    def list_objects_v2(self, Bucket, ContinuationToken=None, Prefix=""):
        self._check("list", ContinuationToken or "")
        keys = sorted(k for k in self.objects if k.startswith(Prefix))
        start = int(ContinuationToken) if ContinuationToken else 0
        page = keys[start:start + self.page_size]
        response = {
            "IsTruncated": start + self.page_size < len(keys),
            "KeyCount": len(page),
        }
        if page:
            response["Contents"] = [
                {
                    "Key": key,
                    "ETag": self.objects[key]["ETag"],
                    "Size": len(self.objects[key]["Body"]),
                    "LastModified": self.objects[key]["LastModified"],
                }
                for key in page
            ]
        if response["IsTruncated"]:
            response["NextContinuationToken"] = str(start + self.page_size)
        return response

    def head_object(self, Bucket, Key):
        self._check("head", Key)
        if Key not in self.objects:
            raise client_error("404", "Not Found", "HeadObject", status=404)
        obj = self.objects[Key]
        return {"ETag": obj["ETag"], "ContentLength": len(obj["Body"]),
                "ContentType": obj["ContentType"]}

    def get_object(self, Bucket, Key):
        self._check("get", Key)
        if Key not in self.objects:
            raise client_error("NoSuchKey", "The specified key does not exist.", "GetObject")
        obj = self.objects[Key]
        return {"Body": io.BytesIO(obj["Body"]), "ETag": obj["ETag"],
                "ContentLength": len(obj["Body"])}

    def put_object(self, Bucket, Key, Body, ContentType=None, CacheControl=None,
                   ContentMD5=None, IfNoneMatch=None, IfMatch=None):
        self._check("put", Key)
        with self._lock:
            current = self.objects.get(Key)
            if IfNoneMatch == "*" and current is not None:
                raise client_error("PreconditionFailed", "At least one of the pre-conditions "
                                   "you specified did not hold", "PutObject", status=412)
            if IfMatch is not None and (current is None or current["ETag"] != IfMatch):
                raise client_error("PreconditionFailed", "At least one of the pre-conditions "
                                   "you specified did not hold", "PutObject", status=412)
            data = bytes(Body)
            self.objects[Key] = {
                "Body": data,
                "ETag": f'"{md5_hex(data)}"',
                "ContentType": ContentType,
                "CacheControl": CacheControl,
                "LastModified": datetime.now(timezone.utc),
            }
            return {"ETag": self.objects[Key]["ETag"]}

    def delete_object(self, Bucket, Key):
        self._check("delete", Key)
        with self._lock:
            self.objects.pop(Key, None)
        return {}


def pipeline_event(user_parameters="example.com", revision="3f2c1e9a", **overrides):
    data = {
        "actionConfiguration": {"configuration": {
            "FunctionName": "example-com-publish",
            "UserParameters": user_parameters,
        }},
        "inputArtifacts": [{
            "name": "SourceArtifact",
            "revision": revision,
            "location": {"type": "S3", "s3Location": {
                "bucketName": "codepipeline-us-east-1-1234",
                "objectKey": "example-com/SourceArti/AbCdEf.zip",
            }},
        }],
        "outputArtifacts": [],
        "artifactCredentials": {
            "accessKeyId": "AKIAEXAMPLE",
            "secretAccessKey": "secret",
            "sessionToken": "token",
        },
    }
    data.update(overrides)
    return {"CodePipeline.job": {"id": "11111111-abcd-1111-abcd-111111abcdef",
                                 "accountId": "111111111111", "data": data}}


def build_zip(files, markers=(), compression=zipfile.ZIP_DEFLATED) -> bytes:
    """Zip ``{name: bytes}`` plus empty directory-marker members."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression) as archive:
        for name in markers:
            archive.writestr(zipfile.ZipInfo(name), b"")
        for name, data in files.items():
            archive.writestr(name, data)
    return buffer.getvalue()


@pytest.fixture
def fake_s3():
    return FakeS3Client()


@pytest.fixture
def site_ops(fake_s3):
    return S3Operations("example.com", fake_s3)


@pytest.fixture
def config():
    """Effective configuration with no backoff sleeps."""
    return ConfigLoader.load_config(environ={}, overrides={
        "retry_base_delay": 0.0,
        "retry_max_delay": 0.0,
        "report_reserve_seconds": 0.0,
        "workers": 4,
    })


@pytest.fixture
def write_zip(tmp_path):
    """Write a zip of ``files`` to disk and return its path."""
    def _write(files, markers=(), name="site.zip"):
        path = tmp_path / name
        path.write_bytes(build_zip(files, markers))
        return str(path)
    return _write
