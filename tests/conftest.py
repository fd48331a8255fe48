import asyncio
import copy
from typing import Any, Callable, Dict, List, Optional

import pytest

from storage_console.database.record_store import BUCKETS, FILES, JsonRecordStore


class FakeProcess:
    """Stands in for asyncio.subprocess.Process. Must be built inside a running loop."""

    def __init__(
        self,
        stdout: bytes = b"",
        stderr: bytes = b"",
        returncode: Optional[int] = 0,
        hang: bool = False,
        ignore_terminate: bool = False,
    ):
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.stdout.feed_data(stdout)
        self.stderr.feed_data(stderr)
        self.returncode = None
        self.pid = 4242
        self.killed = False
        self.terminated = False
        self._exit_code = returncode
        self._ignore_terminate = ignore_terminate
        self._done = asyncio.Event()
        if not hang:
            self._finish()

    def _finish(self):
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._done.set()

    async def wait(self):
        await self._done.wait()
        self.returncode = self._exit_code
        return self.returncode

    def terminate(self):
        self.terminated = True
        if not self._ignore_terminate:
            self._exit_code = -15
            self._finish()

    def kill(self):
        self.killed = True
        self._exit_code = -9
        self._finish()


class FakeSpawner:
    """Replacement for asyncio.create_subprocess_exec that records its calls."""

    def __init__(self, error: Optional[Exception] = None, on_spawn: Optional[Callable] = None, **process_kwargs):
        self.error = error
        self.on_spawn = on_spawn
        self.process_kwargs = process_kwargs
        self.calls: List[Dict[str, Any]] = []
        self.process: Optional[FakeProcess] = None

    async def __call__(self, *args, **kwargs):
        self.calls.append({"args": list(args), **kwargs})
        if self.error is not None:
            raise self.error
        if self.on_spawn is not None:
            self.on_spawn()
        self.process = FakeProcess(**self.process_kwargs)
        return self.process


class FakeProvider:
    """In-memory AWS: stacks, buckets with objects, distributions.

    Deletes are no-ops on missing targets, like the real provider.
    ``fail(method, exc, name=None)`` makes a method raise, optionally only for one target.
    """

    def __init__(self):
        self.stacks: Dict[str, Dict[str, Any]] = {}
        self.stores: Dict[str, List[str]] = {}
        self.distributions: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self._failures: Dict[str, tuple] = {}

    def fail(self, method: str, exc: Exception, name: Optional[str] = None):
        self._failures[method] = (exc, name)

    def _record(self, method: str, target: Any = None):
        self.calls.append((method, target))
        failure = self._failures.get(method)
        if failure and (failure[1] is None or failure[1] == target):
            raise failure[0]

    def called(self, method: str) -> List[Any]:
        return [target for name, target in self.calls if name == method]

    def add_stack(self, s3_bucket_name: str, status: str, outputs: Optional[Dict[str, str]] = None):
        self.stacks[s3_bucket_name] = {
            "stack_name": f"SCR-{s3_bucket_name}",
            "stack_status": status,
            "stack_status_reason": None,
            "creation_time": "2024-01-01T00:00:00+00:00",
            "last_updated_time": None,
            "outputs": outputs or {},
            "resources": [
                {
                    "logical_id": "StorageBucket",
                    "physical_id": s3_bucket_name,
                    "type": "AWS::S3::Bucket",
                    "status": "CREATE_COMPLETE",
                    "status_reason": None,
                    "last_updated": "2024-01-01T00:00:00+00:00",
                }
            ],
        }

    def stack_name(self, s3_bucket_name: str) -> str:
        return f"SCR-{s3_bucket_name}"

    async def describe_stack(self, s3_bucket_name, region=None):
        self._record("describe_stack", s3_bucket_name)
        stack = self.stacks.get(s3_bucket_name)
        return copy.deepcopy(stack) if stack else None

    async def delete_stack(self, s3_bucket_name, region=None):
        self._record("delete_stack", s3_bucket_name)
        self.stacks.pop(s3_bucket_name, None)

    async def object_store_exists(self, bucket_name, region=None):
        self._record("object_store_exists", bucket_name)
        return bucket_name in self.stores

    async def empty_object_store(self, bucket_name, region=None):
        self._record("empty_object_store", bucket_name)
        objects = self.stores.get(bucket_name, [])
        count = len(objects)
        objects.clear()
        return count

    async def delete_object_store(self, bucket_name, region=None):
        self._record("delete_object_store", bucket_name)
        self.stores.pop(bucket_name, None)

    async def delete_distribution(self, distribution_id):
        self._record("delete_distribution", distribution_id)
        self.distributions.pop(distribution_id, None)

    async def list_objects(self, bucket_name, region=None, prefix=None):
        self._record("list_objects", bucket_name)
        keys = self.stores.get(bucket_name, [])
        return [
            {
                "key": key,
                "size": 10,
                "last_modified": "2024-01-01T00:00:00+00:00",
                "etag": '"abc"',
                "storage_class": "STANDARD",
            }
            for key in keys
            if not prefix or key.startswith(prefix)
        ]

    async def delete_object(self, bucket_name, object_key, region=None):
        self._record("delete_object", object_key)
        if object_key in self.stores.get(bucket_name, []):
            self.stores[bucket_name].remove(object_key)

    async def move_object(self, bucket_name, source_key, destination_key, region=None):
        self._record("move_object", source_key)
        objects = self.stores.setdefault(bucket_name, [])
        if source_key in objects:
            objects.remove(source_key)
        objects.append(destination_key)

    async def generate_upload_url(self, bucket_name, object_key, content_type, region=None):
        self._record("generate_upload_url", object_key)
        return f"https://{bucket_name}.s3.amazonaws.com/{object_key}?X-Amz-Signature=test"

    async def list_distributions(self):
        self._record("list_distributions")
        return list(self.distributions.values())


async def collect(events) -> list:
    return [event async for event in events]


def make_bucket(**overrides) -> Dict[str, Any]:
    bucket = {
        "id": "bucket-1",
        "project_id": "project-1",
        "name": "media",
        "s3_bucket_name": "scr-media-1700000000000",
        "s3_bucket_arn": "",
        "cloudfront_domain": "",
        "cloudfront_distribution_id": "",
        "region": "eu-west-1",
        "status": "pending",
        "config": {"versioning": False, "encryption": "s3", "backup_enabled": False, "max_file_size_mb": 100},
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": "2024-01-01T00:00:00+00:00",
    }
    bucket.update(overrides)
    return bucket


@pytest.fixture
def store(tmp_path):
    return JsonRecordStore(str(tmp_path / "data"))


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def bucket(store):
    record = make_bucket()
    store.append(BUCKETS, record)
    return record


@pytest.fixture
def file_records(store, bucket):
    records = [
        {"id": f"file-{i}", "project_id": "project-1", "bucket_name": bucket["s3_bucket_name"],
         "object_key": f"project-1/{i}-a.png", "size": 10, "mime_type": "image/png",
         "cloudfront_url": "", "linked_model": "", "linked_model_id": "",
         "created_at": "2024-01-01T00:00:00+00:00"}
        for i in range(2)
    ]
    records.append({**records[0], "id": "file-other", "bucket_name": "scr-other-1"})
    for record in records:
        store.append(FILES, record)
    return records
