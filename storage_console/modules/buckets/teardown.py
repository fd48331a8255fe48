"""Full removal of a bucket: files -> cdn -> store -> metadata.

Every step reports ``running`` then ``done`` or ``error`` and a failing step
never stops the ones after it. The provider deletes are no-ops on targets that
are already gone, so a partial teardown is recovered by running it again.
"""
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from storage_console.cloud.aws_provider import AwsProvider
from storage_console.core.event_stream import EventStream, drive
from storage_console.database.record_store import BUCKETS, FILES, RecordStore
from storage_console.modules.buckets.schemas import TeardownEvent

logger = logging.getLogger(__name__)


def remove_bucket_metadata(store: RecordStore, bucket_id: str, s3_bucket_name: Optional[str]) -> int:
    """Delete the bucket record and its file-metadata records. Returns the file count removed."""
    store.delete_by_id(BUCKETS, bucket_id)
    if not s3_bucket_name:
        return 0
    return store.delete_where(FILES, "bucket_name", s3_bucket_name)


class TeardownPipeline:
    def __init__(self, store: RecordStore, provider: AwsProvider):
        self.store = store
        self.provider = provider

    def run(self, bucket_id: str) -> AsyncIterator[TeardownEvent]:
        return drive(lambda stream: self._execute(bucket_id, stream))

    async def _execute(self, bucket_id: str, stream: EventStream) -> None:
        try:
            bucket = self.store.find_by_id(BUCKETS, bucket_id)
            if bucket:
                self.store.update_by_id(BUCKETS, bucket_id, {"status": "deleting"})
            else:
                logger.info(f"Bucket {bucket_id} has no record, teardown steps will be no-ops")
                bucket = {}

            name = bucket.get("s3_bucket_name")
            region = bucket.get("region")
            distribution_id = bucket.get("cloudfront_distribution_id")

            async def empty_files():
                if name:
                    await self.provider.empty_object_store(name, region)

            async def delete_cdn():
                if distribution_id:
                    await self.provider.delete_distribution(distribution_id)

            async def delete_store():
                if name:
                    await self.provider.delete_object_store(name, region)

            async def delete_metadata():
                removed = remove_bucket_metadata(self.store, bucket_id, name)
                logger.info(f"Removed bucket {bucket_id} and {removed} file record(s)")

            await self._step(stream, "files", empty_files)
            await self._step(stream, "cdn", delete_cdn)
            await self._step(stream, "store", delete_store)
            await self._step(stream, "metadata", delete_metadata)

            stream.write(TeardownEvent(step="complete", status="done"))
        except Exception as e:
            logger.error(f"Teardown of bucket {bucket_id} aborted: {e}")
            stream.write(TeardownEvent(step="complete", status="error", error=str(e) or "Deletion failed"))

    async def _step(self, stream: EventStream, step: str, action: Callable[[], Awaitable[Any]]) -> None:
        stream.write(TeardownEvent(step=step, status="running"))
        try:
            await action()
        except Exception as e:
            logger.error(f"Teardown step '{step}' failed: {e}")
            stream.write(TeardownEvent(step=step, status="error", error=str(e) or f"Failed to delete {step}"))
            return
        stream.write(TeardownEvent(step=step, status="done"))
