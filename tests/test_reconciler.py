import itertools
from typing import get_args

import pytest
from fastapi import HTTPException

from conftest import make_bucket
from storage_console.database.record_store import BUCKETS
from storage_console.modules.buckets.schemas import BucketStatus
from storage_console.modules.sync.reconciler import StackClassification, StateReconciler, classify_stack, decide

NAME = "scr-media-1700000000000"
OUTPUTS = {"BucketArn": f"arn:aws:s3:::{NAME}", "CloudFrontDomain": "d1.cloudfront.net", "DistributionId": "E123"}


@pytest.mark.parametrize("status,expected", [
    ("CREATE_COMPLETE", StackClassification.COMPLETE),
    ("UPDATE_COMPLETE", StackClassification.COMPLETE),
    ("IMPORT_COMPLETE", StackClassification.IN_PROGRESS),
    ("CREATE_FAILED", StackClassification.FAILED),
    ("ROLLBACK_COMPLETE", StackClassification.FAILED),
    ("UPDATE_ROLLBACK_IN_PROGRESS", StackClassification.FAILED),
    ("CREATE_IN_PROGRESS", StackClassification.IN_PROGRESS),
    ("REVIEW_IN_PROGRESS", StackClassification.IN_PROGRESS),
    ("DELETE_COMPLETE", StackClassification.ABSENT),
    (None, StackClassification.ABSENT),
    ("SOMETHING_NEW", StackClassification.IN_PROGRESS),
])
def test_classify_stack(status, expected):
    assert classify_stack(status) == expected


C = StackClassification


@pytest.mark.parametrize("local,classification,exists,expected", [
    ("pending", C.COMPLETE, True, (True, "update-to-active", True)),
    ("failed", C.COMPLETE, True, (True, "update-to-active", True)),
    ("active", C.COMPLETE, True, (False, "none", False)),
    ("active", C.FAILED, True, (True, "update-to-failed", True)),
    ("failed", C.FAILED, False, (False, "none", False)),
    ("active", C.IN_PROGRESS, True, (True, "none", False)),
    ("deploying", C.IN_PROGRESS, True, (False, "none", False)),
    ("active", C.ABSENT, True, (True, "update-to-active", False)),
    ("deploying", C.ABSENT, False, (True, "update-to-pending", True)),
    ("active", C.ABSENT, False, (True, "update-to-pending", True)),
    ("pending", C.ABSENT, False, (False, "none", False)),
    ("failed", C.ABSENT, True, (False, "none", False)),
    ("pending", C.COMPLETE, False, (True, "update-to-active", True)),
    ("failed", C.IN_PROGRESS, False, (True, "none", False)),
    ("deploying", C.FAILED, True, (True, "update-to-failed", True)),
    ("deleting", C.COMPLETE, True, (True, "update-to-active", True)),
    ("deleting", C.FAILED, False, (True, "update-to-failed", True)),
    ("deleting", C.IN_PROGRESS, True, (True, "none", False)),
    ("deleting", C.ABSENT, True, (False, "none", False)),
    ("deleting", C.ABSENT, False, (False, "none", False)),
])
def test_decision_table(local, classification, exists, expected):
    assert decide(local, classification, exists) == expected


def expected_decision(local, classification, exists):
    """The decision table written out row by row."""
    rows = [
        (classification == C.COMPLETE and local != "active", (True, "update-to-active", True)),
        (classification == C.FAILED and local != "failed", (True, "update-to-failed", True)),
        (classification == C.IN_PROGRESS and local != "deploying", (True, "none", False)),
        (classification == C.ABSENT and local in ("active", "deploying") and exists, (True, "update-to-active", False)),
        (classification == C.ABSENT and local in ("active", "deploying") and not exists,
         (True, "update-to-pending", True)),
    ]
    return next((outcome for matches, outcome in rows if matches), (False, "none", False))


@pytest.mark.parametrize(
    "local,classification,exists",
    list(itertools.product(get_args(BucketStatus), list(StackClassification), (True, False))),
)
def test_decision_table_every_combination(local, classification, exists):
    assert decide(local, classification, exists) == expected_decision(local, classification, exists)


@pytest.mark.asyncio
async def test_check_status_reports_without_mutating(store, provider, bucket):
    provider.add_stack(NAME, "CREATE_COMPLETE", OUTPUTS)
    provider.stores[NAME] = []
    before = store.find_by_id(BUCKETS, "bucket-1")

    result = await StateReconciler(store, provider).check_status("bucket-1")

    assert result.needs_sync is True
    assert result.recommended_action == "update-to-active"
    assert result.stack_exists is True
    assert result.s3_bucket_exists is True
    assert result.cloudfront_domain == "d1.cloudfront.net"
    assert result.resources[0].logical_id == "StorageBucket"
    assert result.auto_applied is False
    assert store.find_by_id(BUCKETS, "bucket-1") == before


@pytest.mark.asyncio
async def test_check_status_unknown_bucket(store, provider):
    with pytest.raises(HTTPException) as exc:
        await StateReconciler(store, provider).check_status("nope")
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_sync_all_applies_unambiguous_corrections(store, provider):
    store.append(BUCKETS, make_bucket(id="to-active", s3_bucket_name="b-active", status="deploying"))
    store.append(BUCKETS, make_bucket(id="to-failed", s3_bucket_name="b-failed", status="active"))
    store.append(BUCKETS, make_bucket(
        id="to-pending", s3_bucket_name="b-gone", status="active",
        s3_bucket_arn="arn:old", cloudfront_domain="old.cloudfront.net", cloudfront_distribution_id="EOLD",
    ))
    store.append(BUCKETS, make_bucket(id="ambiguous", s3_bucket_name="b-busy", status="active"))
    store.append(BUCKETS, make_bucket(id="orphan-store", s3_bucket_name="b-orphan", status="active"))
    provider.add_stack("b-active", "UPDATE_COMPLETE", OUTPUTS)
    provider.add_stack("b-failed", "UPDATE_ROLLBACK_COMPLETE")
    provider.add_stack("b-busy", "UPDATE_IN_PROGRESS")
    provider.stores["b-orphan"] = []

    results = await StateReconciler(store, provider).sync_all()

    by_id = {r.bucket_id: r for r in results}
    assert len(results) == 5
    active = store.find_by_id(BUCKETS, "to-active")
    assert active["status"] == "active"
    assert active["cloudfront_distribution_id"] == "E123"
    assert store.find_by_id(BUCKETS, "to-failed")["status"] == "failed"
    pending = store.find_by_id(BUCKETS, "to-pending")
    assert pending["status"] == "pending"
    assert pending["s3_bucket_arn"] == ""
    assert pending["cloudfront_domain"] == ""
    assert store.find_by_id(BUCKETS, "ambiguous")["status"] == "active"
    assert store.find_by_id(BUCKETS, "orphan-store")["status"] == "active"

    assert by_id["to-active"].auto_applied and by_id["to-active"].local_status == "deploying"
    assert by_id["ambiguous"].needs_sync and not by_id["ambiguous"].auto_applied
    assert by_id["orphan-store"].recommended_action == "update-to-active"
    assert not by_id["orphan-store"].auto_applied


@pytest.mark.asyncio
async def test_sync_all_continues_after_a_failing_record(store, provider):
    store.append(BUCKETS, make_bucket(id="broken", s3_bucket_name="b-broken", status="active"))
    store.append(BUCKETS, make_bucket(id="fine", s3_bucket_name="b-fine", status="pending"))
    provider.add_stack("b-fine", "CREATE_COMPLETE", OUTPUTS)
    provider.fail("describe_stack", RuntimeError("throttled"), name="b-broken")

    results = await StateReconciler(store, provider).sync_all()

    assert [r.bucket_id for r in results] == ["broken", "fine"]
    broken = results[0]
    assert (broken.stack_exists, broken.s3_bucket_exists, broken.needs_sync) == (False, False, False)
    assert store.find_by_id(BUCKETS, "broken")["status"] == "active"
    assert store.find_by_id(BUCKETS, "fine")["status"] == "active"


@pytest.mark.asyncio
async def test_apply_update_to_active_falls_back_to_recorded_outputs(store, provider):
    store.append(BUCKETS, make_bucket(status="failed", s3_bucket_arn="arn:kept", cloudfront_domain="kept.net"))
    provider.add_stack(NAME, "CREATE_COMPLETE", {"DistributionId": "ENEW"})

    await StateReconciler(store, provider).apply_action("bucket-1", "update-to-active")

    record = store.find_by_id(BUCKETS, "bucket-1")
    assert record["status"] == "active"
    assert record["s3_bucket_arn"] == "arn:kept"
    assert record["cloudfront_domain"] == "kept.net"
    assert record["cloudfront_distribution_id"] == "ENEW"


@pytest.mark.asyncio
@pytest.mark.parametrize("action,status", [("update-to-failed", "failed"), ("update-to-pending", "pending")])
async def test_apply_status_actions(store, provider, action, status):
    store.append(BUCKETS, make_bucket(status="active", s3_bucket_arn="arn:x"))

    await StateReconciler(store, provider).apply_action("bucket-1", action)

    assert store.find_by_id(BUCKETS, "bucket-1")["status"] == status
    assert provider.called("delete_stack") == []


@pytest.mark.asyncio
async def test_rollback_deletes_stack_then_resets(store, provider):
    store.append(BUCKETS, make_bucket(status="failed", s3_bucket_arn="arn:x", cloudfront_domain="d.net"))
    provider.add_stack(NAME, "ROLLBACK_COMPLETE")

    await StateReconciler(store, provider).apply_action("bucket-1", "rollback")

    assert provider.called("delete_stack") == [NAME]
    record = store.find_by_id(BUCKETS, "bucket-1")
    assert record["status"] == "pending"
    assert record["s3_bucket_arn"] == ""
    assert record["cloudfront_domain"] == ""


@pytest.mark.asyncio
async def test_failed_rollback_leaves_record_untouched(store, provider):
    store.append(BUCKETS, make_bucket(status="failed", s3_bucket_arn="arn:x"))
    provider.fail("delete_stack", RuntimeError("AccessDenied"))
    before = store.find_by_id(BUCKETS, "bucket-1")

    with pytest.raises(RuntimeError):
        await StateReconciler(store, provider).apply_action("bucket-1", "rollback")

    assert store.find_by_id(BUCKETS, "bucket-1") == before


@pytest.mark.asyncio
async def test_unknown_action_rejected(store, provider, bucket):
    with pytest.raises(HTTPException) as exc:
        await StateReconciler(store, provider).apply_action("bucket-1", "cleanup")
    assert exc.value.status_code == 400
