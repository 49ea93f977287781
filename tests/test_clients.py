"""Tests for the record store, object storage and metrics clients."""

import json
from unittest.mock import MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError

from models import RoastStatus
from utils.clients.metrics import CloudWatchMetrics, LoggingMetrics, create_metrics
from utils.clients.records import InMemoryRecordStore, RecordStoreError, SupabaseRecordStore
from utils.clients.storage import IMMUTABLE_CACHE_CONTROL, S3Storage, StorageError


class TestInMemoryRecordStore:
    @pytest.mark.asyncio
    async def test_status_transitions(self, sample_result):
        store = InMemoryRecordStore()

        created = await store.create("roast-1", "https://example.com/")
        assert created.status == RoastStatus.PENDING
        assert created.created_at

        await store.mark_processing("roast-1")
        assert (await store.get("roast-1")).status == RoastStatus.PROCESSING

        await store.mark_completed("roast-1", sample_result)
        record = await store.get("roast-1")
        assert record.status == RoastStatus.COMPLETED
        assert record.result == sample_result
        assert record.completed_at

    @pytest.mark.asyncio
    async def test_failure_keeps_error(self):
        store = InMemoryRecordStore()
        await store.create("roast-1", "https://example.com/")

        await store.mark_failed("roast-1", "Navigation failed")

        record = await store.get("roast-1")
        assert record.status == RoastStatus.FAILED
        assert record.error == "Navigation failed"

    @pytest.mark.asyncio
    async def test_update_of_unknown_record_is_ignored(self):
        store = InMemoryRecordStore()
        await store.mark_processing("missing")
        assert await store.get("missing") is None


class TestSupabaseRecordStore:
    def _store(self, rows=None):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.method == "GET":
                return httpx.Response(200, json=rows or [])
            return httpx.Response(201, json=[])

        client = httpx.AsyncClient(
            base_url="https://project.supabase.co", transport=httpx.MockTransport(handler)
        )
        return SupabaseRecordStore("https://project.supabase.co", "service-key", client=client), requests

    @pytest.mark.asyncio
    async def test_completion_writes_result_columns(self, sample_result):
        store, requests = self._store()

        await store.mark_completed("roast-1", sample_result)

        request = requests[0]
        assert request.method == "PATCH"
        assert request.url.params["id"] == "eq.roast-1"
        row = json.loads(request.content)
        assert row["status"] == "completed"
        assert row["score"] == 7
        assert row["roast_text"] == sample_result.roast
        assert row["share_card_url"] == sample_result.share_card_url
        assert row["score_breakdown"]["headline"] == 2

    @pytest.mark.asyncio
    async def test_insert_posts_pending_row(self):
        store, requests = self._store()

        await store.create("roast-1", "https://example.com/")

        assert requests[0].method == "POST"
        row = json.loads(requests[0].content)
        assert row["status"] == "pending"
        assert row["url"] == "https://example.com/"

    @pytest.mark.asyncio
    async def test_get_maps_completed_row(self):
        row = {
            "id": "roast-1",
            "url": "https://example.com/",
            "status": "completed",
            "score": 8,
            "score_breakdown": {"headline": 2, "trust": 2, "visual": 1, "cta": 2, "speed": 1},
            "roast_text": "Clean, but the CTA whispers.",
            "issues": [{"issue": "Quiet CTA", "location": "Hero", "impact": "medium", "fix": "Contrast"}],
            "quick_wins": ["Louder button"],
            "desktop_screenshot_url": "https://cdn.example.com/roast-1/desktop.jpg",
            "mobile_screenshot_url": "https://cdn.example.com/roast-1/mobile.jpg",
            "share_card_url": "https://cdn.example.com/roast-1/share.jpg",
            "model_agreement": 0.9,
            "created_at": "2024-01-01T00:00:00+00:00",
            "completed_at": "2024-01-01T00:00:30+00:00",
        }
        store, _ = self._store(rows=[row])

        record = await store.get("roast-1")

        assert record.status == RoastStatus.COMPLETED
        assert record.result.score == 8
        assert record.result.issues[0].issue == "Quiet CTA"
        assert record.result.timestamp == 1_704_067_230_000

    @pytest.mark.asyncio
    async def test_get_missing_row(self):
        store, _ = self._store(rows=[])
        assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_http_status_errors_become_record_store_errors(self):
        client = httpx.AsyncClient(
            base_url="https://project.supabase.co",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        store = SupabaseRecordStore("https://project.supabase.co", "service-key", client=client)

        with pytest.raises(RecordStoreError) as exc_info:
            await store.mark_processing("roast-1")

        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_unreachable_backend_is_record_store_error(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        client = httpx.AsyncClient(
            base_url="https://project.supabase.co", transport=httpx.MockTransport(refuse)
        )
        store = SupabaseRecordStore("https://project.supabase.co", "service-key", client=client)

        with pytest.raises(RecordStoreError):
            await store.create("roast-1", "https://example.com/")
        with pytest.raises(RecordStoreError):
            await store.get("roast-1")


class TestS3Storage:
    @pytest.mark.asyncio
    async def test_upload_is_immutable_and_public(self):
        s3 = MagicMock()
        storage = S3Storage("bucket", public_base_url="https://cdn.example.com/", client=s3)

        url = await storage.upload(b"jpeg", "roast-1/desktop.jpg")

        assert url == "https://cdn.example.com/roast-1/desktop.jpg"
        kwargs = s3.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "bucket"
        assert kwargs["ContentType"] == "image/jpeg"
        assert kwargs["CacheControl"] == IMMUTABLE_CACHE_CONTROL

    @pytest.mark.asyncio
    async def test_upload_failure_raises_storage_error(self):
        s3 = MagicMock()
        s3.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )
        storage = S3Storage("bucket", public_base_url="https://cdn.example.com", client=s3)

        with pytest.raises(StorageError):
            await storage.upload(b"jpeg", "roast-1/share.jpg")


class TestMetrics:
    @pytest.mark.asyncio
    async def test_logging_metrics_accumulate(self):
        metrics = LoggingMetrics()
        await metrics.increment("ScreenshotSuccess")
        await metrics.increment("ScreenshotSuccess")
        await metrics.timing("ScreenshotDuration", 1234)

        assert metrics.totals == {"ScreenshotSuccess": 2, "ScreenshotDuration": 1234}

    @pytest.mark.asyncio
    async def test_cloudwatch_datum_shape(self):
        cloudwatch = MagicMock()
        metrics = CloudWatchMetrics("RoastMyLanding/Screenshots", client=cloudwatch)

        await metrics.timing("ScreenshotDuration", 2500)

        kwargs = cloudwatch.put_metric_data.call_args.kwargs
        assert kwargs["Namespace"] == "RoastMyLanding/Screenshots"
        datum = kwargs["MetricData"][0]
        assert (datum["MetricName"], datum["Value"], datum["Unit"]) == ("ScreenshotDuration", 2500, "Milliseconds")

    @pytest.mark.asyncio
    async def test_emission_failure_is_swallowed(self):
        cloudwatch = MagicMock()
        cloudwatch.put_metric_data.side_effect = RuntimeError("throttled")
        metrics = CloudWatchMetrics("ns", client=cloudwatch)

        await metrics.increment("ScreenshotFailure")

    def test_default_backend_logs(self):
        assert isinstance(create_metrics("log"), LoggingMetrics)
