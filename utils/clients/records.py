"""
Durable roast record stores.

The pipeline writes status transitions and the final result into a roast
record it does not own the schema of. ``SupabaseRecordStore`` talks to the
PostgREST endpoint of the ``roasts`` table; ``InMemoryRecordStore`` backs
local runs and tests.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from config import settings
from models import RoastRecord, RoastResult, RoastStatus

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RecordStoreError(RuntimeError):
    """Raised when the roast record backend cannot be reached or rejects a write"""


class BaseRecordStore(ABC):
    """Status transitions shared by every record backend"""

    @abstractmethod
    async def insert(self, record: RoastRecord) -> RoastRecord:
        ...

    @abstractmethod
    async def update(self, roast_id: str, fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def get(self, roast_id: str) -> Optional[RoastRecord]:
        ...

    async def close(self):
        return None

    async def create(self, roast_id: str, url: str) -> RoastRecord:
        record = RoastRecord(
            id=roast_id, url=url, status=RoastStatus.PENDING, created_at=_utc_now()
        )
        return await self.insert(record)

    async def mark_processing(self, roast_id: str):
        await self.update(roast_id, {"status": RoastStatus.PROCESSING})

    async def mark_completed(self, roast_id: str, result: RoastResult):
        await self.update(
            roast_id,
            {
                "status": RoastStatus.COMPLETED,
                "result": result,
                "completed_at": _utc_now(),
            },
        )

    async def mark_failed(self, roast_id: str, error: str):
        await self.update(
            roast_id,
            {"status": RoastStatus.FAILED, "error": error, "completed_at": _utc_now()},
        )


class InMemoryRecordStore(BaseRecordStore):
    def __init__(self):
        self._records: Dict[str, RoastRecord] = {}
        self._lock = asyncio.Lock()

    async def insert(self, record: RoastRecord) -> RoastRecord:
        async with self._lock:
            self._records[record.id] = record
        return record

    async def update(self, roast_id: str, fields: Dict[str, Any]) -> None:
        async with self._lock:
            record = self._records.get(roast_id)
            if record is None:
                logger.warning(f"⚠️  Update for unknown roast record {roast_id}")
                return
            self._records[roast_id] = record.model_copy(update=fields)

    async def get(self, roast_id: str) -> Optional[RoastRecord]:
        return self._records.get(roast_id)


# Supabase column layout of the roasts table
def _fields_to_row(fields: Dict[str, Any]) -> Dict[str, Any]:
    row: Dict[str, Any] = {}
    for name, value in fields.items():
        if name == "status":
            row["status"] = RoastStatus(value).value
        elif name == "result":
            result: RoastResult = value
            row.update(
                {
                    "score": result.score,
                    "score_breakdown": result.breakdown.model_dump(),
                    "roast_text": result.roast,
                    "issues": [issue.model_dump() for issue in result.issues],
                    "quick_wins": result.quick_wins,
                    "desktop_screenshot_url": result.desktop_screenshot_url,
                    "mobile_screenshot_url": result.mobile_screenshot_url,
                    "share_card_url": result.share_card_url,
                    "model_agreement": result.model_agreement,
                    "processing_time_ms": result.processing_time_ms,
                    "metrics": result.metrics.model_dump() if result.metrics else None,
                }
            )
        else:
            row[name] = value
    return row


def _row_to_record(row: Dict[str, Any]) -> RoastRecord:
    result = None
    if row.get("status") == RoastStatus.COMPLETED.value and row.get("roast_text"):
        completed_at = row.get("completed_at") or row.get("created_at")
        timestamp = 0
        if completed_at:
            timestamp = int(datetime.fromisoformat(completed_at).timestamp() * 1000)
        result = RoastResult(
            id=row["id"],
            url=row["url"],
            roast=row["roast_text"],
            score=row["score"],
            breakdown=row.get("score_breakdown") or {},
            issues=row.get("issues") or [],
            quick_wins=row.get("quick_wins") or [],
            desktop_screenshot_url=row.get("desktop_screenshot_url") or "",
            mobile_screenshot_url=row.get("mobile_screenshot_url") or "",
            share_card_url=row.get("share_card_url") or "",
            model_agreement=row.get("model_agreement") or 0.0,
            timestamp=timestamp,
            metrics=row.get("metrics"),
            processing_time_ms=row.get("processing_time_ms"),
        )

    return RoastRecord(
        id=row["id"],
        url=row["url"],
        status=RoastStatus(row["status"]),
        result=result,
        error=row.get("error"),
        created_at=row.get("created_at"),
        completed_at=row.get("completed_at"),
    )


class SupabaseRecordStore(BaseRecordStore):
    """
    Client for the ``roasts`` table over the Supabase REST API.

    Transport and HTTP status failures surface as ``RecordStoreError``.
    """

    TABLE = "roasts"

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url or settings.SUPABASE_URL
        self.key = key or settings.SUPABASE_KEY

        if not self.url or not self.key:
            logger.warning("⚠️  SUPABASE_URL or SUPABASE_KEY not set")

        self.headers = {
            "apikey": self.key or "",
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        self.client = client or httpx.AsyncClient(
            base_url=self.url or "", headers=self.headers, timeout=30.0
        )

    async def _send(self, method: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, f"/rest/v1/{self.TABLE}", **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"❌ Supabase {method} on {self.TABLE} failed: {e}")
            raise RecordStoreError(f"Roast record store unavailable: {e}") from e
        return response

    async def insert(self, record: RoastRecord) -> RoastRecord:
        row = _fields_to_row(
            {
                "id": record.id,
                "url": record.url,
                "status": record.status,
                "created_at": record.created_at,
            }
        )
        await self._send("POST", json=row)
        return record

    async def update(self, roast_id: str, fields: Dict[str, Any]) -> None:
        await self._send("PATCH", params={"id": f"eq.{roast_id}"}, json=_fields_to_row(fields))

    async def get(self, roast_id: str) -> Optional[RoastRecord]:
        response = await self._send(
            "GET", params={"id": f"eq.{roast_id}", "select": "*", "limit": "1"}
        )
        rows = response.json()
        if not rows:
            return None
        return _row_to_record(rows[0])

    async def close(self):
        await self.client.aclose()


def create_record_store() -> BaseRecordStore:
    if settings.SUPABASE_URL and settings.SUPABASE_KEY:
        return SupabaseRecordStore()
    logger.info("ℹ️  Supabase not configured, keeping roast records in memory")
    return InMemoryRecordStore()
