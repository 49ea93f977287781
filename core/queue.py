"""
Screenshot job queue.

Jobs travel over a kombu broker (SQS in production, Redis or the in-memory
transport locally). The consumer long-polls, runs a bounded number of jobs
at once and acknowledges a message only after its handler succeeded. A
failed or timed-out job is left unacknowledged so the broker redelivers it
once the visibility timeout lapses; that timeout must therefore exceed the
handler timeout plus one broker long poll, and the handler timeout must
exceed the worst-case job duration.
"""

import asyncio
import logging
import threading
import time
from collections import defaultdict
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from kombu import Connection
from kombu.simple import SimpleQueue
from pydantic import ValidationError

from config import settings
from models import ScreenshotJob

logger = logging.getLogger(__name__)

JobHandler = Callable[[ScreenshotJob], Awaitable[None]]


class QueueUnavailableError(RuntimeError):
    """Raised when a job cannot be published to the broker"""


class ConsumerEvent(str, Enum):
    MESSAGE_RECEIVED = "message_received"
    MESSAGE_PROCESSED = "message_processed"
    PROCESSING_ERROR = "processing_error"
    TIMEOUT_ERROR = "timeout_error"
    ERROR = "error"


class KombuTransport:
    """
    Thin async wrapper around a kombu SimpleQueue.

    kombu connections are not thread-safe, so every broker call runs in a
    worker thread under one lock. A receive holds that lock for the whole
    broker read: on SQS kombu long-polls for ``wait_time_seconds`` whatever
    timeout is passed in, so an ack or close can wait up to that long behind
    an empty poll. Messages are acked on the channel that received them, and
    ``worker.check_timing_budget`` requires the visibility timeout to cover
    the handler timeout plus one long poll.
    """

    def __init__(
        self,
        broker_url: Optional[str] = None,
        queue_name: Optional[str] = None,
        visibility_timeout: Optional[int] = None,
        wait_time_seconds: Optional[int] = None,
    ):
        self.broker_url = broker_url or settings.queue_broker
        self.queue_name = queue_name or settings.QUEUE_NAME
        self.connection = Connection(
            self.broker_url,
            transport_options={
                "visibility_timeout": visibility_timeout or settings.QUEUE_VISIBILITY_TIMEOUT,
                "wait_time_seconds": wait_time_seconds or settings.QUEUE_WAIT_TIME_SECONDS,
            },
        )
        self._queue: Optional[SimpleQueue] = None
        self._lock = threading.Lock()

    def _simple_queue(self) -> SimpleQueue:
        if self._queue is None:
            self._queue = self.connection.SimpleQueue(self.queue_name, serializer="json")
        return self._queue

    def _publish(self, body: Dict[str, Any]):
        with self._lock:
            self._simple_queue().put(body, serializer="json")

    def _receive(self, timeout: float):
        with self._lock:
            try:
                return self._simple_queue().get(block=True, timeout=timeout)
            except SimpleQueue.Empty:
                return None

    def _ack(self, message):
        with self._lock:
            message.ack()

    def _close(self):
        with self._lock:
            if self._queue is not None:
                self._queue.close()
                self._queue = None
            self.connection.release()

    async def publish(self, body: Dict[str, Any]):
        await asyncio.to_thread(self._publish, body)

    async def receive(self, timeout: float):
        """Return the next message, or None if none arrived within ``timeout``"""
        return await asyncio.to_thread(self._receive, timeout)

    async def ack(self, message):
        await asyncio.to_thread(self._ack, message)

    async def close(self):
        await asyncio.to_thread(self._close)


async def enqueue_screenshot_job(
    transport, roast_id: str, url: str, clock: Callable[[], float] = time.time
) -> ScreenshotJob:
    """
    Publish a screenshot job for a roast.

    Raises:
        QueueUnavailableError: If the broker rejected or could not take the job
    """
    timestamp = int(clock() * 1000)
    job = ScreenshotJob(
        job_id=f"screenshot-{roast_id}-{timestamp}",
        url=url,
        roast_id=roast_id,
        timestamp=timestamp,
    )
    try:
        await transport.publish(job.to_wire())
    except Exception as e:
        logger.error(f"❌ Failed to enqueue job {job.job_id}: {e}")
        raise QueueUnavailableError(f"Screenshot queue unavailable: {e}") from e

    logger.info(f"📤 Enqueued {job.job_id} for {url}")
    return job


class QueueConsumer:
    """
    Bounded-concurrency consumer with observable lifecycle events.

    Listeners registered with ``on`` receive the message or exception that
    triggered an event; ``counters`` tallies every event.
    """

    def __init__(
        self,
        transport,
        handler: JobHandler,
        concurrency: Optional[int] = None,
        handler_timeout: Optional[float] = None,
        poll_timeout: float = 1.0,
        error_backoff: float = 5.0,
    ):
        self.transport = transport
        self.handler = handler
        self.concurrency = concurrency or settings.QUEUE_CONCURRENCY
        self.handler_timeout = handler_timeout or settings.QUEUE_HANDLER_TIMEOUT
        self.poll_timeout = poll_timeout
        self.error_backoff = error_backoff

        self.counters: Dict[ConsumerEvent, int] = {event: 0 for event in ConsumerEvent}
        self._listeners: Dict[ConsumerEvent, List[Callable[[Any], None]]] = defaultdict(list)
        self._semaphore = asyncio.Semaphore(self.concurrency)
        self._in_flight: Set[asyncio.Task] = set()
        self._stopping = asyncio.Event()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def on(self, event: ConsumerEvent, listener: Callable[[Any], None]):
        self._listeners[ConsumerEvent(event)].append(listener)

    def _emit(self, event: ConsumerEvent, payload: Any = None):
        self.counters[event] += 1
        for listener in self._listeners[event]:
            try:
                listener(payload)
            except Exception as e:
                logger.warning(f"⚠️  {event.value} listener failed: {e}")

    async def run(self):
        """Poll until ``stop`` is called, then abandon in-flight jobs"""
        logger.info(
            f"🚀 Queue consumer started (concurrency={self.concurrency}, "
            f"handler_timeout={self.handler_timeout}s)"
        )

        while not self._stopping.is_set():
            await self._semaphore.acquire()
            if self._stopping.is_set():
                self._semaphore.release()
                break

            try:
                message = await self.transport.receive(self.poll_timeout)
            except Exception as e:
                self._semaphore.release()
                logger.error(f"❌ Queue transport error: {e}")
                self._emit(ConsumerEvent.ERROR, e)
                await self._backoff()
                continue

            if message is None:
                self._semaphore.release()
                continue

            self._emit(ConsumerEvent.MESSAGE_RECEIVED, message)
            task = asyncio.create_task(self._process(message))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)

        await self._abandon_in_flight()
        logger.info("🛑 Queue consumer stopped")

    async def _backoff(self):
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self.error_backoff)
        except asyncio.TimeoutError:
            pass

    async def _process(self, message):
        try:
            try:
                job = ScreenshotJob.model_validate(message.payload)
            except ValidationError as e:
                # A malformed body can never succeed; drop it instead of cycling it
                logger.error(f"❌ Discarding malformed job message: {e}")
                self._emit(ConsumerEvent.PROCESSING_ERROR, e)
                await self.transport.ack(message)
                return

            try:
                await asyncio.wait_for(self.handler(job), timeout=self.handler_timeout)
            except asyncio.TimeoutError as e:
                logger.error(
                    f"⏱️  Job {job.job_id} exceeded {self.handler_timeout}s, left for redelivery"
                )
                self._emit(ConsumerEvent.TIMEOUT_ERROR, e)
                return
            except Exception as e:
                logger.error(f"❌ Job {job.job_id} failed, left for redelivery: {e}")
                self._emit(ConsumerEvent.PROCESSING_ERROR, e)
                return

            await self.transport.ack(message)
            logger.info(f"✅ Job {job.job_id} processed")
            self._emit(ConsumerEvent.MESSAGE_PROCESSED, message)
        except asyncio.CancelledError:
            logger.warning("🛑 In-flight job abandoned to redelivery")
            raise
        except Exception as e:
            logger.error(f"❌ Failed to acknowledge message: {e}")
            self._emit(ConsumerEvent.ERROR, e)
        finally:
            self._semaphore.release()

    async def _abandon_in_flight(self):
        tasks = list(self._in_flight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def stop(self):
        """Stop polling and cancel in-flight jobs; their messages stay unacknowledged"""
        self._stopping.set()
        await self._abandon_in_flight()
