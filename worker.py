"""
Roast Engine - Screenshot Worker

Consumes screenshot jobs from the queue and runs each one through capture,
upload, ensemble analysis and result persistence.

Usage:
    python worker.py
"""

import asyncio
import logging
import signal

from dotenv import load_dotenv

load_dotenv()

from analyzer.ensemble import EnsembleService
from analyzer.providers import build_default_providers
from config import Settings, configure_logging, settings
from core.browser import ScreenshotCapture
from core.cache import close_cache, get_cache
from core.queue import ConsumerEvent, KombuTransport, QueueConsumer
from tasks.screenshot import ScreenshotJobHandler
from utils.clients.metrics import create_metrics
from utils.clients.records import create_record_store
from utils.clients.storage import S3Storage

logger = logging.getLogger(__name__)


def check_timing_budget(config: Settings) -> bool:
    """
    Warn when queue timing could redeliver a job that is still running.

    Returns:
        True if visibility timeout > handler timeout + one long poll and
        handler timeout > worst-case job time
    """
    ok = True
    if config.QUEUE_VISIBILITY_TIMEOUT <= config.QUEUE_HANDLER_TIMEOUT:
        logger.warning(
            f"⚠️  QUEUE_VISIBILITY_TIMEOUT ({config.QUEUE_VISIBILITY_TIMEOUT}s) must exceed "
            f"QUEUE_HANDLER_TIMEOUT ({config.QUEUE_HANDLER_TIMEOUT}s); "
            "jobs may be redelivered while still running"
        )
        ok = False
    elif config.QUEUE_VISIBILITY_TIMEOUT <= config.QUEUE_HANDLER_TIMEOUT + config.QUEUE_WAIT_TIME_SECONDS:
        # An ack can wait behind one long poll holding the broker connection
        logger.warning(
            f"⚠️  QUEUE_VISIBILITY_TIMEOUT ({config.QUEUE_VISIBILITY_TIMEOUT}s) must exceed "
            f"QUEUE_HANDLER_TIMEOUT + QUEUE_WAIT_TIME_SECONDS "
            f"({config.QUEUE_HANDLER_TIMEOUT + config.QUEUE_WAIT_TIME_SECONDS}s); "
            "late acks may arrive after redelivery"
        )
        ok = False
    if config.QUEUE_HANDLER_TIMEOUT <= config.worst_case_job_seconds:
        logger.warning(
            f"⚠️  QUEUE_HANDLER_TIMEOUT ({config.QUEUE_HANDLER_TIMEOUT}s) does not exceed the "
            f"worst-case job time ({config.worst_case_job_seconds:.0f}s); "
            "slow pages will time out before navigation retries finish"
        )
        ok = False
    return ok


async def run_worker():
    check_timing_budget(settings)

    capture = ScreenshotCapture()
    cache = get_cache()
    records = create_record_store()
    handler = ScreenshotJobHandler(
        capture=capture,
        storage=S3Storage(),
        ensemble=EnsembleService(build_default_providers()),
        cache=cache,
        records=records,
        metrics=create_metrics(),
    )

    transport = KombuTransport()
    consumer = QueueConsumer(transport, handler)
    consumer.on(ConsumerEvent.MESSAGE_RECEIVED, lambda _: logger.debug("📥 Message received"))

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(consumer.stop()))

    try:
        await consumer.run()
    finally:
        counters = {event.value: count for event, count in consumer.counters.items()}
        logger.info(f"📊 Consumer counters: {counters}")
        await transport.close()
        await capture.close()
        await records.close()
        await close_cache()


def main():
    configure_logging()
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
