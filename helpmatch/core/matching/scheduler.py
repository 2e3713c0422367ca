# helpmatch/core/matching/scheduler.py
"""
Periodic notification scheduler.

Every tick selects a small batch of help requests that are old enough and
have never been notified, claims each one with a conditional update, and
runs the pipeline for it. Requests are handled one after another; helpers
within a request are notified concurrently by the pipeline.

Claim lifecycle per request:
- claim won, at least one helper notified → stays claimed, now processed
- claim won, nobody notified              → released, retried next tick
- claim lost                              → skipped (another invocation has it)
- process crashed mid-way                 → lease expires, retried later

Nothing raised while handling one request escapes the tick.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from helpmatch.core.matching.domain import (
    HelpRequest,
    MatchingConfig,
    RequestResult,
    RequestStatus,
    TickReport,
)
from helpmatch.core.matching.pipeline import NotificationPipeline
from helpmatch.core.matching.ports import AsyncHelpRequestRepository
from helpmatch.infra.logging_config import LogContext, get_logger
from helpmatch.infra.metrics import AppMetrics, inc_counter

logger = get_logger(__name__)


class NotificationScheduler:
    """
    In-process async driver for the notification pipeline.

    Usage:
        scheduler = NotificationScheduler(requests, pipeline, config)
        await scheduler.start()      # tick every config.interval_seconds
        ...
        await scheduler.stop()

        report = await scheduler.run_once()   # single tick, e.g. from admin API
    """

    def __init__(
        self,
        requests: AsyncHelpRequestRepository,
        pipeline: NotificationPipeline,
        config: MatchingConfig,
    ):
        self._requests = requests
        self._pipeline = pipeline
        self._config = config
        self._task: asyncio.Task | None = None
        self._running = False
        self._tick = 0
        self._tick_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the tick loop as an asyncio task."""
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="notification_scheduler")
        self._task.add_done_callback(self._on_task_done)
        logger.info(
            f"Notification scheduler started: interval={self._config.interval_seconds}s, "
            f"batch={self._config.batch_size}, max_results={self._config.max_results}, "
            f"min_delay={self._config.minimum_delay}",
        )

    async def stop(self) -> None:
        """Stop ticking. A tick in progress is cancelled."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Notification scheduler stopped")

    async def run_once(self, now: datetime | None = None) -> TickReport:
        """Run a single tick. Never raises for per-request failures."""
        async with self._tick_lock:
            self._tick += 1
            now = now or datetime.now(timezone.utc)
            report = TickReport(tick=self._tick, started_at=now)

            with AppMetrics.track_tick():
                batch = await self._select(now, report)
                for request in batch:
                    report.results.append(await self._process_request(request))

            inc_counter("notification_ticks")
            return report

    async def _select(self, now: datetime, report: TickReport) -> list[HelpRequest]:
        cutoff = now - self._config.minimum_delay
        try:
            batch = await self._requests.select_eligible(
                cutoff, self._config.batch_size, self._config.claim_lease_seconds,
            )
        except Exception as exc:
            logger.error(f"Selecting help requests failed: {exc}", exc_info=True, extra={"tick": self._tick})
            AppMetrics.database_error("select_eligible")
            report.error = f"{exc.__class__.__name__}: {exc}"[:500]
            return []

        report.selected = len(batch)
        logger.info(f"Help requests to process: {len(batch)}", extra={"tick": self._tick})
        return batch

    async def _process_request(self, request: HelpRequest) -> RequestResult:
        log = LogContext(logger, request_id=request.id, tick=self._tick)

        try:
            claimed = await self._requests.claim(request.id, self._config.claim_lease_seconds)
        except Exception as exc:
            log.error(f"Claiming help request failed: {exc}", exc_info=True)
            AppMetrics.request_failed()
            return RequestResult(request.id, RequestStatus.FAILED, error=f"{exc.__class__.__name__}: {exc}"[:500])

        if not claimed:
            log.info("Help request already claimed or processed, skipping")
            AppMetrics.request_skipped("claim_lost")
            return RequestResult(request.id, RequestStatus.CLAIM_LOST)

        try:
            result = await self._pipeline.process(request)
        except Exception as exc:
            log.error(f"Processing help request failed: {exc}", exc_info=True)
            AppMetrics.request_failed()
            result = RequestResult(request.id, RequestStatus.FAILED, error=f"{exc.__class__.__name__}: {exc}"[:500])

        if result.notified_count > 0:
            AppMetrics.request_processed()
            return result

        try:
            await self._requests.release(request.id)
        except Exception as exc:
            # Lease expiry makes it eligible again
            log.error(f"Releasing claim failed: {exc}", exc_info=True)
        return result

    async def _loop(self) -> None:
        """Main tick loop."""
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(f"Notification scheduler loop error: {exc}", exc_info=True)
                inc_counter("notification_scheduler_loop_errors")
            await asyncio.sleep(self._config.interval_seconds)

    @staticmethod
    def _on_task_done(task: asyncio.Task) -> None:
        """Log unexpected scheduler death."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error(
                f"Notification scheduler task died unexpectedly: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )
