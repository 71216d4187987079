"""APScheduler-based debounce scheduler for reply runs and maintenance jobs."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Coroutine, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from mimic_bot.config import SchedulerServiceConfig
from mimic_bot.log import get_logger

logger = get_logger(__name__)

PartyTask = Callable[[int], Awaitable[Any]]


class DebounceScheduler:
    """One delayed job per admitted message, retried with exponential backoff.

    Jobs are keyed per invocation, never per party: every job re-reads the
    party's whole buffer when it runs, so jobs after the first find nothing
    left to do.
    """

    def __init__(self, config: SchedulerServiceConfig):
        self._config = config
        self._scheduler = AsyncIOScheduler(timezone=config.timezone)
        self._task: PartyTask | None = None

    def set_task(self, task: PartyTask) -> None:
        """Register the coroutine run for each job, typically the pipeline."""
        self._task = task

    async def start(self) -> None:
        self._scheduler.start()
        logger.info("scheduler_started", timezone=self._config.timezone)

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def schedule(self, party_id: int, minimum_delay: float, attempt: int = 1) -> str:
        """Run the party task after *minimum_delay* seconds. Returns the job ID."""
        job_id = f"{party_id}-{uuid.uuid4().hex[:12]}"
        run_at = datetime.now(timezone.utc) + timedelta(seconds=max(minimum_delay, 0.0))
        self.add_one_shot_job(
            run_at=run_at,
            callback=self._run_task,
            job_id=job_id,
            party_id=party_id,
            attempt=attempt,
        )
        return job_id

    async def _run_task(self, party_id: int, attempt: int = 1) -> None:
        if self._task is None:
            logger.error("scheduler_no_task", party_id=party_id)
            return

        try:
            await self._task(party_id)
        except Exception as e:
            if attempt >= self._config.max_attempts:
                logger.error(
                    "scheduled_task_dropped", party_id=party_id, attempt=attempt, error=str(e)
                )
                return
            backoff = self._config.retry_backoff_seconds * 2 ** (attempt - 1)
            logger.warning(
                "scheduled_task_retry",
                party_id=party_id,
                attempt=attempt,
                backoff=backoff,
                error=str(e),
            )
            self.schedule(party_id, backoff, attempt=attempt + 1)

    def add_cron_job(
        self,
        cron_expr: str,
        callback: Callable[..., Coroutine[Any, Any, None]],
        job_id: Optional[str] = None,
        **kwargs: Any,
    ) -> str:
        """Add a cron-based recurring job. Returns the job ID."""
        job_id = job_id or uuid.uuid4().hex[:12]
        parts = cron_expr.split()
        trigger = CronTrigger(
            minute=parts[0] if len(parts) > 0 else "*",
            hour=parts[1] if len(parts) > 1 else "*",
            day=parts[2] if len(parts) > 2 else "*",
            month=parts[3] if len(parts) > 3 else "*",
            day_of_week=parts[4] if len(parts) > 4 else "*",
        )
        self._scheduler.add_job(callback, trigger, id=job_id, kwargs=kwargs, replace_existing=True)
        logger.info("cron_job_added", job_id=job_id, cron=cron_expr)
        return job_id

    def add_one_shot_job(
        self,
        run_at: datetime,
        callback: Callable[..., Coroutine[Any, Any, None]],
        job_id: Optional[str] = None,
        **kwargs: Any,
    ) -> str:
        """Add a one-time job at a specific datetime. Returns the job ID."""
        job_id = job_id or uuid.uuid4().hex[:12]
        trigger = DateTrigger(run_date=run_at)
        self._scheduler.add_job(
            callback, trigger, id=job_id, kwargs=kwargs, misfire_grace_time=None
        )
        logger.debug("one_shot_job_added", job_id=job_id, run_at=str(run_at))
        return job_id

    def list_jobs(self) -> list[dict[str, Any]]:
        """List all scheduled jobs."""
        return [
            {
                "id": job.id,
                "next_run_time": str(job.next_run_time) if job.next_run_time else None,
                "trigger": str(job.trigger),
            }
            for job in self._scheduler.get_jobs()
        ]
