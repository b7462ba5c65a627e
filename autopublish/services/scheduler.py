import enum
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from autopublish.db import crud
from autopublish.services.next_run import as_utc, next_run_for, utc_now
from autopublish.services.pipeline import ArticlePipeline
from autopublish.services.publisher import Publisher

logger = logging.getLogger(__name__)

TICK_JOB_ID = "autopublish_tick"


class LifecycleState(str, enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class SchedulerStats:
    schedules_checked: int = 0
    articles_generated: int = 0
    articles_published: int = 0
    errors: int = 0
    ticks: int = 0
    ticks_skipped: int = 0
    last_run: Optional[datetime] = None


class Scheduler:
    """Single poll loop: due schedules -> articles, then one publisher sweep.

    The timer is an APScheduler interval job with ``max_instances=1``; the
    tick itself also holds a non-blocking lock so a manual trigger can never
    overlap a timer tick.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        pipeline: ArticlePipeline,
        publisher: Publisher,
        poll_interval_seconds: int = 60,
        run_on_start: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.pipeline = pipeline
        self.publisher = publisher
        self.poll_interval_seconds = poll_interval_seconds
        self.run_on_start = run_on_start
        self.clock = clock
        self.stats = SchedulerStats()
        self._scheduler: Optional[BackgroundScheduler] = None
        self._state_lock = threading.Lock()
        self._tick_lock = threading.Lock()

    @property
    def state(self) -> LifecycleState:
        if self._scheduler is not None and self._scheduler.running:
            return LifecycleState.RUNNING
        return LifecycleState.STOPPED

    @property
    def running(self) -> bool:
        return self.state is LifecycleState.RUNNING

    def start(self) -> bool:
        """Start the timer. Returns False (and does nothing) if already running."""
        with self._state_lock:
            if self.running:
                logger.info("[scheduler] already running")
                return False
            scheduler = BackgroundScheduler(timezone="UTC")
            job_kwargs = {}
            if self.run_on_start:
                # fire once immediately; next_run_time=None would add the job paused
                job_kwargs["next_run_time"] = datetime.now(timezone.utc)
            scheduler.add_job(
                self.tick,
                IntervalTrigger(seconds=self.poll_interval_seconds, timezone="UTC"),
                id=TICK_JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                **job_kwargs,
            )
            scheduler.start()
            self._scheduler = scheduler
            logger.info("[scheduler] started, polling every %ss", self.poll_interval_seconds)
            return True

    def stop(self) -> bool:
        """Cancel the timer. An in-flight tick is left to finish on its own."""
        with self._state_lock:
            if not self.running:
                logger.info("[scheduler] not running")
                return False
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("[scheduler] stopped")
            return True

    def job_count(self) -> int:
        return len(self._scheduler.get_jobs()) if self.running else 0

    def tick(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        if not self._tick_lock.acquire(blocking=False):
            self.stats.ticks_skipped += 1
            logger.info("[scheduler] previous tick still running, skipping")
            return {"status": "skipped"}
        try:
            now = as_utc(now) if now else self.clock()
            self.stats.ticks += 1
            self.stats.last_run = now
            summary = self._process_due_schedules(now)
            summary["published"] = self.publish_due(now)
            summary["status"] = "ok"
            return summary
        finally:
            self._tick_lock.release()

    def _process_due_schedules(self, now: datetime) -> Dict[str, Any]:
        generated, failed = 0, 0
        db = self.session_factory()
        try:
            try:
                due = crud.list_active_due(db, now)
            except Exception:
                self.stats.errors += 1
                logger.exception("[scheduler] could not load due schedules")
                return {"due": 0, "generated": 0, "failed": 0}

            self.stats.schedules_checked += len(due)
            if not due:
                logger.debug("[scheduler] no schedules due")
            else:
                logger.info("[scheduler] %d schedule(s) due", len(due))

            for schedule in due:
                schedule_id = schedule.id
                try:
                    self.pipeline.generate(db, schedule, now)
                    generated += 1
                    self.stats.articles_generated += 1
                except Exception as e:
                    db.rollback()
                    failed += 1
                    self.stats.errors += 1
                    logger.error("[scheduler] generation failed for schedule %s: %s", schedule_id, e)
                self._advance(db, schedule, schedule_id, now)
            return {"due": len(due), "generated": generated, "failed": failed}
        finally:
            db.close()

    def _advance(self, db: Session, schedule, schedule_id: int, now: datetime) -> None:
        # advance whatever happened, so a failing schedule waits for its next occurrence
        try:
            schedule.next_run_at = next_run_for(schedule, now)
            crud.save_schedule(db, schedule)
            logger.info("[scheduler] schedule %s next run at %s", schedule_id, schedule.next_run_at.isoformat())
        except Exception:
            db.rollback()
            self.stats.errors += 1
            logger.exception("[scheduler] could not advance schedule %s", schedule_id)

    def publish_due(self, now: Optional[datetime] = None) -> int:
        """One publisher sweep, counted in the stats whoever asks for it."""
        try:
            count = self.publisher.sweep(now)
        except Exception:
            self.stats.errors += 1
            logger.exception("[scheduler] publisher sweep failed")
            return 0
        self.stats.articles_published += count
        return count

    def status(self) -> Dict[str, Any]:
        stats = asdict(self.stats)
        stats["last_run"] = self.stats.last_run.isoformat() if self.stats.last_run else None
        return {
            "is_running": self.running,
            "state": self.state.value,
            "stats": stats,
            "config": {
                "poll_interval_seconds": self.poll_interval_seconds,
                "run_on_start": self.run_on_start,
            },
        }
