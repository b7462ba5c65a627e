import logging
import threading
import time
from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from autopublish.db import crud
from autopublish.db.models import ArticleStatus, GeneratedArticle
from autopublish.services.publisher import Publisher
from autopublish.services.scheduler import LifecycleState, Scheduler

logger = logging.getLogger(__name__)


class AutomationController:
    """Lifecycle of the auto-publishing loop.

    One instance per process, built at application startup and handed to
    whoever needs it (the API keeps it on ``app.state``). It owns no global
    state of its own beyond the scheduler it drives.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        scheduler: Scheduler,
        publisher: Publisher,
        restart_grace_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_factory = session_factory
        self.scheduler = scheduler
        self.publisher = publisher
        self.restart_grace_seconds = restart_grace_seconds
        self._sleep = sleep
        self._initialized = False
        self._lock = threading.RLock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def state(self) -> LifecycleState:
        return self.scheduler.state

    @property
    def pipeline(self):
        return self.scheduler.pipeline

    def _active_schedule_count(self) -> int:
        db = self.session_factory()
        try:
            return crud.count_active_schedules(db)
        finally:
            db.close()

    def initialize(self) -> Dict[str, Any]:
        with self._lock:
            if self._initialized:
                logger.info("[automation] already initialized")
                return {"status": "already-initialized"}

            active = self._active_schedule_count()
            logger.info("[automation] %d active schedule(s)", active)
            if active > 0:
                self.scheduler.start()
            else:
                logger.info("[automation] no active schedules, scheduler will start when one is created")

            # articles queued before a restart must not be stranded
            published = self.scheduler.publish_due()
            if published:
                logger.info("[automation] published %d ready article(s) on startup", published)

            self._initialized = True
            return {"status": "initialized", "active_schedules": active, "published": published,
                    "is_running": self.scheduler.running}

    def start(self) -> Dict[str, Any]:
        with self._lock:
            was_running = self.scheduler.running
            if not self._initialized:
                # may already start the scheduler when active schedules exist
                self.initialize()
            if not self.scheduler.running:
                self.scheduler.start()
            return {"status": "already-running" if was_running else "started"}

    def stop(self) -> Dict[str, Any]:
        with self._lock:
            stopped = self.scheduler.stop()
            return {"status": "stopped" if stopped else "not-running"}

    def restart(self) -> Dict[str, Any]:
        with self._lock:
            logger.info("[automation] restarting")
            self.stop()
            # let a stale timer firing drain before the new timer exists
            self._sleep(self.restart_grace_seconds)
            self.start()
            return {"status": "restarted"}

    def status(self) -> Dict[str, Any]:
        scheduler_status = self.scheduler.status()
        return {
            "is_running": scheduler_status["is_running"],
            "active_schedule_count": self._active_schedule_count(),
            "stats": scheduler_status["stats"],
            "config": dict(scheduler_status["config"], restart_grace_seconds=self.restart_grace_seconds),
        }

    def trigger_manual_processing(self) -> Dict[str, Any]:
        logger.info("[automation] manual processing triggered")
        return self.scheduler.tick()

    def publish_ready_articles(self) -> int:
        return self.scheduler.publish_due()

    def publish_article(self, article_id: int) -> GeneratedArticle:
        article = self.publisher.publish_now(article_id)
        if article.status is ArticleStatus.PUBLISHED:
            self.scheduler.stats.articles_published += 1
        return article

    def on_schedule_created(self) -> Dict[str, Any]:
        with self._lock:
            if self.scheduler.running:
                return {"status": "already-running"}
            if self._active_schedule_count() > 0:
                logger.info("[automation] schedule created, starting automation")
                return self.start()
            return {"status": "not-running"}

    def on_schedule_removed(self) -> Dict[str, Any]:
        with self._lock:
            if self._active_schedule_count() == 0:
                logger.info("[automation] no active schedules remaining, stopping automation")
                return self.stop()
            return {"status": "running" if self.scheduler.running else "not-running"}
