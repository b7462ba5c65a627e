import logging
from datetime import datetime
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from autopublish.db import crud
from autopublish.db.models import GeneratedArticle, Schedule
from autopublish.errors import AnalysisError, GenerationError, PipelineError, PreconditionError
from autopublish.services.collaborators import ContentAnalyzer, ContentGenerator
from autopublish.services.next_run import next_run_for, utc_now
from autopublish.services.schemas import ContentProfile

logger = logging.getLogger(__name__)


class ArticlePipeline:
    """Turns a due schedule into a ``ready`` article.

    Nothing is persisted unless every stage succeeds; a failure is raised to
    the caller with the schedule id and the stage attached.
    """

    def __init__(self, generator: ContentGenerator, analyzer: Optional[ContentAnalyzer] = None):
        self.generator = generator
        self.analyzer = analyzer

    def _profile(self, schedule: Schedule) -> ContentProfile:
        if not schedule.profile:
            raise PreconditionError(
                "Blog analysis required. Analyze the site before generating articles.",
                schedule_id=schedule.id, stage="precondition",
            )
        try:
            return ContentProfile.model_validate(schedule.profile)
        except ValidationError as e:
            raise PreconditionError(
                f"Stored analysis is unusable, re-run analysis: {e.error_count()} invalid fields",
                schedule_id=schedule.id, stage="precondition",
            ) from e

    def _call(self, stage: str, schedule: Schedule, fn, *args):
        try:
            return fn(*args)
        except PipelineError as e:
            if e.schedule_id is None:
                e.schedule_id = schedule.id
            if e.stage is None:
                e.stage = stage
            raise
        except Exception as e:
            raise GenerationError(f"{stage} failed: {e}", schedule_id=schedule.id, stage=stage) from e

    def generate(self, db: Session, schedule: Schedule, now: Optional[datetime] = None) -> GeneratedArticle:
        now = now or utc_now()
        profile = self._profile(schedule)

        ideas = self._call("ideas", schedule, self.generator.ideas, profile, 1)
        if not ideas:
            raise GenerationError("No article ideas generated", schedule_id=schedule.id, stage="ideas")
        idea = ideas[0]

        body = self._call("article", schedule, self.generator.article, idea, profile)

        # the article's own due time, computed like the schedule's next occurrence
        scheduled_for = next_run_for(schedule, now)
        article = crud.create_article(
            db,
            schedule_id=schedule.id,
            title=body.title,
            content=body.content,
            excerpt=body.excerpt,
            category=idea.category,
            tags=idea.tags,
            scheduled_for=scheduled_for,
        )
        logger.info("[pipeline] schedule %s: generated article %s %r for %s",
                    schedule.id, article.id, article.title, scheduled_for.isoformat())
        return article

    def analyze(self, db: Session, schedule: Schedule, now: Optional[datetime] = None) -> ContentProfile:
        if self.analyzer is None:
            raise AnalysisError("No content analyzer configured", schedule_id=schedule.id, stage="analyze")
        site = crud.site_for_schedule(db, schedule)
        try:
            profile = self.analyzer.analyze(site)
        except AnalysisError as e:
            if e.schedule_id is None:
                e.schedule_id = schedule.id
            raise
        crud.set_schedule_profile(db, schedule, profile.model_dump(), now or utc_now())
        logger.info("[pipeline] schedule %s analyzed: niche=%r", schedule.id, profile.niche)
        return profile
