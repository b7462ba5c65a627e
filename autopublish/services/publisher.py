import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from autopublish.db import crud
from autopublish.db.models import ArticleStatus, GeneratedArticle
from autopublish.errors import ImageError, InvalidTransitionError, PublishError
from autopublish.services.collaborators import ImageGenerator, PublishingTarget
from autopublish.services.next_run import as_utc, utc_now

logger = logging.getLogger(__name__)


class Publisher:
    """Moves ``ready`` articles whose time has come to the publishing target.

    Every article is claimed (``ready -> publishing``) before any work; a
    failed claim means another sweep owns it. After a successful claim the
    article always ends up ``published`` or ``failed``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        target: PublishingTarget,
        image_generator: Optional[ImageGenerator] = None,
    ):
        self.session_factory = session_factory
        self.target = target
        self.image_generator = image_generator

    def sweep(self, now: Optional[datetime] = None) -> int:
        now = as_utc(now) if now else utc_now()
        published = 0
        db = self.session_factory()
        try:
            candidates = [a.id for a in crud.list_publishable_articles(db, now)]
            if not candidates:
                logger.debug("[publisher] no articles ready for publishing")
                return 0
            logger.info("[publisher] %d article(s) ready for publishing", len(candidates))
            for article_id in candidates:
                try:
                    claimed = crud.claim_article(db, article_id)
                except Exception:
                    # still ready, the next sweep picks it up
                    db.rollback()
                    logger.exception("[publisher] could not claim article %s", article_id)
                    continue
                if not claimed:
                    logger.info("[publisher] article %s already claimed, skipping", article_id)
                    continue
                if self._settle_claimed(db, article_id, now):
                    published += 1
            logger.info("[publisher] published %d/%d article(s)", published, len(candidates))
            return published
        finally:
            db.close()

    def publish_now(self, article_id: int, now: Optional[datetime] = None) -> GeneratedArticle:
        """Publish one ready article immediately, ignoring its scheduled time."""
        now = as_utc(now) if now else utc_now()
        db = self.session_factory()
        try:
            article = crud.get_article(db, article_id)
            if not crud.claim_article(db, article_id):
                raise InvalidTransitionError(article.status.value, ArticleStatus.PUBLISHING.value)
            self._settle_claimed(db, article_id, now)
            return crud.get_article(db, article_id, refresh=True)
        finally:
            db.close()

    def _settle_claimed(self, db: Session, article_id: int, now: datetime) -> bool:
        """Publish a claimed article; whatever breaks, it leaves ``publishing``."""
        try:
            return self._publish_claimed(db, article_id, now)
        except Exception as e:
            db.rollback()
            logger.exception("[publisher] could not record the outcome for article %s", article_id)
            self._mark_failed(db, article_id, str(e) or e.__class__.__name__)
            return False

    def _mark_failed(self, db: Session, article_id: int, message: str) -> None:
        try:
            crud.transition_article(
                db, article_id, ArticleStatus.PUBLISHING, ArticleStatus.FAILED, error_message=message,
            )
        except Exception:
            db.rollback()
            logger.exception("[publisher] article %s is stuck in publishing", article_id)

    def _publish_claimed(self, db: Session, article_id: int, now: datetime) -> bool:
        try:
            article = crud.get_article(db, article_id, refresh=True)
            schedule = crud.get_schedule(db, article.schedule_id)
            site = crud.site_for_schedule(db, schedule)

            image_url = article.featured_image_url or self._featured_image(db, article)
            category_id = self.target.resolve_category(site, article.category)
            result = self.target.publish(
                site, article.title, article.content, category_id, image_url, excerpt=article.excerpt,
            )
        except Exception as e:
            db.rollback()
            if not isinstance(e, PublishError):
                logger.exception("[publisher] unexpected error publishing article %s", article_id)
            message = str(e) or e.__class__.__name__
            logger.error("[publisher] article %s failed: %s", article_id, message)
            self._mark_failed(db, article_id, message)
            return False

        crud.transition_article(
            db, article_id, ArticleStatus.PUBLISHING, ArticleStatus.PUBLISHED,
            published_at=now, external_post_id=result.external_id, published_url=result.link,
        )
        logger.info("[publisher] published article %s %r -> %s", article_id, article.title, result.link or result.external_id)
        return True

    def _featured_image(self, db: Session, article: GeneratedArticle) -> Optional[str]:
        if self.image_generator is None:
            return None
        try:
            image_url = self.image_generator.generate(article.title)
        except ImageError as e:
            logger.warning("[publisher] featured image for article %s skipped: %s", article.id, e)
            return None
        except Exception:
            logger.exception("[publisher] image generator crashed for article %s, publishing without image", article.id)
            return None
        crud.set_featured_image(db, article.id, image_url)
        return image_url
