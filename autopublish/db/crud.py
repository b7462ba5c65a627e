from datetime import datetime
from typing import Iterable, List, Optional
from sqlalchemy.orm import Session

from autopublish.db.models import (
    ALLOWED_TRANSITIONS, ArticleStatus, GeneratedArticle, Schedule, WordPressSite,
)
from autopublish.db import crud_sites
from autopublish.errors import AuthorizationError, InvalidTransitionError, NotFoundError
from autopublish.services.next_run import (
    compute_next_run, parse_time_of_day, resolve_frequency, resolve_timezone,
)

# --- schedules ---

def create_schedule(
    db: Session,
    owner_id: str,
    site_id: int,
    frequency: str,
    time_of_day: str,
    timezone: str,
    now: datetime,
) -> Schedule:
    crud_sites.get_owned_site(db, site_id, owner_id)
    freq = resolve_frequency(frequency)
    resolve_timezone(timezone)
    hour, minute = parse_time_of_day(time_of_day)
    time_of_day = f"{hour:02d}:{minute:02d}"
    obj = Schedule(
        owner_id=owner_id,
        target_site_id=site_id,
        frequency=freq,
        time_of_day=time_of_day,
        timezone=timezone,
        is_active=True,
        next_run_at=compute_next_run(freq, time_of_day, timezone, now),
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj

def get_schedule(db: Session, schedule_id: int) -> Schedule:
    obj = db.get(Schedule, schedule_id)
    if obj is None:
        raise NotFoundError("schedule", schedule_id)
    return obj

def get_owned_schedule(db: Session, schedule_id: int, owner_id: str) -> Schedule:
    obj = get_schedule(db, schedule_id)
    if obj.owner_id != owner_id:
        raise AuthorizationError("schedule", schedule_id, owner_id)
    return obj

def list_schedules(db: Session, owner_id: str) -> List[Schedule]:
    return (
        db.query(Schedule)
        .filter(Schedule.owner_id == owner_id)
        .order_by(Schedule.id.desc())
        .all()
    )

def list_active_due(db: Session, now: datetime) -> List[Schedule]:
    """Active schedules with a profile whose next run has arrived."""
    return (
        db.query(Schedule)
        .filter(
            Schedule.is_active.is_(True),
            Schedule.profile.isnot(None),
            Schedule.next_run_at <= now,
        )
        .order_by(Schedule.next_run_at.asc())
        .all()
    )

def count_active_schedules(db: Session) -> int:
    return db.query(Schedule).filter(Schedule.is_active.is_(True)).count()

def save_schedule(db: Session, schedule: Schedule) -> Schedule:
    db.add(schedule)
    db.commit()
    return schedule

def set_schedule_profile(db: Session, schedule: Schedule, profile: dict, now: datetime) -> Schedule:
    schedule.profile = profile
    schedule.last_analyzed_at = now
    return save_schedule(db, schedule)

def deactivate_schedule(db: Session, schedule: Schedule) -> Schedule:
    schedule.is_active = False
    return save_schedule(db, schedule)

def delete_schedule(db: Session, schedule: Schedule) -> None:
    # articles go with their schedule; this is an explicit user action, not the core
    db.query(GeneratedArticle).filter(GeneratedArticle.schedule_id == schedule.id).delete(
        synchronize_session=False
    )
    db.delete(schedule)
    db.commit()

def site_for_schedule(db: Session, schedule: Schedule) -> WordPressSite:
    return crud_sites.get_site(db, schedule.target_site_id)

# --- generated articles ---

def create_article(
    db: Session,
    schedule_id: int,
    title: str,
    content: str,
    excerpt: str,
    category: str,
    tags: Iterable[str],
    scheduled_for: datetime,
    status: ArticleStatus = ArticleStatus.READY,
    featured_image_url: Optional[str] = None,
) -> GeneratedArticle:
    obj = GeneratedArticle(
        schedule_id=schedule_id,
        title=title,
        content=content,
        excerpt=excerpt,
        category=category,
        tags=sorted({t.strip() for t in tags if t and t.strip()}),
        scheduled_for=scheduled_for,
        status=status,
        featured_image_url=featured_image_url,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj

def get_article(db: Session, article_id: int, refresh: bool = False) -> GeneratedArticle:
    obj = db.get(GeneratedArticle, article_id, populate_existing=refresh)
    if obj is None:
        raise NotFoundError("article", article_id)
    return obj

def get_owned_article(db: Session, article_id: int, owner_id: str) -> GeneratedArticle:
    obj = get_article(db, article_id)
    if get_schedule(db, obj.schedule_id).owner_id != owner_id:
        raise AuthorizationError("article", article_id, owner_id)
    return obj

def list_articles_for_schedule(db: Session, schedule_id: int, limit: int = 50) -> List[GeneratedArticle]:
    return (
        db.query(GeneratedArticle)
        .filter(GeneratedArticle.schedule_id == schedule_id)
        .order_by(GeneratedArticle.id.desc())
        .limit(limit)
        .all()
    )

def list_publishable_articles(db: Session, now: datetime) -> List[GeneratedArticle]:
    return (
        db.query(GeneratedArticle)
        .filter(
            GeneratedArticle.status == ArticleStatus.READY,
            GeneratedArticle.scheduled_for <= now,
        )
        .order_by(GeneratedArticle.scheduled_for.asc(), GeneratedArticle.id.asc())
        .all()
    )

def transition_article(
    db: Session,
    article_id: int,
    from_status: ArticleStatus,
    to_status: ArticleStatus,
    **fields,
) -> bool:
    """Conditionally move an article between statuses in one UPDATE.

    Returns True only if the row was still in ``from_status``; the row count
    of the conditional UPDATE is the whole concurrency guard.
    """
    if to_status not in ALLOWED_TRANSITIONS[from_status]:
        raise InvalidTransitionError(from_status.value, to_status.value)
    values = dict(fields)
    values["status"] = to_status
    updated = (
        db.query(GeneratedArticle)
        .filter(GeneratedArticle.id == article_id, GeneratedArticle.status == from_status)
        .update(values, synchronize_session=False)
    )
    db.commit()
    return updated == 1

def claim_article(db: Session, article_id: int) -> bool:
    return transition_article(db, article_id, ArticleStatus.READY, ArticleStatus.PUBLISHING)

def set_featured_image(db: Session, article_id: int, image_url: str) -> None:
    (
        db.query(GeneratedArticle)
        .filter(GeneratedArticle.id == article_id)
        .update({"featured_image_url": image_url}, synchronize_session=False)
    )
    db.commit()

def purge_failed_articles(db: Session, owner_id: str, older_than: datetime) -> int:
    """Storage maintenance: drop the owner's failed articles created before ``older_than``."""
    owned = db.query(Schedule.id).filter(Schedule.owner_id == owner_id)
    deleted = (
        db.query(GeneratedArticle)
        .filter(
            GeneratedArticle.schedule_id.in_(owned.scalar_subquery()),
            GeneratedArticle.status == ArticleStatus.FAILED,
            GeneratedArticle.created_at < older_than,
        )
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted
