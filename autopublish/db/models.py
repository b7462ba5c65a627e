import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text, TypeDecorator,
)
from sqlalchemy.orm import relationship

from autopublish.db.base import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores UTC, always hands back aware datetimes.

    SQLite drops tzinfo on the way in and returns naive values on the way out,
    so normalise both directions here.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Frequency(str, enum.Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ArticleStatus(str, enum.Enum):
    PENDING = "pending"
    GENERATING = "generating"
    READY = "ready"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    FAILED = "failed"


# forward-only article lifecycle
ALLOWED_TRANSITIONS = {
    ArticleStatus.PENDING: {ArticleStatus.GENERATING, ArticleStatus.FAILED},
    ArticleStatus.GENERATING: {ArticleStatus.READY, ArticleStatus.FAILED},
    ArticleStatus.READY: {ArticleStatus.PUBLISHING},
    ArticleStatus.PUBLISHING: {ArticleStatus.PUBLISHED, ArticleStatus.FAILED},
    ArticleStatus.PUBLISHED: set(),
    ArticleStatus.FAILED: set(),
}


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class WordPressSite(Base):
    __tablename__ = "wordpress_sites"
    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String(64), nullable=False, index=True)
    name = Column(String(256), nullable=False)
    url = Column(String(1024), nullable=False)  # site root, no trailing slash
    username = Column(String(256), nullable=False)
    app_password_encrypted = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, default=utc_now)

    schedules = relationship("Schedule", back_populates="site")


class Schedule(Base):
    __tablename__ = "schedules"
    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String(64), nullable=False, index=True)
    target_site_id = Column(Integer, ForeignKey("wordpress_sites.id"), nullable=False)
    frequency = Column(
        Enum(Frequency, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
    )
    time_of_day = Column(String(5), nullable=False)  # "HH:MM", local to timezone
    timezone = Column(String(64), nullable=False, default="UTC")
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    profile = Column(JSON(none_as_null=True), nullable=True)  # ContentProfile.model_dump()
    last_analyzed_at = Column(UTCDateTime, nullable=True)
    next_run_at = Column(UTCDateTime, nullable=True, index=True)
    created_at = Column(UTCDateTime, default=utc_now)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now)

    site = relationship("WordPressSite", back_populates="schedules")
    articles = relationship("GeneratedArticle", back_populates="schedule")


class GeneratedArticle(Base):
    __tablename__ = "generated_articles"
    id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False, index=True)
    title = Column(String(512), nullable=False)
    content = Column(Text, nullable=False)  # HTML
    excerpt = Column(Text, nullable=False, default="")
    category = Column(String(256), nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)  # sorted, de-duplicated
    featured_image_url = Column(Text, nullable=True)
    status = Column(
        Enum(ArticleStatus, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
        default=ArticleStatus.PENDING,
        index=True,
    )
    scheduled_for = Column(UTCDateTime, nullable=False, index=True)
    published_at = Column(UTCDateTime, nullable=True)
    external_post_id = Column(String(64), nullable=True)
    published_url = Column(String(1024), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utc_now)

    schedule = relationship("Schedule", back_populates="articles")
